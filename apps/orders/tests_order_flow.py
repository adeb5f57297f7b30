from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.test import TestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient

from apps.catalog.models import MenuItem, Restaurant
from .models import Order

User = get_user_model()


class OrderFlowTests(TestCase):
    def setUp(self):
        cache.clear()
        self.client = APIClient()
        self.user = User.objects.create_user(username="meera", password="pass12345")
        self.client.force_authenticate(self.user)

        self.restaurant = Restaurant.objects.create(
            name="Udupi Express", delivery_fee=2500, minimum_order=10000, is_approved=True
        )
        self.thali = MenuItem.objects.create(restaurant=self.restaurant, name="Veg Thali", price=18000)

        self.payload = {
            "restaurant": str(self.restaurant.id),
            "items": [{"menu_item": str(self.thali.id), "quantity": 1}],
            "delivery_address": {
                "street": "4th Cross, Jayanagar",
                "city": "Bengaluru",
                "state": "Karnataka",
                "pincode": "560011",
                "coordinates": {"latitude": 12.93, "longitude": 77.58},
            },
            "contact_info": {"name": "Meera", "phone": "9000000001"},
        }

    def create(self, **headers):
        return self.client.post(reverse("order-list"), self.payload, format="json", **headers)

    def test_create_order(self):
        response = self.create()
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data["success"])

        order = response.data["order"]
        self.assertEqual(order["status"], "pending_payment")
        self.assertEqual(order["order_summary"], {
            "subtotal": 18000, "delivery_fee": 2500, "taxes": 900, "discount": 0, "total": 21400,
        })
        self.assertEqual(order["restaurant"]["name"], "Udupi Express")
        self.assertEqual(len(order["tracking"]), 1)
        self.assertNotIn("provider_signature", order["payment_info"])

    def test_create_requires_authentication(self):
        self.client.force_authenticate(None)
        response = self.create()
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertFalse(response.data["success"])

    def test_validation_errors(self):
        self.payload["items"] = []
        self.payload["contact_info"]["phone"] = "123"
        response = self.create()

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "validation_error")
        self.assertIn("items", response.data["details"])
        self.assertIn("contact_info", response.data["details"])
        self.assertFalse(Order.objects.exists())

    def test_business_error_envelope(self):
        self.thali.price = 5000
        self.thali.save()
        response = self.create()

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "below_minimum_order")
        self.assertIn("Minimum order amount", response.data["error"])

    def test_idempotency_key_blocks_replay(self):
        first = self.create(HTTP_X_IDEMPOTENCY_KEY="checkout-1")
        second = self.create(HTTP_X_IDEMPOTENCY_KEY="checkout-1")

        self.assertEqual(first.status_code, status.HTTP_201_CREATED)
        self.assertEqual(second.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(second.data["code"], "duplicate_request")
        self.assertEqual(Order.objects.count(), 1)

    def test_failed_attempt_releases_idempotency_key(self):
        self.payload["items"] = []
        self.assertEqual(self.create(HTTP_X_IDEMPOTENCY_KEY="k").status_code, status.HTTP_400_BAD_REQUEST)

        self.payload["items"] = [{"menu_item": str(self.thali.id), "quantity": 1}]
        self.assertEqual(self.create(HTTP_X_IDEMPOTENCY_KEY="k").status_code, status.HTTP_201_CREATED)

    def test_list_and_filter(self):
        order_id = self.create().data["order"]["id"]
        self.client.post(reverse("order-cancel", args=[order_id]), {}, format="json")
        self.create()

        response = self.client.get(reverse("order-list"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["pagination"]["total_items"], 2)

        response = self.client.get(reverse("order-list"), {"status": "cancelled"})
        self.assertEqual([o["id"] for o in response.data["orders"]], [order_id])

    def test_other_user_gets_403(self):
        order_id = self.create().data["order"]["id"]

        intruder = User.objects.create_user(username="intruder", password="pass12345")
        self.client.force_authenticate(intruder)

        response = self.client.get(reverse("order-detail", args=[order_id]))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data["code"], "forbidden")

        response = self.client.get(reverse("order-list"))
        self.assertEqual(response.data["orders"], [])

    def test_cancel_then_cancel_again_conflicts(self):
        order_id = self.create().data["order"]["id"]
        url = reverse("order-cancel", args=[order_id])

        response = self.client.post(url, {"reason": "Ordered by mistake"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["order"]["status"], "cancelled")

        response = self.client.post(url, {}, format="json")
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["code"], "invalid_state")

    def test_cancel_accepts_patch(self):
        order_id = self.create().data["order"]["id"]

        response = self.client.patch(reverse("order-cancel", args=[order_id]), {"reason": "Too slow"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["order"]["status"], "cancelled")

    def test_tracking(self):
        order_id = self.create().data["order"]["id"]
        response = self.client.get(reverse("order-tracking", args=[order_id]))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        tracking = response.data["tracking"]
        self.assertEqual(tracking["status"], "pending_payment")
        self.assertEqual(tracking["timeline"][0]["description"], "Order created, waiting for payment")

    def test_status_update_is_staff_only(self):
        order_id = self.create().data["order"]["id"]
        Order.objects.filter(pk=order_id).update(status=Order.Status.CONFIRMED)
        url = reverse("order-update-status", args=[order_id])

        response = self.client.patch(url, {"status": "preparing"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        staff = User.objects.create_user(username="kitchen", password="pass12345", is_staff=True)
        self.client.force_authenticate(staff)
        response = self.client.patch(url, {"status": "preparing"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["status"], "preparing")

        response = self.client.patch(url, {"status": "delivered"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_rate_after_delivery(self):
        order_id = self.create().data["order"]["id"]
        Order.objects.filter(pk=order_id).update(status=Order.Status.DELIVERED)
        url = reverse("order-rate", args=[order_id])

        response = self.client.post(url, {"food": 6, "delivery": 4, "overall": 5}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.post(url, {"food": 5, "delivery": 4, "overall": 5}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["rating"]["overall"], 5)

        response = self.client.post(url, {"food": 5, "delivery": 4, "overall": 5}, format="json")
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
