import uuid
from datetime import timedelta

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.utils import timezone

from apps.catalog.models import MenuItem, Restaurant
from apps.utils.exceptions import (
    BelowMinimumOrder,
    Forbidden,
    InvalidItem,
    InvalidState,
    ItemRestaurantMismatch,
    NotFound,
)
from .models import Order, OrderRating, OrderRefund, OrderTimeline, can_transition
from .services import OrderService, transition

User = get_user_model()

ADDRESS = {"street": "12 MG Road", "city": "Bengaluru", "state": "Karnataka", "pincode": "560001"}
CONTACT = {"name": "Asha", "phone": "9876543210"}


class OrderServiceTestMixin:
    def setUp(self):
        self.user = User.objects.create_user(username="asha", password="pass12345")
        self.other = User.objects.create_user(username="ravi", password="pass12345")
        self.restaurant = Restaurant.objects.create(
            name="Spice Route", delivery_fee=4000, minimum_order=20000, is_approved=True
        )
        self.pizza = MenuItem.objects.create(
            restaurant=self.restaurant,
            name="Farmhouse Pizza",
            price=15000,
            customizations=[
                {"name": "Size", "options": [{"name": "Medium", "price": 0}, {"name": "Large", "price": 5000}]},
            ],
        )
        self.soda = MenuItem.objects.create(restaurant=self.restaurant, name="Lime Soda", price=6000)
        self.service = OrderService()

    def create_order(self, user=None, items=None):
        return self.service.create_order(
            user=user or self.user,
            restaurant_id=self.restaurant.id,
            items=items or [{
                "menu_item": self.pizza.id,
                "quantity": 2,
                "customizations": [{"name": "Size", "selected_options": [{"name": "Large", "price": 1}]}],
            }],
            delivery_address=ADDRESS,
            contact_info=CONTACT,
        )

    def force_status(self, order, status, **fields):
        Order.objects.filter(pk=order.pk).update(status=status, **fields)
        order.refresh_from_db()
        return order


class CreateOrderTests(OrderServiceTestMixin, TestCase):
    def test_create_order_prices_from_catalog(self):
        before = timezone.now()
        order = self.create_order()

        # (15000 + 5000) * 2; the client-sent option price is ignored
        self.assertEqual(order.subtotal, 40000)
        self.assertEqual(order.delivery_fee, 4000)
        self.assertEqual(order.taxes, 2000)
        self.assertEqual(order.discount, 0)
        self.assertEqual(order.total, 46000)
        self.assertEqual(order.status, Order.Status.PENDING_PAYMENT)
        self.assertEqual(order.payment_status, Order.PaymentStatus.PENDING)
        self.assertEqual(order.provider_order_id, "")

        item = order.items.get()
        self.assertEqual(item.name_snapshot, "Farmhouse Pizza")
        self.assertEqual(item.unit_price_snapshot, 15000)
        self.assertEqual(item.item_total, 40000)
        self.assertEqual(item.customizations, [{"name": "Size", "selected_options": [{"name": "Large", "price": 5000}]}])

        timeline = list(order.timeline.all())
        self.assertEqual(len(timeline), 1)
        self.assertEqual(timeline[0].status, Order.Status.PENDING_PAYMENT)
        self.assertEqual(timeline[0].description, "Order created, waiting for payment")

        self.assertGreaterEqual(order.estimated_delivery_time, before + timedelta(minutes=35))
        self.assertTrue(order.order_number.startswith("ORD"))

    def test_later_catalog_changes_do_not_touch_existing_orders(self):
        order = self.create_order()
        MenuItem.objects.filter(pk=self.pizza.pk).update(price=99900, name="Renamed")

        item = order.items.get()
        self.assertEqual(item.unit_price_snapshot, 15000)
        self.assertEqual(item.name_snapshot, "Farmhouse Pizza")

    def test_below_minimum_order(self):
        with self.assertRaises(BelowMinimumOrder) as cm:
            self.create_order(items=[{"menu_item": self.soda.id, "quantity": 1}])
        self.assertFalse(Order.objects.exists())
        self.assertEqual(cm.exception.message, "Minimum order amount is ₹200.00")

    def test_unavailable_item(self):
        self.pizza.is_available = False
        self.pizza.save()
        with self.assertRaises(InvalidItem):
            self.create_order()
        self.assertFalse(Order.objects.exists())

    def test_unknown_item(self):
        with self.assertRaises(InvalidItem):
            self.create_order(items=[{"menu_item": uuid.uuid4(), "quantity": 1}])

    def test_item_from_another_restaurant(self):
        elsewhere = Restaurant.objects.create(name="Other", is_approved=True)
        stray = MenuItem.objects.create(restaurant=elsewhere, name="Stray", price=50000)
        with self.assertRaises(ItemRestaurantMismatch):
            self.create_order(items=[{"menu_item": stray.id, "quantity": 1}])

    def test_unknown_customization_option(self):
        with self.assertRaises(InvalidItem):
            self.create_order(items=[{
                "menu_item": self.pizza.id,
                "quantity": 2,
                "customizations": [{"name": "Size", "selected_options": [{"name": "Family", "price": 0}]}],
            }])

    def test_restaurant_not_accepting_orders(self):
        self.restaurant.is_approved = False
        self.restaurant.save()
        with self.assertRaises(NotFound):
            self.create_order()

    def test_empty_cart(self):
        with self.assertRaises(InvalidItem):
            self.service.create_order(self.user, self.restaurant.id, [], ADDRESS, CONTACT)


class OwnershipTests(OrderServiceTestMixin, TestCase):
    def test_other_users_order_is_forbidden(self):
        order = self.create_order()
        with self.assertRaises(Forbidden):
            self.service.get_order(order.id, self.other)
        with self.assertRaises(Forbidden):
            self.service.cancel_order(order.id, self.other)
        with self.assertRaises(Forbidden):
            self.service.get_tracking(order.id, self.other)
        with self.assertRaises(Forbidden):
            self.service.rate_order(order.id, self.other, food=5, delivery=5, overall=5)

        order.refresh_from_db()
        self.assertEqual(order.status, Order.Status.PENDING_PAYMENT)

    def test_missing_order_is_not_found(self):
        with self.assertRaises(NotFound):
            self.service.get_order(uuid.uuid4(), self.user)
        with self.assertRaises(NotFound):
            self.service.get_order("garbage", self.user)

    def test_listing_only_returns_own_orders(self):
        mine = self.create_order()
        self.create_order(user=self.other)
        self.assertEqual(list(self.service.orders_for(self.user)), [mine])


class CancelOrderTests(OrderServiceTestMixin, TestCase):
    def test_cancel_pending_order(self):
        order = self.create_order()
        self.service.cancel_order(order.id, self.user, reason="Changed my mind")

        order.refresh_from_db()
        self.assertEqual(order.status, Order.Status.CANCELLED)
        last = order.timeline.last()
        self.assertEqual(last.status, Order.Status.CANCELLED)
        self.assertEqual(last.description, "Order cancelled by customer: Changed my mind")
        self.assertFalse(OrderRefund.objects.filter(order=order).exists())

    def test_cancel_paid_order_requests_refund(self):
        order = self.force_status(
            self.create_order(), Order.Status.PREPARING, payment_status=Order.PaymentStatus.PAID
        )
        self.service.cancel_order(order.id, self.user)

        refund = OrderRefund.objects.get(order=order)
        self.assertEqual(refund.amount, order.total)
        self.assertEqual(refund.status, OrderRefund.Status.REQUESTED)

    def test_cannot_cancel_once_dispatched(self):
        order = self.force_status(self.create_order(), Order.Status.OUT_FOR_DELIVERY)
        with self.assertRaises(InvalidState):
            self.service.cancel_order(order.id, self.user)

        order.refresh_from_db()
        self.assertEqual(order.status, Order.Status.OUT_FOR_DELIVERY)
        self.assertEqual(order.timeline.count(), 1)

    def test_cancel_twice(self):
        order = self.create_order()
        self.service.cancel_order(order.id, self.user)
        with self.assertRaises(InvalidState):
            self.service.cancel_order(order.id, self.user)


class RateOrderTests(OrderServiceTestMixin, TestCase):
    def test_rate_requires_delivered(self):
        order = self.force_status(self.create_order(), Order.Status.PREPARING, payment_status=Order.PaymentStatus.PAID)
        with self.assertRaises(InvalidState):
            self.service.rate_order(order.id, self.user, food=5, delivery=4, overall=5)
        self.assertFalse(OrderRating.objects.filter(order=order).exists())

    def test_single_rating(self):
        order = self.force_status(self.create_order(), Order.Status.DELIVERED)
        rating = self.service.rate_order(order.id, self.user, food=5, delivery=4, overall=5, review="Great")
        self.assertEqual(rating.overall, 5)
        self.assertIsNotNone(rating.rated_at)

        with self.assertRaises(InvalidState):
            self.service.rate_order(order.id, self.user, food=1, delivery=1, overall=1)
        order.rating.refresh_from_db()
        self.assertEqual(order.rating.review, "Great")


class AdvanceStatusTests(OrderServiceTestMixin, TestCase):
    def test_fulfilment_flow(self):
        order = self.force_status(self.create_order(), Order.Status.CONFIRMED)
        partner = {"name": "Kiran", "phone": "9123456780"}

        for target in ("preparing", "ready_for_pickup", "out_for_delivery", "delivered"):
            self.service.advance_status(order.id, target, delivery_partner=partner)

        order.refresh_from_db()
        self.assertEqual(order.status, Order.Status.DELIVERED)
        self.assertEqual(order.delivery_partner, partner)
        self.assertIsNotNone(order.actual_delivery_time)
        self.assertEqual(
            [entry.status for entry in order.timeline.all()],
            ["pending_payment", "preparing", "ready_for_pickup", "out_for_delivery", "delivered"],
        )

    def test_cannot_skip_steps(self):
        order = self.force_status(self.create_order(), Order.Status.CONFIRMED)
        with self.assertRaises(InvalidState):
            self.service.advance_status(order.id, Order.Status.OUT_FOR_DELIVERY)

    def test_unpaid_order_cannot_be_prepared(self):
        order = self.create_order()
        with self.assertRaises(InvalidState):
            self.service.advance_status(order.id, Order.Status.PREPARING)

    def test_payment_states_cannot_be_set_directly(self):
        order = self.create_order()
        for target in (Order.Status.CONFIRMED, Order.Status.CANCELLED, Order.Status.PAYMENT_FAILED):
            with self.assertRaises(InvalidState):
                self.service.advance_status(order.id, target)


class StateMachineTests(OrderServiceTestMixin, TestCase):
    def test_transitions_are_closed(self):
        edges = {
            ("pending_payment", "confirmed"),
            ("pending_payment", "payment_failed"),
            ("pending_payment", "cancelled"),
            ("confirmed", "preparing"),
            ("confirmed", "cancelled"),
            ("preparing", "ready_for_pickup"),
            ("preparing", "cancelled"),
            ("ready_for_pickup", "out_for_delivery"),
            ("out_for_delivery", "delivered"),
        }
        for current in Order.Status:
            for target in Order.Status:
                self.assertEqual(
                    can_transition(current, target),
                    (current.value, target.value) in edges,
                    f"{current} -> {target}",
                )

    def test_terminal_states(self):
        for terminal in (Order.Status.DELIVERED, Order.Status.CANCELLED, Order.Status.PAYMENT_FAILED):
            self.assertFalse(any(can_transition(terminal, target) for target in Order.Status))

    def test_stale_copy_loses_the_race(self):
        order = self.create_order()
        stale = Order.objects.get(pk=order.pk)
        self.service.cancel_order(order.id, self.user)

        with self.assertRaises(InvalidState):
            transition(stale, Order.Status.CONFIRMED, "late confirmation")

        order.refresh_from_db()
        self.assertEqual(order.status, Order.Status.CANCELLED)
        self.assertEqual(order.timeline.count(), 2)

    def test_timeline_never_goes_backwards(self):
        order = self.create_order()
        future = timezone.now() + timedelta(minutes=5)
        OrderTimeline.objects.filter(order=order).update(timestamp=future)

        entry = OrderTimeline.objects.append(order, Order.Status.CANCELLED, "clock skew")
        self.assertGreaterEqual(entry.timestamp, future)
