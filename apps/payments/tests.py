import hashlib
import hmac
from datetime import timedelta
from unittest import mock

import requests
from razorpay.errors import SignatureVerificationError
from django.contrib.auth import get_user_model
from django.core.exceptions import ImproperlyConfigured
from django.test import SimpleTestCase, TestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient

from apps.catalog.models import MenuItem, Restaurant
from apps.orders.models import Order, OrderRating, OrderRefund
from apps.orders.services import OrderService
from apps.utils.exceptions import (
    Forbidden,
    InvalidState,
    MismatchedProviderOrder,
    SignatureInvalid,
    UpstreamUnavailable,
)
from .gateway import (
    PaymentGateway,
    RazorpayGateway,
    RemoteOrder,
    SimulatedGateway,
    build_payment_gateway,
)
from .models import IntentStatus, PaymentIntent
from .services import PaymentService, build_receipt

User = get_user_model()

SECRET = "test_secret"


class FakeGateway(PaymentGateway):
    """Records remote calls; signatures go through the real SDK check."""
    mode = "test"

    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []
        self.verifier = RazorpayGateway("rzp_test_key", SECRET)

    def create_remote_order(self, amount, currency, receipt, notes):
        if self.fail:
            raise UpstreamUnavailable("Payment gateway is unavailable. Please try again.")
        self.calls.append({"amount": amount, "currency": currency, "receipt": receipt, "notes": notes})
        remote_id = f"order_test_{len(self.calls)}"
        return RemoteOrder(
            id=remote_id,
            amount=amount,
            currency=currency,
            receipt=receipt,
            status="created",
            created_at=timezone.now(),
            raw={"id": remote_id, "amount": amount},
        )

    def verify_signature(self, provider_order_id, provider_payment_id, signature):
        return self.verifier.verify_signature(provider_order_id, provider_payment_id, signature)


def sign(provider_order_id, provider_payment_id, secret=SECRET):
    return hmac.new(
        secret.encode("utf-8"),
        f"{provider_order_id}|{provider_payment_id}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


class SignatureTests(SimpleTestCase):
    def setUp(self):
        self.gateway = RazorpayGateway("rzp_test_key", SECRET)

    def test_valid_signature(self):
        signature = sign("order_1", "pay_1")
        self.assertEqual(len(signature), 64)
        self.assertTrue(self.gateway.verify_signature("order_1", "pay_1", signature))

    def test_any_single_character_change_fails(self):
        signature = sign("order_1", "pay_1")
        for i in range(len(signature)):
            flipped = "0" if signature[i] != "0" else "1"
            tampered = signature[:i] + flipped + signature[i + 1:]
            self.assertFalse(self.gateway.verify_signature("order_1", "pay_1", tampered))

    def test_wrong_ids_or_secret_fail(self):
        self.assertFalse(self.gateway.verify_signature("order_1", "pay_2", sign("order_1", "pay_1")))
        self.assertFalse(self.gateway.verify_signature("order_1", "pay_1", sign("order_1", "pay_1", secret="other")))

    def test_malformed_signature_never_raises(self):
        self.assertFalse(self.gateway.verify_signature("order_1", "pay_1", None))
        self.assertFalse(self.gateway.verify_signature("order_1", "pay_1", "forged"))

    def test_sdk_receives_checkout_fields(self):
        client = mock.Mock()
        gateway = RazorpayGateway("rzp_test_key", SECRET, client=client)

        self.assertTrue(gateway.verify_signature("order_1", "pay_1", "sig"))
        client.utility.verify_payment_signature.assert_called_once_with({
            "razorpay_order_id": "order_1",
            "razorpay_payment_id": "pay_1",
            "razorpay_signature": "sig",
        })

        client.utility.verify_payment_signature.side_effect = SignatureVerificationError("bad")
        self.assertFalse(gateway.verify_signature("order_1", "pay_1", "sig"))


class GatewayTests(SimpleTestCase):
    def test_razorpay_gateway_creates_order(self):
        client = mock.Mock()
        client.order.create.return_value = {
            "id": "order_N7sl2", "amount": 46000, "currency": "INR",
            "receipt": "ORD1234ABCD_1700000000", "status": "created", "created_at": 1700000000,
        }
        gateway = RazorpayGateway("rzp_test_key", SECRET, timeout=5, client=client)

        remote = gateway.create_remote_order(46000, "INR", "ORD1234ABCD_1700000000", {"order_id": "x"})

        self.assertEqual(remote.id, "order_N7sl2")
        self.assertEqual(remote.amount, 46000)
        _, kwargs = client.order.create.call_args
        self.assertEqual(kwargs["data"]["amount"], 46000)
        self.assertEqual(kwargs["timeout"], 5)

    def test_razorpay_gateway_timeout_is_upstream_unavailable(self):
        client = mock.Mock()
        client.order.create.side_effect = requests.Timeout("read timed out")
        gateway = RazorpayGateway("rzp_test_key", SECRET, client=client)

        with self.assertRaises(UpstreamUnavailable):
            gateway.create_remote_order(100, "INR", "r", {})

    def test_live_mode_requires_keys(self):
        with self.assertRaises(ImproperlyConfigured):
            RazorpayGateway("", "")

    def test_simulated_gateway(self):
        gateway = SimulatedGateway()
        first = gateway.create_remote_order(100, "INR", "r1", {})
        second = gateway.create_remote_order(100, "INR", "r2", {})

        self.assertTrue(first.id.startswith("order_mock_"))
        self.assertNotEqual(first.id, second.id)
        self.assertTrue(gateway.verify_signature(first.id, "pay_x", "anything"))

    def test_build_payment_gateway(self):
        with self.assertLogs("apps.payments.gateway", level="WARNING"):
            self.assertIsInstance(build_payment_gateway("simulation"), SimulatedGateway)
        with self.assertRaises(ImproperlyConfigured):
            build_payment_gateway("sandbox")


class PaymentServiceTestMixin:
    def setUp(self):
        self.user = User.objects.create_user(username="kabir", password="pass12345")
        self.restaurant = Restaurant.objects.create(
            name="Biryani House", delivery_fee=4000, minimum_order=0, is_approved=True
        )
        self.biryani = MenuItem.objects.create(restaurant=self.restaurant, name="Chicken Biryani", price=30000)
        self.order = Order.objects.create(
            user=self.user,
            restaurant=self.restaurant,
            delivery_address={"street": "1 Park St", "city": "Kolkata", "state": "WB", "pincode": "700016"},
            contact_info={"name": "Kabir", "phone": "9000000002"},
            subtotal=30000,
            delivery_fee=4000,
            taxes=1500,
            total=35500,
            estimated_delivery_time=timezone.now() + timedelta(minutes=35),
        )
        self.gateway = FakeGateway()
        self.service = PaymentService(gateway=self.gateway)

    def initiate(self):
        order, intent = self.service.initiate_payment(self.order.id, self.user)
        self.order.refresh_from_db()
        return intent


class InitiatePaymentTests(PaymentServiceTestMixin, TestCase):
    def test_creates_remote_order_for_total(self):
        intent = self.initiate()

        self.assertEqual(self.gateway.calls[0]["amount"], 35500)
        self.assertEqual(self.gateway.calls[0]["currency"], "INR")
        self.assertLessEqual(len(self.gateway.calls[0]["receipt"]), 40)
        self.assertEqual(intent.status, IntentStatus.CREATED)
        self.assertEqual(self.order.provider_order_id, intent.gateway_order_id)
        self.assertEqual(self.order.status, Order.Status.PENDING_PAYMENT)

    def test_repeat_reuses_open_intent(self):
        first = self.initiate()
        second = self.initiate()

        self.assertEqual(first.pk, second.pk)
        self.assertEqual(len(self.gateway.calls), 1)

    def test_changed_amount_supersedes_old_intent(self):
        first = self.initiate()
        Order.objects.filter(pk=self.order.pk).update(total=40000)
        second = self.initiate()

        self.assertNotEqual(first.pk, second.pk)
        first.refresh_from_db()
        self.assertEqual(first.status, IntentStatus.SUPERSEDED)
        self.assertEqual(self.order.provider_order_id, second.gateway_order_id)

    def test_only_pending_orders_are_payable(self):
        Order.objects.filter(pk=self.order.pk).update(status=Order.Status.CANCELLED)
        with self.assertRaises(InvalidState):
            self.initiate()
        self.assertEqual(self.gateway.calls, [])

    def test_gateway_down_leaves_order_untouched(self):
        self.service = PaymentService(gateway=FakeGateway(fail=True))
        with self.assertRaises(UpstreamUnavailable):
            self.initiate()

        self.order.refresh_from_db()
        self.assertEqual(self.order.provider_order_id, "")
        self.assertFalse(PaymentIntent.objects.exists())

    def test_owner_only(self):
        stranger = User.objects.create_user(username="stranger", password="pass12345")
        with self.assertRaises(Forbidden):
            self.service.initiate_payment(self.order.id, stranger)

    def test_receipt_format(self):
        receipt = build_receipt(self.order)
        self.assertTrue(receipt.startswith(self.order.order_number + "_"))


class VerifyPaymentTests(PaymentServiceTestMixin, TestCase):
    def test_valid_signature_confirms_order(self):
        intent = self.initiate()
        signature = sign(intent.gateway_order_id, "pay_001")

        order = self.service.verify_payment(
            self.order.id, self.user, intent.gateway_order_id, "pay_001", signature, payment_method="upi"
        )

        order.refresh_from_db()
        self.assertEqual(order.status, Order.Status.CONFIRMED)
        self.assertEqual(order.payment_status, Order.PaymentStatus.PAID)
        self.assertEqual(order.provider_payment_id, "pay_001")
        self.assertEqual(order.payment_method, "upi")
        self.assertIsNotNone(order.paid_at)
        self.assertEqual(order.timeline.last().status, Order.Status.CONFIRMED)
        intent.refresh_from_db()
        self.assertEqual(intent.status, IntentStatus.PAID)

    def test_bad_signature_is_persisted_then_raised(self):
        intent = self.initiate()

        with self.assertRaises(SignatureInvalid):
            self.service.verify_payment(self.order.id, self.user, intent.gateway_order_id, "pay_001", "0" * 64)

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PAYMENT_FAILED)
        self.assertEqual(self.order.payment_status, Order.PaymentStatus.FAILED)
        self.assertEqual(self.order.payment_failure_reason, "Invalid signature")
        self.assertEqual(self.order.timeline.last().status, Order.Status.PAYMENT_FAILED)
        self.assertEqual(self.order.provider_payment_id, "")

    def test_mismatched_provider_order(self):
        self.initiate()
        with self.assertRaises(MismatchedProviderOrder):
            self.service.verify_payment(
                self.order.id, self.user, "order_someone_else", "pay_001", sign("order_someone_else", "pay_001")
            )
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PENDING_PAYMENT)

    def test_verify_before_initiate(self):
        with self.assertRaises(InvalidState):
            self.service.verify_payment(self.order.id, self.user, "order_x", "pay_x", "sig")

    def test_duplicate_callback_is_idempotent(self):
        intent = self.initiate()
        signature = sign(intent.gateway_order_id, "pay_001")
        self.service.verify_payment(self.order.id, self.user, intent.gateway_order_id, "pay_001", signature)
        self.service.verify_payment(self.order.id, self.user, intent.gateway_order_id, "pay_001", signature)

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.CONFIRMED)
        self.assertEqual(self.order.timeline.filter(status=Order.Status.CONFIRMED).count(), 1)


class CancelledCheckoutTests(PaymentServiceTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.intent = self.initiate()
        OrderService().cancel_order(self.order.id, self.user, reason="Changed my mind")
        self.order.refresh_from_db()

    def test_cancel_closes_open_intent(self):
        self.intent.refresh_from_db()
        self.assertEqual(self.intent.status, IntentStatus.SUPERSEDED)

    def test_payment_captured_after_cancel_is_refunded(self):
        provider_order_id = self.intent.gateway_order_id

        with self.assertRaises(InvalidState):
            self.service.verify_payment(
                self.order.id, self.user, provider_order_id, "pay_late", sign(provider_order_id, "pay_late"),
                payment_method="card",
            )

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.CANCELLED)
        self.assertEqual(self.order.payment_status, Order.PaymentStatus.PAID)
        self.assertEqual(self.order.provider_payment_id, "pay_late")
        self.assertEqual(self.order.payment_method, "card")
        self.assertIsNotNone(self.order.paid_at)

        refund = OrderRefund.objects.get(order=self.order)
        self.assertEqual(refund.status, OrderRefund.Status.REQUESTED)
        self.assertEqual(refund.amount, self.order.total)
        self.intent.refresh_from_db()
        self.assertEqual(self.intent.status, IntentStatus.PAID)

    def test_forged_callback_after_cancel_changes_nothing(self):
        timeline_before = self.order.timeline.count()

        with self.assertRaises(InvalidState):
            self.service.verify_payment(self.order.id, self.user, self.intent.gateway_order_id, "pay_late", "forged")

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.CANCELLED)
        self.assertEqual(self.order.payment_status, Order.PaymentStatus.PENDING)
        self.assertEqual(self.order.provider_payment_id, "")
        self.assertEqual(self.order.timeline.count(), timeline_before)
        self.assertFalse(OrderRefund.objects.filter(order=self.order).exists())


class OwnershipTests(PaymentServiceTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.stranger = User.objects.create_user(username="stranger", password="pass12345")
        self.orders = OrderService()

    def snapshot(self):
        order = Order.objects.get(pk=self.order.pk)
        return (
            order.status,
            order.payment_status,
            order.provider_order_id,
            order.provider_payment_id,
            order.payment_failure_reason,
            order.timeline.count(),
            OrderRating.objects.filter(order=order).exists(),
            OrderRefund.objects.filter(order=order).exists(),
            PaymentIntent.objects.filter(order=order).count(),
        )

    def test_every_by_id_operation_rejects_non_owner(self):
        order_id = self.order.id
        operations = {
            "get_order": lambda: self.orders.get_order(order_id, self.stranger),
            "get_tracking": lambda: self.orders.get_tracking(order_id, self.stranger),
            "cancel_order": lambda: self.orders.cancel_order(order_id, self.stranger),
            "rate_order": lambda: self.orders.rate_order(order_id, self.stranger, food=1, delivery=1, overall=1),
            "initiate_payment": lambda: self.service.initiate_payment(order_id, self.stranger),
            "verify_payment": lambda: self.service.verify_payment(
                order_id, self.stranger, "order_test_1", "pay_x", sign("order_test_1", "pay_x")
            ),
            "record_failure": lambda: self.service.record_failure(order_id, self.stranger, reason="nope"),
            "get_status": lambda: self.service.get_status(order_id, self.stranger),
        }
        states = [
            (Order.Status.PENDING_PAYMENT, Order.PaymentStatus.PENDING),
            (Order.Status.CONFIRMED, Order.PaymentStatus.PAID),
            (Order.Status.PREPARING, Order.PaymentStatus.PAID),
            (Order.Status.DELIVERED, Order.PaymentStatus.PAID),
            (Order.Status.PAYMENT_FAILED, Order.PaymentStatus.FAILED),
            (Order.Status.CANCELLED, Order.PaymentStatus.PENDING),
        ]

        for order_status, payment_status in states:
            Order.objects.filter(pk=order_id).update(
                status=order_status, payment_status=payment_status, provider_order_id="order_test_1"
            )
            before = self.snapshot()
            for name, operation in operations.items():
                with self.subTest(status=order_status, operation=name):
                    with self.assertRaises(Forbidden):
                        operation()
                    self.assertEqual(self.snapshot(), before)

        self.assertEqual(self.gateway.calls, [])


class RecordFailureTests(PaymentServiceTestMixin, TestCase):
    def test_records_failure(self):
        self.initiate()
        self.service.record_failure(self.order.id, self.user, reason="Card declined")

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PAYMENT_FAILED)
        self.assertEqual(self.order.payment_failure_reason, "Card declined")
        self.assertEqual(self.order.timeline.last().description, "Payment failed: Card declined")
        self.assertEqual(PaymentIntent.objects.get().status, IntentStatus.FAILED)

    def test_default_reason(self):
        self.service.record_failure(self.order.id, self.user)
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_failure_reason, "Payment failed")
        self.assertEqual(self.order.timeline.last().description, "Payment failed: Unknown error")

    def test_failed_is_terminal(self):
        self.service.record_failure(self.order.id, self.user)
        with self.assertRaises(InvalidState):
            self.service.record_failure(self.order.id, self.user)
        with self.assertRaises(InvalidState):
            self.service.initiate_payment(self.order.id, self.user)


class PaymentAPITests(PaymentServiceTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.client = APIClient()
        self.client.force_authenticate(self.user)
        patcher = mock.patch("apps.payments.views.payment_service", return_value=self.service)
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_checkout_flow(self):
        response = self.client.post(reverse("payment-create-order"), {"order_id": str(self.order.id)}, format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        provider_order_id = response.data["payment_order"]["gateway_order_id"]
        self.assertEqual(response.data["payment_order"]["amount"], 35500)

        response = self.client.post(reverse("payment-verify"), {
            "order_id": str(self.order.id),
            "razorpay_order_id": provider_order_id,
            "razorpay_payment_id": "pay_777",
            "razorpay_signature": sign(provider_order_id, "pay_777"),
        }, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["status"], "confirmed")

        response = self.client.get(reverse("payment-status", args=[self.order.id]))
        self.assertEqual(response.data["payment"]["payment_status"], "paid")
        self.assertEqual(response.data["payment"]["provider_payment_id"], "pay_777")

    def test_bad_signature_response(self):
        self.initiate()
        response = self.client.post(reverse("payment-verify"), {
            "order_id": str(self.order.id),
            "razorpay_order_id": self.order.provider_order_id,
            "razorpay_payment_id": "pay_777",
            "razorpay_signature": "forged",
        }, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "signature_invalid")
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PAYMENT_FAILED)

    def test_payment_failed_endpoint(self):
        response = self.client.post(
            reverse("payment-failed"), {"order_id": str(self.order.id), "reason": "User closed checkout"}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["status"], "payment_failed")

    def test_gateway_outage_is_503(self):
        self.gateway.fail = True
        response = self.client.post(reverse("payment-create-order"), {"order_id": str(self.order.id)}, format="json")
        self.assertEqual(response.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)
        self.assertEqual(response.data["code"], "upstream_unavailable")
