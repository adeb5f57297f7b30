import logging
import time

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from apps.orders.models import Order, OrderRefund
from apps.orders.services import get_owned_order, save_guarded, transition  # Explicit Cross-App Import
from apps.utils.exceptions import InvalidState, MismatchedProviderOrder, SignatureInvalid
from .gateway import get_payment_gateway
from .models import IntentStatus, PaymentIntent

logger = logging.getLogger(__name__)


def build_receipt(order):
    """Provider receipts are capped at 40 chars: ORDXXXXXXXX_<epoch>."""
    return f"{settings.PAYMENT_RECEIPT_PREFIX}{order.order_number}_{int(time.time())}"[:40]


class PaymentService:
    """
    Service to handle the Payment Lifecycle of an Order:
    initiate -> (verify | record failure). The gateway is injected.
    """

    def __init__(self, gateway=None):
        self.gateway = gateway or get_payment_gateway()

    @staticmethod
    def _ensure_pending(order):
        if order.status != Order.Status.PENDING_PAYMENT:
            raise InvalidState(f"Order is not in a payable state: {order.status}")

    def initiate_payment(self, order_id, user):
        """
        Creates a payment order on the Gateway and a PaymentIntent locally.
        The remote call happens outside any row lock.
        """
        order = get_owned_order(order_id, user)
        self._ensure_pending(order)

        reusable = PaymentIntent.objects.filter(
            order=order,
            status=IntentStatus.CREATED,
            amount=order.total,
            gateway_order_id=order.provider_order_id,
        ).first()
        if order.provider_order_id and reusable:
            logger.info(
                f"Reusing payment intent {reusable.gateway_order_id} for order {order.id}",
                extra={"order_id": order.id, "provider_order_id": reusable.gateway_order_id},
            )
            return order, reusable

        # 1. Call Gateway
        remote = self.gateway.create_remote_order(
            amount=order.total,
            currency=settings.PAYMENT_CURRENCY,
            receipt=build_receipt(order),
            notes={"order_id": str(order.id), "user_id": str(user.pk)},
        )

        # 2. Store Intent
        with transaction.atomic():
            order = get_owned_order(order_id, user, for_update=True)
            if order.status != Order.Status.PENDING_PAYMENT:
                logger.warning(
                    f"Order {order.id} left pending_payment while remote order {remote.id} was created",
                    extra={"order_id": order.id, "provider_order_id": remote.id},
                )
                raise InvalidState(f"Order is not in a payable state: {order.status}")

            PaymentIntent.objects.filter(order=order, status=IntentStatus.CREATED).update(
                status=IntentStatus.SUPERSEDED
            )
            intent = PaymentIntent.objects.create(
                order=order,
                user=user,
                amount=remote.amount,
                currency=remote.currency,
                gateway_order_id=remote.id,
                receipt=remote.receipt,
                status=IntentStatus.CREATED,
                metadata=remote.raw,
            )

            order.provider_order_id = remote.id
            order.payment_status = Order.PaymentStatus.PENDING
            save_guarded(order, Order.Status.PENDING_PAYMENT, ["provider_order_id", "payment_status"])

        logger.info(
            f"Payment Intent Created: {intent.gateway_order_id} for Order: {order.id}",
            extra={"order_id": order.id, "provider_order_id": intent.gateway_order_id},
        )
        return order, intent

    def verify_payment(self, order_id, user, provider_order_id, provider_payment_id, signature, payment_method=""):
        """
        Checkout callback. A bad signature is persisted as payment_failed
        before SignatureInvalid is raised.
        """
        with transaction.atomic():
            order = get_owned_order(order_id, user, for_update=True)

            if not order.provider_order_id:
                raise InvalidState("Payment has not been initiated for this order")

            if order.provider_order_id != provider_order_id:
                logger.warning(
                    f"Provider order mismatch for order {order.id}",
                    extra={"order_id": order.id, "provider_order_id": provider_order_id},
                )
                raise MismatchedProviderOrder("Invalid payment provider order ID")

            if (
                order.status == Order.Status.CONFIRMED
                and order.payment_status == Order.PaymentStatus.PAID
                and order.provider_payment_id == provider_payment_id
                and order.provider_signature == signature
            ):
                logger.info(f"Payment for order {order.id} already verified. Ignoring.", extra={"order_id": order.id})
                return order

            intents = PaymentIntent.objects.filter(order=order, gateway_order_id=provider_order_id)

            if order.status == Order.Status.CANCELLED and order.payment_status != Order.PaymentStatus.PAID:
                captured = self._capture_after_cancel(
                    order, intents, provider_payment_id, signature, payment_method
                )
                outcome = "captured_after_cancel" if captured else "not_payable"
            else:
                self._ensure_pending(order)

                if not self.gateway.verify_signature(provider_order_id, provider_payment_id, signature):
                    order.payment_status = Order.PaymentStatus.FAILED
                    order.payment_failure_reason = "Invalid signature"
                    transition(
                        order,
                        Order.Status.PAYMENT_FAILED,
                        "Payment verification failed: Invalid signature",
                        ["payment_status", "payment_failure_reason"],
                    )
                    intents.update(status=IntentStatus.FAILED)
                    outcome = "bad_signature"
                else:
                    self._mark_paid(order, provider_payment_id, signature, payment_method)
                    transition(
                        order,
                        Order.Status.CONFIRMED,
                        "Payment successful and order confirmed",
                        ["provider_payment_id", "provider_signature", "payment_status", "paid_at", "payment_method"],
                    )
                    intents.update(status=IntentStatus.PAID)
                    outcome = "confirmed"

        # Raised after commit so the recorded state survives
        if outcome == "bad_signature":
            logger.warning(
                f"Signature verification failed for order {order.id}",
                extra={"order_id": order.id, "provider_order_id": provider_order_id},
            )
            raise SignatureInvalid("Payment verification failed")
        if outcome == "captured_after_cancel":
            raise InvalidState("Order was cancelled before payment completed. A refund has been requested.")
        if outcome == "not_payable":
            raise InvalidState(f"Order is not in a payable state: {order.status}")

        logger.info(f"Payment verified for order {order.id}", extra={"order_id": order.id})
        return order

    @staticmethod
    def _mark_paid(order, provider_payment_id, signature, payment_method):
        order.provider_payment_id = provider_payment_id
        order.provider_signature = signature
        order.payment_status = Order.PaymentStatus.PAID
        order.paid_at = timezone.now()
        if payment_method:
            order.payment_method = payment_method

    def _capture_after_cancel(self, order, intents, provider_payment_id, signature, payment_method):
        """
        A checkout opened before the cancel can still be completed.
        An authentic capture is stored on the cancelled order and refunded.
        """
        if not self.gateway.verify_signature(order.provider_order_id, provider_payment_id, signature):
            return False

        self._mark_paid(order, provider_payment_id, signature, payment_method)
        save_guarded(
            order,
            Order.Status.CANCELLED,
            ["provider_payment_id", "provider_signature", "payment_status", "paid_at", "payment_method"],
        )
        intents.update(status=IntentStatus.PAID)
        OrderRefund.objects.create(
            order=order,
            amount=order.total,
            reason="Payment captured after cancellation",
            status=OrderRefund.Status.REQUESTED,
        )
        logger.warning(
            f"Payment {provider_payment_id} captured for cancelled order {order.id}; refund requested",
            extra={"order_id": order.id, "provider_order_id": order.provider_order_id},
        )
        return True

    @transaction.atomic
    def record_failure(self, order_id, user, reason=""):
        order = get_owned_order(order_id, user, for_update=True)
        self._ensure_pending(order)

        order.payment_status = Order.PaymentStatus.FAILED
        order.payment_failure_reason = (reason or "Payment failed")[:255]
        transition(
            order,
            Order.Status.PAYMENT_FAILED,
            f"Payment failed: {reason or 'Unknown error'}",
            ["payment_status", "payment_failure_reason"],
        )
        if order.provider_order_id:
            PaymentIntent.objects.filter(
                order=order, gateway_order_id=order.provider_order_id
            ).update(status=IntentStatus.FAILED)

        logger.info(f"Payment failure recorded for order {order.id}", extra={"order_id": order.id})
        return order

    def get_status(self, order_id, user):
        order = get_owned_order(order_id, user)
        return {
            "order_id": order.id,
            "order_number": order.order_number,
            "status": order.status,
            "payment_status": order.payment_status,
            "payment_method": order.payment_method,
            "provider_order_id": order.provider_order_id,
            "provider_payment_id": order.provider_payment_id,
            "paid_at": order.paid_at,
            "failure_reason": order.payment_failure_reason,
            "amount": order.total,
            "currency": settings.PAYMENT_CURRENCY,
        }


def payment_service():
    return PaymentService()
