from django.db import models
from django.conf import settings

from apps.utils.models import TimestampedModel
from apps.utils.utils import order_number


class Order(TimestampedModel):
    class Status(models.TextChoices):
        PENDING_PAYMENT = "pending_payment", "Pending Payment"
        PAYMENT_FAILED = "payment_failed", "Payment Failed"
        CONFIRMED = "confirmed", "Confirmed (Paid)"
        PREPARING = "preparing", "Preparing"
        READY_FOR_PICKUP = "ready_for_pickup", "Ready for Pickup"
        OUT_FOR_DELIVERY = "out_for_delivery", "Out for Delivery"
        DELIVERED = "delivered", "Delivered"
        CANCELLED = "cancelled", "Cancelled"

    class PaymentStatus(models.TextChoices):
        PENDING = "pending", "Pending"
        PAID = "paid", "Paid"
        FAILED = "failed", "Failed"
        REFUNDED = "refunded", "Refunded"

    class PaymentMethod(models.TextChoices):
        CARD = "card", "Card"
        NETBANKING = "netbanking", "Net Banking"
        WALLET = "wallet", "Wallet"
        UPI = "upi", "UPI"

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='orders')
    restaurant = models.ForeignKey("catalog.Restaurant", on_delete=models.PROTECT, related_name='orders')

    # Snapshots (JSON) to prevent historical drift
    delivery_address = models.JSONField()
    contact_info = models.JSONField()
    special_instructions = models.TextField(blank=True)

    # Order summary, paise. Written only from pricing.compute_summary()
    subtotal = models.PositiveIntegerField()
    delivery_fee = models.PositiveIntegerField()
    taxes = models.PositiveIntegerField()
    discount = models.PositiveIntegerField(default=0)
    total = models.PositiveIntegerField()

    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING_PAYMENT, db_index=True)

    # Payment sub-record
    provider_order_id = models.CharField(max_length=100, blank=True, db_index=True)
    provider_payment_id = models.CharField(max_length=100, blank=True)
    provider_signature = models.CharField(max_length=255, blank=True)
    payment_method = models.CharField(max_length=20, choices=PaymentMethod.choices, blank=True)
    payment_status = models.CharField(
        max_length=20, choices=PaymentStatus.choices, default=PaymentStatus.PENDING, db_index=True
    )
    paid_at = models.DateTimeField(null=True, blank=True)
    payment_failure_reason = models.CharField(max_length=255, blank=True)

    estimated_delivery_time = models.DateTimeField()
    actual_delivery_time = models.DateTimeField(null=True, blank=True)
    delivery_partner = models.JSONField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["user", "-created_at"], name="order_user_created_idx"),
            models.Index(fields=["restaurant", "-created_at"], name="order_rest_created_idx"),
        ]

    def __str__(self):
        return f"{self.order_number} [{self.status}]"

    @property
    def order_number(self):
        return order_number(self.id)

    @property
    def summary(self):
        return {
            "subtotal": self.subtotal,
            "delivery_fee": self.delivery_fee,
            "taxes": self.taxes,
            "discount": self.discount,
            "total": self.total,
        }

    @property
    def can_cancel(self):
        return can_transition(self.status, self.Status.CANCELLED)


# Status -> statuses it may move to. Terminal states map to an empty set.
ALLOWED_TRANSITIONS = {
    Order.Status.PENDING_PAYMENT: {
        Order.Status.CONFIRMED,
        Order.Status.PAYMENT_FAILED,
        Order.Status.CANCELLED,
    },
    Order.Status.CONFIRMED: {Order.Status.PREPARING, Order.Status.CANCELLED},
    Order.Status.PREPARING: {Order.Status.READY_FOR_PICKUP, Order.Status.CANCELLED},
    Order.Status.READY_FOR_PICKUP: {Order.Status.OUT_FOR_DELIVERY},
    Order.Status.OUT_FOR_DELIVERY: {Order.Status.DELIVERED},
    Order.Status.DELIVERED: set(),
    Order.Status.PAYMENT_FAILED: set(),
    Order.Status.CANCELLED: set(),
}

# Edges restaurant / delivery staff may drive via the status endpoint
FULFILMENT_FLOW = [
    Order.Status.CONFIRMED,
    Order.Status.PREPARING,
    Order.Status.READY_FOR_PICKUP,
    Order.Status.OUT_FOR_DELIVERY,
    Order.Status.DELIVERED,
]


def can_transition(current, target):
    return Order.Status(target) in ALLOWED_TRANSITIONS.get(Order.Status(current), set())
