from django.db import models
from django.conf import settings
from apps.orders.models import Order
from apps.utils.models import TimestampedModel


class IntentStatus(models.TextChoices):
    CREATED = "created", "Created"
    PAID = "paid", "Paid"
    FAILED = "failed", "Failed"
    SUPERSEDED = "superseded", "Superseded"


class PaymentIntent(TimestampedModel):
    """
    One row per provider-side order created for an Order.
    Keeps an audit trail of every remote order, including abandoned ones.
    """
    order = models.ForeignKey(Order, on_delete=models.PROTECT, related_name="payment_intents")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="payment_intents")

    amount = models.PositiveIntegerField(help_text="Paise")
    currency = models.CharField(max_length=3, default="INR")

    # Gateway specific IDs (e.g., 'order_N7sl2...')
    gateway_order_id = models.CharField(max_length=100, unique=True, db_index=True)
    receipt = models.CharField(max_length=64, blank=True)
    status = models.CharField(max_length=20, choices=IntentStatus.choices, default=IntentStatus.CREATED)

    metadata = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"Intent {self.gateway_order_id} - {self.status}"
