from django.db import models

from .order import Order


class OrderRefund(models.Model):
    """
    Refund *request* raised when a paid order is cancelled.
    Settlement happens outside this system; finance moves the status along.
    """

    class Status(models.TextChoices):
        REQUESTED = "requested", "Requested"
        APPROVED = "approved", "Approved"
        PROCESSED = "processed", "Processed"
        REJECTED = "rejected", "Rejected"

    order = models.OneToOneField(Order, related_name="refund", on_delete=models.CASCADE)

    amount = models.PositiveIntegerField(help_text="Paise")
    reason = models.TextField(blank=True)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.REQUESTED)

    created_at = models.DateTimeField(auto_now_add=True)
    processed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        indexes = [
            models.Index(fields=["status", "created_at"], name="refund_status_created_idx"),
        ]

    def __str__(self):
        return f"Refund for {self.order_id} ({self.status})"
