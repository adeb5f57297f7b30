from django.db import models
from .order import Order


class OrderItem(models.Model):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='items')
    menu_item = models.ForeignKey("catalog.MenuItem", on_delete=models.PROTECT, related_name='order_items')

    # Snapshot fields (Critical for audit)
    name_snapshot = models.CharField(max_length=255)
    unit_price_snapshot = models.PositiveIntegerField()

    quantity = models.PositiveIntegerField()
    # [{"name": "Size", "selected_options": [{"name": "Large", "price": 5000}]}]
    customizations = models.JSONField(default=list, blank=True)
    special_instructions = models.TextField(blank=True)
    item_total = models.PositiveIntegerField()

    class Meta:
        ordering = ["id"]

    def __str__(self):
        return f"{self.quantity}x {self.name_snapshot}"
