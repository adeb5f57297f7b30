# apps/catalog/models.py
from django.db import models

from apps.utils.models import TimestampedModel


class Restaurant(TimestampedModel):
    """
    Restaurant as seen by the order core.

    NOTE:
    - Money fields are integers in minor units (paise).
    - is_active + is_approved dono True hone chahiye tabhi orders accept honge.
    """
    name = models.CharField(max_length=100)
    image_url = models.URLField(blank=True)
    delivery_time_minutes = models.PositiveIntegerField(default=30)

    delivery_fee = models.PositiveIntegerField(default=0, help_text="Paise")
    minimum_order = models.PositiveIntegerField(default=0, help_text="Paise")

    is_active = models.BooleanField(default=True)
    is_approved = models.BooleanField(default=False)

    class Meta:
        ordering = ["name"]
        indexes = [
            models.Index(fields=["is_active", "is_approved"], name="restaurant_active_idx"),
        ]

    def __str__(self):
        return self.name

    @property
    def is_accepting_orders(self):
        return self.is_active and self.is_approved


class MenuItem(TimestampedModel):
    """
    Sellable dish. `customizations` shape:
        [{"name": "Size", "options": [{"name": "Large", "price": 5000}],
          "is_required": false, "allow_multiple": false}]
    """
    restaurant = models.ForeignKey(
        Restaurant,
        on_delete=models.CASCADE,
        related_name="menu_items",
    )
    name = models.CharField(max_length=100)
    image_url = models.URLField(blank=True)
    price = models.PositiveIntegerField(help_text="Paise")
    is_available = models.BooleanField(default=True)
    customizations = models.JSONField(default=list, blank=True)

    class Meta:
        ordering = ["name"]
        indexes = [
            models.Index(fields=["restaurant", "is_available"], name="menuitem_rest_avail_idx"),
        ]

    def __str__(self):
        return f"{self.name} ({self.restaurant_id})"

    def option_price(self, group_name, option_name):
        """
        Catalog price of a customization option, or None if the option doesn't exist.
        """
        for group in self.customizations or []:
            if group.get("name") != group_name:
                continue
            for option in group.get("options", []):
                if option.get("name") == option_name:
                    return int(option.get("price") or 0)
        return None
