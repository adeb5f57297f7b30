import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Restaurant",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("name", models.CharField(max_length=100)),
                ("image_url", models.URLField(blank=True)),
                ("delivery_time_minutes", models.PositiveIntegerField(default=30)),
                ("delivery_fee", models.PositiveIntegerField(default=0, help_text="Paise")),
                ("minimum_order", models.PositiveIntegerField(default=0, help_text="Paise")),
                ("is_active", models.BooleanField(default=True)),
                ("is_approved", models.BooleanField(default=False)),
            ],
            options={
                "ordering": ["name"],
                "indexes": [
                    models.Index(fields=["is_active", "is_approved"], name="restaurant_active_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="MenuItem",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("name", models.CharField(max_length=100)),
                ("image_url", models.URLField(blank=True)),
                ("price", models.PositiveIntegerField(help_text="Paise")),
                ("is_available", models.BooleanField(default=True)),
                ("customizations", models.JSONField(blank=True, default=list)),
                (
                    "restaurant",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="menu_items",
                        to="catalog.restaurant",
                    ),
                ),
            ],
            options={
                "ordering": ["name"],
                "indexes": [
                    models.Index(fields=["restaurant", "is_available"], name="menuitem_rest_avail_idx"),
                ],
            },
        ),
    ]
