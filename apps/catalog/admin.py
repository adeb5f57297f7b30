# apps/catalog/admin.py
from django.contrib import admin
from .models import Restaurant, MenuItem


class MenuItemInline(admin.TabularInline):
    model = MenuItem
    extra = 0
    fields = ("name", "price", "is_available")


@admin.register(Restaurant)
class RestaurantAdmin(admin.ModelAdmin):
    list_display = (
        "name",
        "delivery_fee",
        "minimum_order",
        "is_active",
        "is_approved",
    )
    search_fields = ("name",)
    list_filter = ("is_active", "is_approved")
    list_editable = ("is_active", "is_approved")
    readonly_fields = ("created_at", "updated_at")
    inlines = [MenuItemInline]


@admin.register(MenuItem)
class MenuItemAdmin(admin.ModelAdmin):
    list_display = ("name", "restaurant", "price", "is_available")
    search_fields = ("name", "restaurant__name")
    list_filter = ("restaurant", "is_available")
    list_editable = ("price", "is_available")
    readonly_fields = ("created_at", "updated_at")
