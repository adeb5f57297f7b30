import json
from django.contrib import admin
from django.utils.html import format_html
from .models import Order, OrderItem, OrderTimeline, OrderRating, OrderRefund


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = ('menu_item', 'name_snapshot', 'unit_price_snapshot', 'quantity', 'customizations', 'item_total')

    def has_add_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class OrderTimelineInline(admin.TabularInline):
    model = OrderTimeline
    extra = 0
    readonly_fields = ('timestamp', 'status', 'description')

    def has_add_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """
    Read-only: status changes go through the API so the tracking log stays complete.
    """
    list_display = (
        'order_number',
        'user',
        'restaurant',
        'status',
        'payment_status',
        'total',
        'created_at'
    )
    list_filter = ('status', 'payment_status', 'created_at')
    search_fields = ('id', 'user__username', 'provider_order_id', 'provider_payment_id')

    inlines = [OrderItemInline, OrderTimelineInline]

    readonly_fields = (
        'id',
        'order_number',
        'user',
        'restaurant',
        'status',
        'subtotal',
        'delivery_fee',
        'taxes',
        'discount',
        'total',
        'payment_status',
        'payment_method',
        'provider_order_id',
        'provider_payment_id',
        'paid_at',
        'payment_failure_reason',
        'formatted_delivery_address',
        'formatted_contact_info',
        'special_instructions',
        'estimated_delivery_time',
        'actual_delivery_time',
        'delivery_partner',
        'created_at',
        'updated_at',
    )

    fieldsets = (
        ('Order Details', {
            'fields': ('order_number', 'id', 'status', 'user', 'restaurant', 'special_instructions')
        }),
        ('Financials', {
            'fields': ('subtotal', 'delivery_fee', 'taxes', 'discount', 'total')
        }),
        ('Payment', {
            'fields': (
                'payment_status', 'payment_method', 'provider_order_id',
                'provider_payment_id', 'paid_at', 'payment_failure_reason',
            )
        }),
        ('Delivery Info', {
            'fields': (
                'formatted_delivery_address', 'formatted_contact_info',
                'estimated_delivery_time', 'actual_delivery_time', 'delivery_partner',
            )
        }),
        ('System Data', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    def has_add_permission(self, request):
        return False

    # --- JSON snapshots ---

    @admin.display(description="Delivery Address Snapshot")
    def formatted_delivery_address(self, obj):
        if not obj.delivery_address:
            return "-"
        return format_html("<pre>{}</pre>", json.dumps(obj.delivery_address, indent=2))

    @admin.display(description="Contact Info")
    def formatted_contact_info(self, obj):
        if not obj.contact_info:
            return "-"
        return format_html("<pre>{}</pre>", json.dumps(obj.contact_info, indent=2))


@admin.register(OrderRating)
class OrderRatingAdmin(admin.ModelAdmin):
    list_display = ('order', 'food', 'delivery', 'overall', 'rated_at')
    list_filter = ('overall',)
    readonly_fields = ('order', 'food', 'delivery', 'overall', 'review', 'rated_at')


@admin.register(OrderRefund)
class OrderRefundAdmin(admin.ModelAdmin):
    list_display = ('order', 'amount', 'status', 'created_at', 'processed_at')
    list_filter = ('status',)
    search_fields = ('order__id',)
    readonly_fields = ('order', 'amount', 'reason', 'created_at')
