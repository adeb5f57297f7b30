from django.contrib import admin
from .models import PaymentIntent


@admin.register(PaymentIntent)
class PaymentIntentAdmin(admin.ModelAdmin):
    list_display = ('gateway_order_id', 'order', 'amount', 'currency', 'status', 'created_at')
    list_filter = ('status', 'created_at')
    search_fields = ('gateway_order_id', 'order__id', 'receipt')
    readonly_fields = ('order', 'user', 'amount', 'currency', 'gateway_order_id', 'receipt', 'metadata')
