from django.conf import settings
from rest_framework import serializers

from apps.orders.models import Order
from .models import PaymentIntent


class CreatePaymentOrderSerializer(serializers.Serializer):
    order_id = serializers.UUIDField()


class VerifyPaymentSerializer(serializers.Serializer):
    # Field names follow the checkout widget's success callback
    order_id = serializers.UUIDField()
    razorpay_order_id = serializers.CharField(max_length=100)
    razorpay_payment_id = serializers.CharField(max_length=100)
    razorpay_signature = serializers.CharField(max_length=255)
    method = serializers.ChoiceField(choices=Order.PaymentMethod.choices, required=False)


class PaymentFailedSerializer(serializers.Serializer):
    order_id = serializers.UUIDField()
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")


class PaymentIntentSerializer(serializers.ModelSerializer):
    key_id = serializers.SerializerMethodField()

    class Meta:
        model = PaymentIntent
        fields = ['id', 'gateway_order_id', 'amount', 'currency', 'receipt', 'status', 'key_id']

    def get_key_id(self, obj):
        # Public key for the frontend SDK
        return settings.RAZORPAY_KEY_ID


class PaymentStatusSerializer(serializers.Serializer):
    order_id = serializers.UUIDField()
    order_number = serializers.CharField()
    status = serializers.CharField()
    payment_status = serializers.CharField()
    payment_method = serializers.CharField(allow_blank=True)
    provider_order_id = serializers.CharField(allow_blank=True)
    provider_payment_id = serializers.CharField(allow_blank=True)
    paid_at = serializers.DateTimeField(allow_null=True)
    failure_reason = serializers.CharField(allow_blank=True)
    amount = serializers.IntegerField()
    currency = serializers.CharField()
