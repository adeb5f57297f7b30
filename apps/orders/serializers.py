from rest_framework import serializers

from apps.catalog.serializers import RestaurantSummarySerializer
from apps.utils.validators import validate_lat_lng, validate_phone, validate_pincode
from .models import FULFILMENT_FLOW, Order, OrderItem, OrderRating, OrderRefund, OrderTimeline


# ------------------------------------------------------------------
# Input
# ------------------------------------------------------------------
class SelectedOptionSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=100)
    # Accepted for client compatibility; the catalog price is what gets charged.
    price = serializers.IntegerField(min_value=0, required=False)


class CustomizationInputSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=100)
    selected_options = SelectedOptionSerializer(many=True)


class OrderItemInputSerializer(serializers.Serializer):
    menu_item = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1, max_value=50)
    customizations = CustomizationInputSerializer(many=True, required=False, default=list)
    special_instructions = serializers.CharField(max_length=500, required=False, allow_blank=True, default="")


class CoordinatesSerializer(serializers.Serializer):
    latitude = serializers.FloatField()
    longitude = serializers.FloatField()

    def validate(self, attrs):
        try:
            validate_lat_lng(attrs["latitude"], attrs["longitude"])
        except ValueError as e:
            raise serializers.ValidationError(str(e))
        return attrs


class DeliveryAddressSerializer(serializers.Serializer):
    street = serializers.CharField(max_length=255)
    city = serializers.CharField(max_length=100)
    state = serializers.CharField(max_length=100)
    pincode = serializers.CharField(validators=[validate_pincode])
    landmark = serializers.CharField(max_length=255, required=False, allow_blank=True)
    coordinates = CoordinatesSerializer(required=False)


class ContactInfoSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=100)
    phone = serializers.CharField(validators=[validate_phone])


class CreateOrderSerializer(serializers.Serializer):
    restaurant = serializers.UUIDField()
    items = OrderItemInputSerializer(many=True, allow_empty=False)
    delivery_address = DeliveryAddressSerializer()
    contact_info = ContactInfoSerializer()
    special_instructions = serializers.CharField(max_length=500, required=False, allow_blank=True, default="")


class CancelOrderSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")


class RateOrderSerializer(serializers.Serializer):
    food = serializers.IntegerField(min_value=1, max_value=5)
    delivery = serializers.IntegerField(min_value=1, max_value=5)
    overall = serializers.IntegerField(min_value=1, max_value=5)
    review = serializers.CharField(max_length=1000, required=False, allow_blank=True, default="")


class DeliveryPartnerSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=100)
    phone = serializers.CharField(validators=[validate_phone])
    vehicle_number = serializers.CharField(max_length=20, required=False, allow_blank=True)


class UpdateOrderStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[s.value for s in FULFILMENT_FLOW[1:]])
    description = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    delivery_partner = DeliveryPartnerSerializer(required=False)


# ------------------------------------------------------------------
# Output
# ------------------------------------------------------------------
class OrderItemSerializer(serializers.ModelSerializer):
    menu_item = serializers.UUIDField(source="menu_item_id", read_only=True)
    name = serializers.CharField(source="name_snapshot", read_only=True)
    price = serializers.IntegerField(source="unit_price_snapshot", read_only=True)
    image_url = serializers.CharField(source="menu_item.image_url", read_only=True)

    class Meta:
        model = OrderItem
        fields = [
            "id", "menu_item", "name", "image_url", "price", "quantity",
            "customizations", "special_instructions", "item_total",
        ]


class OrderTimelineSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderTimeline
        fields = ["status", "timestamp", "description"]


class OrderRatingSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderRating
        fields = ["food", "delivery", "overall", "review", "rated_at"]


class OrderRefundSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderRefund
        fields = ["amount", "reason", "status", "created_at", "processed_at"]


class OrderListSerializer(serializers.ModelSerializer):
    restaurant = RestaurantSummarySerializer(read_only=True)
    item_count = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            "id", "order_number", "status", "payment_status", "restaurant",
            "total", "item_count", "estimated_delivery_time", "created_at",
        ]

    def get_item_count(self, obj):
        return sum(item.quantity for item in obj.items.all())


class OrderSerializer(serializers.ModelSerializer):
    restaurant = RestaurantSummarySerializer(read_only=True)
    items = OrderItemSerializer(many=True, read_only=True)
    status_display = serializers.CharField(source="get_status_display", read_only=True)
    order_summary = serializers.DictField(source="summary", read_only=True)
    payment_info = serializers.SerializerMethodField()
    tracking = OrderTimelineSerializer(source="timeline", many=True, read_only=True)
    rating = serializers.SerializerMethodField()
    refund = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            "id", "order_number", "status", "status_display", "restaurant", "items",
            "order_summary", "delivery_address", "contact_info", "special_instructions",
            "payment_info", "estimated_delivery_time", "actual_delivery_time",
            "delivery_partner", "tracking", "rating", "refund", "created_at", "updated_at",
        ]

    def get_payment_info(self, obj):
        # provider_signature is never exposed
        return {
            "method": obj.payment_method or None,
            "status": obj.payment_status,
            "provider_order_id": obj.provider_order_id or None,
            "provider_payment_id": obj.provider_payment_id or None,
            "paid_at": obj.paid_at,
            "failure_reason": obj.payment_failure_reason or None,
        }

    def get_rating(self, obj):
        if not hasattr(obj, "rating"):
            return None
        return OrderRatingSerializer(obj.rating).data

    def get_refund(self, obj):
        if not hasattr(obj, "refund"):
            return None
        return OrderRefundSerializer(obj.refund).data


class TrackingSerializer(serializers.Serializer):
    status = serializers.CharField()
    estimated_delivery_time = serializers.DateTimeField()
    actual_delivery_time = serializers.DateTimeField(allow_null=True)
    delivery_partner = serializers.JSONField(allow_null=True)
    timeline = OrderTimelineSerializer(many=True)
