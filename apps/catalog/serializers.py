# apps/catalog/serializers.py
from rest_framework import serializers
from .models import Restaurant


class RestaurantSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = Restaurant
        fields = ["id", "name", "image_url", "delivery_time_minutes"]
