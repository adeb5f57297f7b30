import re
from rest_framework import serializers


def validate_phone(value):
    pattern = r"^[0-9]{10}$"
    if not re.match(pattern, str(value)):
        raise serializers.ValidationError("Please enter a valid 10-digit phone number.")
    return value


def validate_pincode(value):
    pattern = r"^[0-9]{6}$"
    if not re.match(pattern, str(value)):
        raise serializers.ValidationError("Please enter a valid 6-digit pincode.")
    return value


def validate_lat_lng(lat, lng):
    if not (-90 <= lat <= 90):
        raise ValueError("Latitude must be between -90 and 90.")
    if not (-180 <= lng <= 180):
        raise ValueError("Longitude must be between -180 and 180.")
