# apps/utils/tests.py
import json
import logging

from django.test import SimpleTestCase, TestCase, override_settings
from django.urls import reverse
from rest_framework.exceptions import NotAuthenticated, ValidationError
from rest_framework.test import APIClient

from .exceptions import InvalidState, NotFound, UpstreamUnavailable, custom_exception_handler
from .logging import JSONFormatter
from .utils import order_number
from .validators import validate_lat_lng, validate_phone, validate_pincode


class ValidatorTests(SimpleTestCase):
    def test_phone_validator(self):
        self.assertEqual(validate_phone("9876543210"), "9876543210")
        with self.assertRaises(ValidationError):
            validate_phone("123")  # Invalid
        with self.assertRaises(ValidationError):
            validate_phone("+919876543210")

    def test_pincode_validator(self):
        self.assertEqual(validate_pincode("560001"), "560001")
        with self.assertRaises(ValidationError):
            validate_pincode("5600")

    def test_lat_lng_validator(self):
        # Valid coordinates
        validate_lat_lng(12.9716, 77.5946)

        # Invalid Latitude
        with self.assertRaises(ValueError):
            validate_lat_lng(91.0, 77.5946)

        # Invalid Longitude
        with self.assertRaises(ValueError):
            validate_lat_lng(12.9716, 181.0)


class OrderNumberTests(SimpleTestCase):
    def test_uses_last_eight_hex_chars(self):
        self.assertEqual(order_number("0b6e1f0c-3a1d-4c55-9f3a-2c9d9f3a12bc"), "ORD9F3A12BC")


class ExceptionHandlerTests(SimpleTestCase):
    def test_business_errors_use_envelope_and_status(self):
        response = custom_exception_handler(InvalidState("Order cannot be cancelled at this stage"), {})
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data, {
            "success": False,
            "code": "invalid_state",
            "error": "Order cannot be cancelled at this stage",
        })

        self.assertEqual(custom_exception_handler(NotFound("Order not found"), {}).status_code, 404)
        self.assertEqual(custom_exception_handler(UpstreamUnavailable("down"), {}).status_code, 503)

    def test_validation_errors_keep_field_details(self):
        response = custom_exception_handler(ValidationError({"items": ["This list may not be empty."]}), {})
        self.assertEqual(response.status_code, 400)
        self.assertFalse(response.data["success"])
        self.assertEqual(response.data["code"], "validation_error")
        self.assertIn("items", response.data["details"])

    def test_drf_errors_are_wrapped(self):
        response = custom_exception_handler(NotAuthenticated(), {})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.data["code"], "not_authenticated")

    def test_unknown_errors_become_500(self):
        with self.assertLogs("apps.utils.exceptions", level="ERROR"):
            response = custom_exception_handler(RuntimeError("boom"), {})
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.data["code"], "server_error")


class JSONFormatterTests(SimpleTestCase):
    def test_scrubs_secrets_and_keeps_context(self):
        record = logging.LogRecord(
            "apps.payments", logging.INFO, __file__, 1,
            {"razorpay_signature": "abc", "amount": 100}, None, None,
        )
        record.order_id = "o-1"
        payload = json.loads(JSONFormatter().format(record))

        self.assertIn("***REDACTED***", payload["msg"])
        self.assertNotIn("abc", payload["msg"])
        self.assertEqual(payload["order_id"], "o-1")


class HealthAndInfoTests(TestCase):
    def setUp(self):
        self.client = APIClient()

    def test_health_check(self):
        response = self.client.get(reverse("health"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["components"]["db"], "ok")

    @override_settings(PAYMENTS_MODE="simulation", RAZORPAY_KEY_ID="rzp_test_public")
    def test_server_info_is_public(self):
        response = self.client.get(reverse("server-info"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["payments_mode"], "simulation")
        self.assertEqual(response.data["razorpay_key_id"], "rzp_test_public")
