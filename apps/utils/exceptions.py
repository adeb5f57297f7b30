from rest_framework.views import exception_handler
from rest_framework.response import Response
from rest_framework import status
from rest_framework.exceptions import ValidationError
import logging

logger = logging.getLogger(__name__)


class BusinessLogicException(Exception):
    """
    Raised when a domain rule is violated (e.g. 'Order cannot be cancelled').
    Every subclass carries a stable machine-checkable `code` and the HTTP status
    the API layer should answer with.
    """
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "business_error"

    def __init__(self, message, code=None):
        self.message = message
        self.code = code or self.default_code
        super().__init__(message)


class NotFound(BusinessLogicException):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = "not_found"


class Forbidden(BusinessLogicException):
    status_code = status.HTTP_403_FORBIDDEN
    default_code = "forbidden"


class InvalidItem(BusinessLogicException):
    default_code = "invalid_item"


class ItemRestaurantMismatch(BusinessLogicException):
    default_code = "item_restaurant_mismatch"


class BelowMinimumOrder(BusinessLogicException):
    default_code = "below_minimum_order"


class InvalidState(BusinessLogicException):
    status_code = status.HTTP_409_CONFLICT
    default_code = "invalid_state"


class MismatchedProviderOrder(BusinessLogicException):
    default_code = "mismatched_provider_order"


class SignatureInvalid(BusinessLogicException):
    default_code = "signature_invalid"


class UpstreamUnavailable(BusinessLogicException):
    """
    Catalog or payment gateway failed / timed out. Transient; the caller decides
    whether a retry is safe.
    """
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_code = "upstream_unavailable"


class DuplicateRequest(BusinessLogicException):
    status_code = status.HTTP_409_CONFLICT
    default_code = "duplicate_request"


def error_payload(message, code, **extra):
    payload = {"success": False, "code": code, "error": message}
    payload.update(extra)
    return payload


def custom_exception_handler(exc, context):
    # Handle domain errors first, they never reach DRF's default handler
    if isinstance(exc, BusinessLogicException):
        return Response(error_payload(exc.message, exc.code), status=exc.status_code)

    response = exception_handler(exc, context)

    # If response is None, it's an unhandled server error (500)
    if response is None:
        logger.error(f"Unhandled Exception: {exc}", exc_info=True)
        return Response(
            error_payload("Internal Server Error", "server_error"),
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    if isinstance(exc, ValidationError):
        response.data = error_payload(
            "Invalid request data", "validation_error", details=response.data
        )
        return response

    detail = response.data.get("detail", "") if isinstance(response.data, dict) else response.data
    code = getattr(exc, "default_code", "error")
    response.data = error_payload(str(detail), code)
    return response
