import logging
from django.utils.deprecation import MiddlewareMixin
from django.http import JsonResponse

from .exceptions import BusinessLogicException, error_payload

logger = logging.getLogger(__name__)


class GlobalExceptionMiddleware(MiddlewareMixin):
    """
    Last line of defense for non-DRF views.
    """
    def process_exception(self, request, exception):
        if not request.path.startswith('/api/'):
            return None  # Let Django's default 500 handler work for HTML

        if isinstance(exception, BusinessLogicException):
            return JsonResponse(
                error_payload(exception.message, exception.code),
                status=exception.status_code,
            )

        logger.exception(f"Unhandled Middleware Exception: {exception}")
        return JsonResponse(error_payload("Internal System Error", "server_error"), status=500)
