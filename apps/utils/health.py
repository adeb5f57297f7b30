import logging

from django.conf import settings
from django.core.cache import cache
from django.db import connection, DatabaseError
from django.http import JsonResponse

logger = logging.getLogger(__name__)


def health_check(request):
    """
    Liveness for the load balancer. The database is required; a cache miss only
    degrades (idempotency keys and throttles fall back to per-process state).
    """
    components = {"db": "unknown", "cache": "unknown", "payments_mode": settings.PAYMENTS_MODE}
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
        components["db"] = "ok"
    except DatabaseError as e:
        logger.error(f"Health check: database unavailable: {e}")
        components["db"] = "down"
        return JsonResponse({"status": "error", "components": components}, status=503)

    cache.set("health:ping", "pong", timeout=5)
    components["cache"] = "ok" if cache.get("health:ping") == "pong" else "degraded"

    return JsonResponse({"status": "ok", "components": components}, status=200)
