"""
Core views providing infrastructure endpoints and shared response helpers.

- health_check: liveness/readiness probe (database, cache)
- error_response: render a BaseApplicationError as a DRF Response
"""

import logging

from django.db import connection
from django.http import JsonResponse
from rest_framework.response import Response

from core.exceptions import BaseApplicationError

logger = logging.getLogger(__name__)


def error_response(exc: BaseApplicationError) -> Response:
    """
    Build the standard error body for a domain error.

    The status comes from the exception class (validation 400,
    permission 403, not found 404, conflict 409, external 502).
    """
    return Response(exc.to_dict(), status=exc.http_status)


def health_check(request):
    """
    Health check endpoint for monitoring and orchestration.

    Returns:
        JsonResponse with status and component health:
        - status: "healthy" or "unhealthy"
        - database: "connected" or "disconnected"
        - cache: "connected" or "disconnected"

    HTTP Status Codes:
        200: Database reachable (cache problems only degrade)
        503: Database unreachable
    """
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "cache": "unknown",
    }
    is_healthy = True

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        health_status["database"] = "connected"
    except Exception:
        logger.exception("Health check: database unreachable")
        health_status["database"] = "disconnected"
        health_status["status"] = "unhealthy"
        is_healthy = False

    # Redis also backs the escrow locks, so report it, but do not fail
    # the probe over it.
    try:
        from django.core.cache import cache

        cache.set("health_check", "ok", timeout=1)
        if cache.get("health_check") == "ok":
            health_status["cache"] = "connected"
        else:
            health_status["cache"] = "disconnected"
    except Exception:
        logger.warning("Health check: cache unreachable", exc_info=True)
        health_status["cache"] = "disconnected"

    status_code = 200 if is_healthy else 503

    return JsonResponse(health_status, status=status_code)
