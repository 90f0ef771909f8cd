"""
Health check endpoint for container orchestration.

GET /api/v1/health/
    Lightweight liveness/readiness check. Unauthenticated, fast (SELECT 1).
"""

from __future__ import annotations

import logging
from http import HTTPStatus

from django.db import DatabaseError
from django.db import connection
from django.http import JsonResponse
from django.utils import timezone
from django.views.decorators.http import require_GET

logger = logging.getLogger(__name__)


@require_GET
def health_check(request):
    """
    Returns:
        200 OK: Application is healthy
        503 Service Unavailable: Database connection failed

    Response format:
        {
            "status": "healthy" | "unhealthy",
            "database": "ok" | "error: <message>",
            "timestamp": "<iso8601>"
        }
    """
    result = {
        "status": "healthy",
        "database": "ok",
        "timestamp": timezone.now().isoformat(),
    }

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
    except DatabaseError as e:
        logger.warning("Health check failed: database error: %s", e)
        result["status"] = "unhealthy"
        result["database"] = f"error: {e}"
        return JsonResponse(result, status=HTTPStatus.SERVICE_UNAVAILABLE)

    return JsonResponse(result, status=HTTPStatus.OK)
