"""
Service-level views.

Includes the health check endpoint for monitoring and load balancer checks.
"""

import logging

import redis
from django.conf import settings
from django.db import DatabaseError, connection
from django.db.models import Count
from django.http import JsonResponse

from catalog.models import Product

logger = logging.getLogger(__name__)


def get_redis_status() -> str:
    """
    Ping the Celery broker when it is Redis.

    Returns:
        "connected", "not_configured" or "error".
    """
    broker_url = getattr(settings, "CELERY_BROKER_URL", "") or ""
    if not broker_url.startswith(("redis://", "rediss://")):
        return "not_configured"

    try:
        client = redis.Redis.from_url(broker_url, socket_connect_timeout=2, socket_timeout=2)
        return "connected" if client.ping() else "error"
    except redis.RedisError as e:
        logger.warning(f"Redis health check failed: {e}")
        return "error"


def get_celery_worker_count() -> int:
    """
    Get the count of active Celery workers.

    Returns:
        int: Number of active workers, 0 if none answer.
    """
    from config.celery import app as celery_app

    try:
        active = celery_app.control.inspect(timeout=1.0).active()
    except Exception as e:
        logger.warning(f"Celery health check failed: {e}")
        return 0
    return len(active) if active else 0


def health_check(request):
    """
    Health check endpoint for the catalog service.

    Endpoint: GET /api/health/
    No authentication required (for load balancer checks).

    Response fields:
        - status: "healthy" or "unhealthy"
        - database: "connected" or "error"
        - redis: "connected", "not_configured" or "error"
        - celery_workers: integer count of active workers
        - products: record counts by enrichment status

    Returns:
        JsonResponse: HTTP 200 when healthy, HTTP 503 when the database is down
    """
    status = "healthy"
    http_status = 200

    database_status = "connected"
    products = {}
    try:
        connection.ensure_connection()
        rows = Product.objects.values("enrichment_status").annotate(total=Count("id"))
        products = {row["enrichment_status"]: row["total"] for row in rows}
    except DatabaseError as e:
        logger.error(f"Database health check failed: {e}")
        database_status = "error"
        status = "unhealthy"
        http_status = 503

    celery_workers = 0
    if getattr(settings, "HEALTH_CHECK_CELERY", False):
        celery_workers = get_celery_worker_count()

    response_data = {
        "status": status,
        "database": database_status,
        "redis": get_redis_status() if getattr(settings, "HEALTH_CHECK_REDIS", False) else "not_configured",
        "celery_workers": celery_workers,
        "products": products,
    }

    return JsonResponse(response_data, status=http_status)
