"""Simple health and readiness endpoints."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, status
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from adinsight.core.config import get_settings
from adinsight.db.session import engine
from adinsight.utils.redis_client import create_redis_client

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/health", tags=["health"])

SERVICE_NAME = "ad-insight-api"


@router.get("/live", summary="Liveness probe")
async def live() -> dict[str, str]:
    """Indicates API process is running."""
    return {"status": "ok", "service": SERVICE_NAME}


@router.get("/ready", summary="Readiness probe")
async def ready() -> dict[str, Any]:
    """Check the database and Redis (cache, locks and, in Celery mode, the broker).

    Returns 503 with per-dependency details when either is unreachable.
    """
    settings = get_settings()
    checks: dict[str, Any] = {
        "status": "ok",
        "service": SERVICE_NAME,
        "queue_backend": settings.queue_backend,
        "checks": {},
    }
    all_healthy = True

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1")).fetchone()
        checks["checks"]["database"] = {
            "status": "healthy",
            "message": "Database connection successful",
        }
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}", exc_info=True)
        checks["checks"]["database"] = {
            "status": "unhealthy",
            "message": f"Database connection failed: {str(e)}",
        }
        all_healthy = False

    try:
        redis_client = create_redis_client(
            settings.redis_url, decode_responses=True, socket_connect_timeout=2
        )
        redis_client.ping()
        redis_client.close()
        checks["checks"]["redis"] = {
            "status": "healthy",
            "message": "Redis connection successful",
        }
    except RedisError as e:
        # The cache degrades without Redis; Celery mode cannot run without it
        logger.error(f"Redis health check failed: {e}", exc_info=True)
        checks["checks"]["redis"] = {
            "status": "unhealthy",
            "message": f"Redis connection failed: {str(e)}",
        }
        if settings.queue_backend == "celery":
            all_healthy = False

    if not all_healthy:
        checks["status"] = "unhealthy"
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=checks,
        )

    return checks
