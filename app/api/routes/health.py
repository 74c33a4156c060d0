"""
Health check routes.

- /health: Liveness (always 200 while the app runs)
- /health/ready: Readiness (Redis and Supabase reachable)
"""
from fastapi import APIRouter, Response
import logging

from app.core.config import settings
from app.core.tasks import get_task_failure_counts
from app.core.timezone import iso_utc
from app.services.redis import check_redis_connection
from app.services.supabase import check_supabase_connection

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
async def health_check():
    """
    Checks that the API is up.
    Used by monitoring and load balancers.
    """
    return {
        "status": "healthy",
        "timestamp": iso_utc(),
        "service": "audience-campaigns",
        "environment": settings.ENVIRONMENT,
    }


@router.get("/health/ready")
async def readiness_check(response: Response):
    """
    Checks that the API can serve requests: Redis holds the delivery
    markers and Supabase holds everything else.
    """
    redis_ok = await check_redis_connection()
    database_ok = check_supabase_connection()

    if not (redis_ok and database_ok):
        response.status_code = 503
        logger.warning(f"Readiness degraded: redis={redis_ok}, database={database_ok}")

    return {
        "status": "ready" if redis_ok and database_ok else "degraded",
        "checks": {
            "database": "ok" if database_ok else "error",
            "redis": "ok" if redis_ok else "error",
        },
        "task_failures": get_task_failure_counts(),
    }
