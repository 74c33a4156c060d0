"""
Redis client shared by the delivery in-flight markers.
"""
import logging

import redis.asyncio as redis

from app.core.config import settings

logger = logging.getLogger(__name__)

# Connects lazily on the first command
redis_client = redis.from_url(
    settings.REDIS_URL,
    encoding="utf-8",
    decode_responses=True,
    socket_connect_timeout=settings.REDIS_CONNECT_TIMEOUT,
)


async def check_redis_connection() -> bool:
    """Readiness check: True when a PING round-trips."""
    try:
        return bool(await redis_client.ping())
    except Exception as e:
        logger.error(f"Redis ping failed ({settings.REDIS_URL}): {e}")
        return False


async def close_redis_connection() -> None:
    """Closes the pool on shutdown; errors are only logged."""
    try:
        await redis_client.aclose()
    except Exception as e:
        logger.warning(f"Error closing Redis connection: {e}")
