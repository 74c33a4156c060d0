"""Tests for the Redis helpers."""
import pytest
from unittest.mock import AsyncMock, patch

from app.services import redis as redis_service


@pytest.mark.asyncio
async def test_check_connection_ok():
    with patch.object(redis_service, "redis_client") as client:
        client.ping = AsyncMock(return_value=True)
        assert await redis_service.check_redis_connection() is True


@pytest.mark.asyncio
async def test_check_connection_error():
    with patch.object(redis_service, "redis_client") as client:
        client.ping = AsyncMock(side_effect=ConnectionError("refused"))
        assert await redis_service.check_redis_connection() is False


@pytest.mark.asyncio
async def test_close_swallows_errors():
    with patch.object(redis_service, "redis_client") as client:
        client.aclose = AsyncMock(side_effect=RuntimeError("already closed"))
        await redis_service.close_redis_connection()
        client.aclose.assert_awaited_once()
