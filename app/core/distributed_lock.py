"""
Redis-backed distributed lock.

Delivery runs use it as their in-flight marker: the key `lock:delivery:{id}`
exists while some process is stepping that campaign. The owner refreshes
the TTL on every step, so a crashed process frees the campaign after at
most one TTL.

Usage:
    async with DistributedLock("delivery:42"):
        await critical_section()
"""
import asyncio
import uuid
import logging
from typing import Optional

from app.services.redis import redis_client

logger = logging.getLogger(__name__)

# Owner-only operations: KEYS[1] = lock key, ARGV[1] = owner token
RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""

REFRESH_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("expire", KEYS[1], ARGV[2])
end
return 0
"""


class LockNotAcquiredError(Exception):
    """Raised by the context manager when the lock is held elsewhere."""


class DistributedLock:
    """
    Single-instance Redis lock (SET NX EX plus owner-checked scripts).

    Acquisition fails closed: a Redis error reads as "not acquired".
    `is_locked` fails open, since it only feeds advisory checks.
    """

    def __init__(
        self,
        key: str,
        timeout: int = 300,
        blocking: bool = False,
        blocking_timeout: float = 30,
        client=None,
    ):
        self.key = f"lock:{key}"
        self.timeout = timeout
        self.blocking = blocking
        self.blocking_timeout = blocking_timeout
        self.token = uuid.uuid4().hex
        self.client = client or redis_client
        self._acquired = False

    @property
    def acquired(self) -> bool:
        return self._acquired

    async def acquire(self) -> bool:
        if not self.blocking:
            return await self._try_acquire()

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.blocking_timeout
        while loop.time() < deadline:
            if await self._try_acquire():
                return True
            await asyncio.sleep(0.1)
        return False

    async def _try_acquire(self) -> bool:
        try:
            self._acquired = bool(
                await self.client.set(self.key, self.token, nx=True, ex=self.timeout)
            )
        except Exception as e:
            logger.error(f"Could not acquire {self.key}: {e}")
            self._acquired = False
        if self._acquired:
            logger.debug(f"Acquired {self.key}")
        return self._acquired

    async def is_locked(self) -> bool:
        """Whether any process currently holds the key."""
        try:
            return bool(await self.client.exists(self.key))
        except Exception as e:
            logger.error(f"Could not read {self.key}: {e}")
            return False

    async def refresh(self, ttl: Optional[int] = None) -> bool:
        """
        Resets the TTL while still the owner.

        Returns:
            False when the lock expired or was taken over
        """
        if not self._acquired:
            return False
        try:
            result = await self.client.eval(
                REFRESH_SCRIPT, 1, self.key, self.token, ttl or self.timeout
            )
        except Exception as e:
            logger.error(f"Could not refresh {self.key}: {e}")
            return False
        if result != 1:
            logger.warning(f"Lost ownership of {self.key}")
            return False
        return True

    async def release(self) -> bool:
        """
        Deletes the key if still the owner.

        Returns:
            True if deleted (or never held), False otherwise
        """
        if not self._acquired:
            return True
        self._acquired = False
        try:
            released = await self.client.eval(RELEASE_SCRIPT, 1, self.key, self.token) == 1
        except Exception as e:
            logger.error(f"Could not release {self.key}: {e}")
            return False
        if not released:
            logger.warning(f"{self.key} expired before release")
        return released

    async def __aenter__(self):
        if not await self.acquire():
            raise LockNotAcquiredError(f"Could not acquire lock: {self.key}")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.release()
        return False
