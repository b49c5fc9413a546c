"""Per-user subscription locks using Redis.

This module provides:
- One lock per user id, so two payments for the same user never interleave
- Lock acquisition with a bounded wait
- Automatic lock expiration if a worker dies while holding it
"""

import asyncio
import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

import redis.asyncio as redis

from premium_billing.core.exceptions import LockTimeoutError


class SubscriptionLock:
    """Manages distributed per-user locks using Redis SET NX."""

    LOCK_PREFIX = "premium:lock:subscription:"
    DEFAULT_TTL = 30
    POLL_INTERVAL = 0.05

    def __init__(self, redis_client: redis.Redis, ttl: int | None = None):
        self.redis = redis_client
        self.ttl = ttl or self.DEFAULT_TTL

    def _lock_key(self, user_id: str) -> str:
        return f"{self.LOCK_PREFIX}{user_id}"

    async def acquire(self, user_id: str, owner: str) -> bool:
        """Attempt to take the lock for a user.

        Returns:
            True if acquired, False if another owner holds it
        """
        lock_value = f"{owner}:{datetime.now(UTC).isoformat()}"
        result = await self.redis.set(self._lock_key(user_id), lock_value, nx=True, ex=self.ttl)
        return bool(result)

    async def release(self, user_id: str, owner: str) -> bool:
        """Release the lock if it is still held by this owner."""
        key = self._lock_key(user_id)
        current = await self.redis.get(key)
        if isinstance(current, bytes):
            current = current.decode()
        if current and current.startswith(f"{owner}:"):
            await self.redis.delete(key)
            return True
        return False

    async def is_locked(self, user_id: str) -> bool:
        return bool(await self.redis.exists(self._lock_key(user_id)))

    @asynccontextmanager
    async def hold(self, user_id: str, wait_timeout: float = 10.0) -> AsyncGenerator[str, None]:
        """Hold the user's lock for the duration of the block.

        Waits up to ``wait_timeout`` seconds for a concurrent holder to finish.

        Raises:
            LockTimeoutError: if the lock could not be acquired in time

        Example:
            async with lock.hold(user_id):
                # read-modify-write the subscription record
                ...
        """
        owner = uuid.uuid4().hex
        loop = asyncio.get_running_loop()
        deadline = loop.time() + wait_timeout

        while not await self.acquire(user_id, owner):
            if loop.time() >= deadline:
                raise LockTimeoutError(user_id, wait_timeout)
            await asyncio.sleep(self.POLL_INTERVAL)

        try:
            yield owner
        finally:
            await self.release(user_id, owner)
