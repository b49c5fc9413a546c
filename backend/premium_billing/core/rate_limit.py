"""Fixed-window request rate limiting backed by Redis counters."""

from datetime import UTC, datetime

from redis.asyncio import Redis


class RateLimiter:
    """Count requests per client in fixed windows (e.g. 100 per 15 minutes)."""

    KEY_PREFIX = "premium:ratelimit:"

    def __init__(self, redis: Redis, limit: int, window_seconds: int):
        self.redis = redis
        self.limit = limit
        self.window_seconds = window_seconds

    def _window_start(self, now: datetime) -> int:
        epoch = int(now.timestamp())
        return epoch - (epoch % self.window_seconds)

    async def hit(self, client_key: str, now: datetime | None = None) -> tuple[bool, int, int]:
        """Record one request for the client.

        Args:
            client_key: Client identifier (usually the remote address)
            now: Current time (for deterministic testing)

        Returns:
            Tuple of (allowed, remaining, reset_epoch)
        """
        now = now or datetime.now(UTC)
        window_start = self._window_start(now)
        reset_at = window_start + self.window_seconds
        key = f"{self.KEY_PREFIX}{client_key}:{window_start}"

        count = await self.redis.incr(key)

        ttl = await self.redis.ttl(key)
        if ttl == -1:  # No expiry set
            await self.redis.expireat(key, reset_at)

        remaining = max(0, self.limit - count)
        return (count <= self.limit, remaining, reset_at)
