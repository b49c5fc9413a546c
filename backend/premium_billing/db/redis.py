"""Process-wide Redis client (subscription locks, rate limits, operator alerts)."""

import redis.asyncio as redis
from redis.exceptions import RedisError

from premium_billing.core.config import get_settings

_redis: redis.Redis | None = None


async def init_redis(url: str | None = None) -> None:
    """Connect and ping; a failed ping aborts startup."""
    global _redis

    if _redis is not None:
        return

    client = redis.from_url(url or get_settings().redis_url, encoding="utf-8", decode_responses=True)
    await client.ping()
    _redis = client


async def close_redis() -> None:
    global _redis

    if _redis is not None:
        await _redis.aclose()
    _redis = None


def get_redis() -> redis.Redis:
    if _redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis


async def ping_redis(client: redis.Redis) -> bool:
    try:
        return bool(await client.ping())
    except (RedisError, OSError):
        return False
