"""Shared Redis client used for notification fan-out."""

import redis.asyncio as redis

from orderflow.core.config import get_settings

_redis: redis.Redis | None = None


async def init_redis(url: str | None = None) -> redis.Redis:
    """Connect the shared Redis client and verify it answers PING."""
    global _redis

    if _redis is not None:
        return _redis

    _redis = redis.from_url(
        url or get_settings().redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    await _redis.ping()
    return _redis


async def close_redis() -> None:
    global _redis

    if _redis is not None:
        await _redis.aclose()
        _redis = None


def get_redis() -> redis.Redis | None:
    """Shared Redis client, or None when notifications run without Redis."""
    return _redis
