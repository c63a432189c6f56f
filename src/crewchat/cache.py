"""Redis connection pool — used by the rate limiter.

Learn: Redis is optional. The realtime layer is in-process and never
touches it; when Redis is down or not configured, rate limiting is
simply skipped. The pool is opened in the app lifespan and closed at
shutdown.
"""

from typing import Optional

import redis.asyncio as aioredis

from crewchat.config import settings

_redis: Optional[aioredis.Redis] = None


async def init_redis() -> aioredis.Redis:
    """Open the connection pool and verify it with a PING."""
    global _redis
    client = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    try:
        await client.ping()
    except Exception:
        await client.aclose()
        raise
    _redis = client
    return _redis


async def close_redis() -> None:
    global _redis
    if _redis:
        await _redis.aclose()
        _redis = None


def get_redis() -> aioredis.Redis:
    """Get the Redis connection (must be initialized first)."""
    if _redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis


async def redis_available() -> bool:
    if _redis is None:
        return False
    try:
        return bool(await _redis.ping())
    except Exception:
        return False
