"""Redis caching utilities for VinePallet.

Used for results that are expensive to recompute and identical across
backend instances (geocoded addresses).  Every helper degrades to "no
cache" when Redis is unreachable: a cache outage never fails a request.
"""

import hashlib
import json
import logging
from typing import Any, Optional

import redis.asyncio as redis
from vinepallet.config import settings

logger = logging.getLogger(__name__)

# Global Redis connection pool
_redis_client: Optional[redis.Redis] = None


async def get_redis() -> redis.Redis:
    """Get or create Redis client connection."""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=50,
        )
    return _redis_client


async def close_redis():
    """Close Redis connection (call on app shutdown)."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


def cache_key(*args, **kwargs) -> str:
    """Generate a deterministic hash from arguments."""
    if not args and not kwargs:
        return "default"

    key_data = json.dumps({"args": args, "kwargs": kwargs}, sort_keys=True)
    return hashlib.md5(key_data.encode()).hexdigest()


async def cache_get_json(key: str) -> Any | None:
    """Return the decoded JSON value stored at `key`, or None on miss/error."""
    try:
        redis_client = await get_redis()
        cached_value = await redis_client.get(key)
    except redis.RedisError as e:
        logger.warning(f"Redis error (reading {key} uncached): {e}")
        return None

    if cached_value is None:
        logger.debug(f"Cache MISS: {key}")
        return None
    logger.debug(f"Cache HIT: {key}")
    return json.loads(cached_value)


async def cache_set_json(key: str, value: Any, ttl: int) -> None:
    """Store `value` as JSON with a TTL in seconds.  Errors are logged only."""
    try:
        redis_client = await get_redis()
        await redis_client.setex(key, ttl, json.dumps(value))
    except redis.RedisError as e:
        logger.warning(f"Redis error (not caching {key}): {e}")

