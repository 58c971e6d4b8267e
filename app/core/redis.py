# app/core/redis.py
"""
Redis connection and caching utilities.
Redis is used for:
- Queue snapshot caching (queue screens poll every few seconds)

The app must keep working when Redis is unavailable (degraded mode):
every helper returns a "miss" instead of raising.
"""

import logging
from typing import Optional

import redis

from app.core.config import get_settings

logger = logging.getLogger(__name__)

_redis_client: Optional[redis.Redis] = None
_redis_checked: bool = False


def get_redis_client() -> Optional[redis.Redis]:
    """
    Get Redis client instance.
    Returns None if Redis is not configured or was unreachable at first use.
    """
    global _redis_client, _redis_checked

    if _redis_checked:
        return _redis_client

    _redis_checked = True
    settings = get_settings()

    if not settings.redis_url:
        logger.info("REDIS_URL not set. Queue snapshot caching disabled.")
        return None

    try:
        client = redis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        client.ping()
        _redis_client = client
        logger.info("Redis connection established successfully.")
    except redis.RedisError as e:
        logger.warning(f"Failed to connect to Redis: {e}. Running in degraded mode (no caching).")
        _redis_client = None
    return _redis_client


def cache_get(key: str) -> Optional[str]:
    """Get value from cache. Returns None if Redis unavailable or key not found."""
    client = get_redis_client()
    if not client:
        return None
    try:
        return client.get(key)
    except redis.RedisError as e:
        logger.warning(f"Redis GET error for key '{key}': {e}")
        return None


def cache_set(key: str, value: str, ttl: int = 5) -> bool:
    """Set value in cache with TTL (seconds). Returns False if Redis unavailable."""
    client = get_redis_client()
    if not client:
        return False
    try:
        client.setex(key, ttl, value)
        return True
    except redis.RedisError as e:
        logger.warning(f"Redis SET error for key '{key}': {e}")
        return False


def cache_delete_prefix(prefix: str) -> int:
    """Delete every key starting with prefix. Returns the number of keys removed."""
    client = get_redis_client()
    if not client:
        return 0
    try:
        keys = list(client.scan_iter(match=f"{prefix}*"))
        if not keys:
            return 0
        return int(client.delete(*keys))
    except redis.RedisError as e:
        logger.warning(f"Redis DELETE error for prefix '{prefix}': {e}")
        return 0
