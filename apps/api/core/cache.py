"""
Redis access layer

Provides the shared client and short-lived distributed locks.
Includes graceful degradation if Redis is unavailable: callers get
None / fail-open results instead of exceptions.
"""
import logging
import uuid
from typing import Optional
import redis
from redis.exceptions import ConnectionError, TimeoutError, RedisError
from core.config import settings

logger = logging.getLogger(__name__)

# Redis connection pool (singleton)
_redis_client: Optional[redis.Redis] = None


def get_redis_client() -> Optional[redis.Redis]:
    """Get Redis client with connection pooling. Returns None if Redis unavailable."""
    global _redis_client

    if _redis_client is not None:
        return _redis_client

    try:
        _redis_client = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
            retry_on_timeout=True,
            health_check_interval=30
        )
        _redis_client.ping()
        logger.info("Redis connection established")
        return _redis_client
    except (ConnectionError, TimeoutError, RedisError) as e:
        logger.warning(f"Redis unavailable: {e}. Distributed locks disabled.")
        _redis_client = None
        return None


def cache_key(prefix: str, *args, **kwargs) -> str:
    """Generate a key from prefix and arguments."""
    key_parts = [prefix]

    for arg in args:
        if arg is not None:
            key_parts.append(str(arg))

    for k, v in sorted(kwargs.items()):
        if v is not None:
            key_parts.append(f"{k}:{v}")

    return ":".join(key_parts)


def try_acquire_lock(key: str, ttl_s: int) -> Optional[str]:
    """
    Try once to take ``key`` with SET NX EX.

    Returns the owner token on success, "" when Redis is unavailable
    (fail open: the caller still holds its in-process lock), and None
    when another owner holds the key.
    """
    client = get_redis_client()
    if not client:
        return ""

    token = uuid.uuid4().hex
    try:
        acquired = client.set(key, token, nx=True, ex=ttl_s)
    except (ConnectionError, TimeoutError, RedisError) as e:
        logger.warning(f"Lock acquire error for key {key}: {e}")
        return ""
    return token if acquired else None


def release_lock(key: str, token: str) -> None:
    """Release ``key`` if it is still owned by ``token``."""
    if not token:
        return
    client = get_redis_client()
    if not client:
        return
    try:
        if client.get(key) == token:
            client.delete(key)
    except (ConnectionError, TimeoutError, RedisError) as e:
        # The TTL reclaims the key.
        logger.warning(f"Lock release error for key {key}: {e}")
