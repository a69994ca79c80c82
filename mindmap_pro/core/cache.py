"""Best-effort Redis cache client.

The cache is never authoritative. Every call here either succeeds or is
logged and answered with a neutral default (miss, no keys, nothing deleted),
so a Redis outage degrades reads to the database and never fails a request.

Interface used by the rest of the application (any object with these methods
can stand in for ``RedisCache``):

    get(key) -> str | None
    set(key, value, ttl_seconds) -> None
    delete(*keys) -> int
    keys(pattern) -> list[str]
    flush_all() -> None
    ping() -> bool
"""

import logging
from functools import wraps
from typing import Any, Callable, List, Optional

import redis

from .config import settings

logger = logging.getLogger(__name__)

# Keys fetched per SCAN round trip.
SCAN_COUNT = 500


def _best_effort(operation_name: str, default: Any = None):
    """Swallow Redis failures, logging them, and return *default* instead."""

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except redis.RedisError as e:
                logger.warning("[Cache] %s failed: %s", operation_name, e)
                return default
        return wrapper
    return decorator


class RedisCache:
    """Thin wrapper over a ``redis.Redis`` client with string values."""

    def __init__(self, client: "redis.Redis"):
        self._client = client

    @classmethod
    def from_url(cls, url: str, socket_timeout: float = 2.0) -> "RedisCache":
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return cls(client)

    @_best_effort("GET")
    def get(self, key: str) -> Optional[str]:
        return self._client.get(key)

    @_best_effort("SET")
    def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        if ttl_seconds:
            self._client.set(key, value, ex=ttl_seconds)
        else:
            self._client.set(key, value)

    @_best_effort("DEL", default=0)
    def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return self._client.delete(*keys)

    @_best_effort("SCAN", default=[])
    def keys(self, pattern: str = "*") -> List[str]:
        return list(self._client.scan_iter(match=pattern, count=SCAN_COUNT))

    @_best_effort("FLUSHDB")
    def flush_all(self) -> None:
        # Only the cache's own logical database is flushed.
        self._client.flushdb()

    @_best_effort("PING", default=False)
    def ping(self) -> bool:
        return bool(self._client.ping())


_cache: Optional[RedisCache] = None


def get_cache() -> RedisCache:
    """FastAPI dependency returning the shared cache client.

    The underlying connection pool is created on first use; Redis itself is
    not contacted until the first command.
    """
    global _cache
    if _cache is None:
        _cache = RedisCache.from_url(settings.redis_url, settings.redis_socket_timeout)
        logger.info("[Cache] Redis client configured")
    return _cache
