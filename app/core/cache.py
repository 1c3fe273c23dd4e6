"""
Key/value cache backends.

InMemoryCache keeps entries in a process-local dict and expires them lazily
on read; nothing evicts entries in the background. RedisCache stores JSON
values with a native TTL so several API and worker processes can share one
cache.
"""
import json
import threading
import time
from typing import Any, Dict, Optional, Tuple

import redis

from app.core.logging_config import log_info, log_warning


class InMemoryCache:
    """Process-local cache with lazy expiry."""

    def __init__(self, clock=time.monotonic):
        self._store: Dict[str, Tuple[Any, Optional[float]]] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at is not None and self._clock() >= expires_at:
                del self._store[key]
                return None
            return value

    def set(self, key: str, value: Any, ex: Optional[int] = None) -> None:
        expires_at = self._clock() + ex if ex else None
        with self._lock:
            self._store[key] = (value, expires_at)

    def delete(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def __len__(self) -> int:
        return len(self._store)


class RedisCache:
    """Redis-backed cache storing JSON-encoded values."""

    def __init__(self, redis_url: str):
        self._redis = redis.Redis.from_url(redis_url, decode_responses=True)

    def get(self, key: str) -> Optional[Any]:
        raw = self._redis.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, json.JSONDecodeError):
            log_warning("Discarding undecodable cache entry", key=key)
            self._redis.delete(key)
            return None

    def set(self, key: str, value: Any, ex: Optional[int] = None) -> None:
        self._redis.set(key, json.dumps(value, default=str), ex=ex)

    def delete(self, key: str) -> None:
        self._redis.delete(key)


def create_cache(redis_url: Optional[str] = None):
    """Return a Redis cache when a URL is configured, else an in-memory one."""
    if redis_url:
        log_info("Using Redis cache backend")
        return RedisCache(redis_url)
    return InMemoryCache()
