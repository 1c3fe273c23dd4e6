"""
Namespaced cache wrapper shared by the sync engine and API dependencies.
"""
import logging
from typing import Any, Dict, Iterable, Optional

from app.core.cache import create_cache
from app.core.config import settings
from app.core.logging_config import LogCategory

logger = logging.getLogger(LogCategory.APP)


class ScopedCache:
    """
    Cache wrapper with namespaced keys.

    Each cache entry is keyed as: "{namespace}:{cache_type}:{scope_id}".
    Backend failures are logged and treated as misses so a broken cache never
    fails the request that consulted it.
    """

    def __init__(self, namespace: str, cache_backend=None, log: Optional[logging.Logger] = None):
        if ':' in namespace:
            raise ValueError(f"namespace must not contain ':' character, got: {namespace}")
        self._namespace = namespace
        self._cache = cache_backend if cache_backend is not None else create_cache(settings.redis_url)
        self._logger = log or logger

    @property
    def backend(self):
        return self._cache

    def _make_key(self, scope_id: str, cache_type: str) -> str:
        """
        Raises:
            ValueError: If scope_id or cache_type contains ':' character
        """
        if ':' in cache_type:
            raise ValueError(f"cache_type must not contain ':' character, got: {cache_type}")
        if ':' in scope_id:
            raise ValueError(f"scope_id must not contain ':' character, got: {scope_id}")
        return f"{self._namespace}:{cache_type}:{scope_id}"

    def get(self, scope_id: str, cache_type: str) -> Optional[Dict[str, Any]]:
        key = self._make_key(scope_id, cache_type)
        try:
            return self._cache.get(key)
        except Exception as e:
            self._logger.error(f"Cache get failed: key={key}, error={type(e).__name__}: {e}")
            return None

    def set(self, scope_id: str, cache_type: str, value: Dict[str, Any], ttl_seconds: Optional[int]) -> None:
        key = self._make_key(scope_id, cache_type)
        try:
            self._cache.set(key, value, ex=ttl_seconds)
        except Exception as e:
            self._logger.error(f"Cache set failed: key={key}, error={type(e).__name__}: {e}")

    def delete(self, scope_id: str, cache_type: str) -> None:
        key = self._make_key(scope_id, cache_type)
        try:
            self._cache.delete(key)
        except Exception as e:
            self._logger.error(f"Cache delete failed: key={key}, error={type(e).__name__}: {e}")

    def invalidate(self, scope_id: str, cache_types: Iterable[str]) -> None:
        """Delete multiple cache entries for a scope."""
        for cache_type in cache_types:
            self.delete(scope_id, cache_type)
