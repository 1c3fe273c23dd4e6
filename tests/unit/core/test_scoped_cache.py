"""
Unit tests for the cache backends and the namespaced cache wrapper.
"""
from unittest.mock import MagicMock

import pytest

from app.core.cache import InMemoryCache
from app.core.scoped_cache import ScopedCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestInMemoryCache:
    def test_set_and_get(self):
        cache = InMemoryCache()
        cache.set("key", {"count": 3})

        assert cache.get("key") == {"count": 3}

    def test_entries_expire_lazily(self):
        clock = FakeClock()
        cache = InMemoryCache(clock=clock)
        cache.set("key", {"count": 3}, ex=300)

        clock.now += 299
        assert cache.get("key") == {"count": 3}

        clock.now += 1
        assert cache.get("key") is None
        assert len(cache) == 0

    def test_entries_without_ttl_never_expire(self):
        clock = FakeClock()
        cache = InMemoryCache(clock=clock)
        cache.set("key", "value")

        clock.now += 10 ** 9
        assert cache.get("key") == "value"

    def test_delete_missing_key_is_noop(self):
        cache = InMemoryCache()
        cache.delete("missing")

        assert cache.get("missing") is None


class TestScopedCache:
    def test_keys_are_namespaced(self):
        backend = InMemoryCache()
        cache = ScopedCache("sync", cache_backend=backend)

        cache.set("integration.parent", "projects", {"count": 5}, ttl_seconds=60)

        assert backend.get("sync:projects:integration.parent") == {"count": 5}
        assert cache.get("integration.parent", "projects") == {"count": 5}

    def test_zero_count_is_stored(self):
        cache = ScopedCache("sync", cache_backend=InMemoryCache())
        cache.set("scope", "tasks", {"count": 0}, ttl_seconds=60)

        assert cache.get("scope", "tasks") == {"count": 0}

    def test_colon_rejected(self):
        with pytest.raises(ValueError):
            ScopedCache("bad:namespace", cache_backend=InMemoryCache())

        cache = ScopedCache("sync", cache_backend=InMemoryCache())
        with pytest.raises(ValueError):
            cache.get("a:b", "projects")
        with pytest.raises(ValueError):
            cache.get("scope", "a:b")

    def test_invalidate_removes_each_type(self):
        cache = ScopedCache("sync", cache_backend=InMemoryCache())
        cache.set("scope", "projects", {"count": 1}, ttl_seconds=None)
        cache.set("scope", "collections", {"count": 2}, ttl_seconds=None)

        cache.invalidate("scope", ["projects", "collections"])

        assert cache.get("scope", "projects") is None
        assert cache.get("scope", "collections") is None

    def test_backend_failures_are_treated_as_misses(self):
        backend = MagicMock()
        backend.get.side_effect = ConnectionError("redis down")
        backend.set.side_effect = ConnectionError("redis down")
        cache = ScopedCache("sync", cache_backend=backend)

        assert cache.get("scope", "projects") is None
        cache.set("scope", "projects", {"count": 1}, ttl_seconds=60)
