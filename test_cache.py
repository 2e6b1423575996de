"""Tests for the LRU/TTL result caches."""

import pytest

from memory_bank.cache import (
    CacheRegistry,
    ResultCache,
    context_key,
    embedding_key,
    patterns_key,
    query_key,
)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestResultCache:
    def test_evicts_least_recently_used(self):
        cache = ResultCache(max_size=2, default_ttl=60)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)
        assert cache.get("a") is None
        assert cache.get("b") == 2
        assert cache.get("c") == 3

    def test_get_refreshes_recency(self):
        """A read moves the key to the back of the eviction line."""
        cache = ResultCache(max_size=2, default_ttl=60)
        cache.set("a", 1)
        cache.set("b", 2)
        assert cache.get("a") == 1
        cache.set("c", 3)
        assert cache.get("a") == 1
        assert cache.get("b") is None

    def test_overwrite_does_not_evict(self):
        cache = ResultCache(max_size=2, default_ttl=60)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("a", 10)
        assert cache.size() == 2
        assert cache.get("a") == 10
        assert cache.get("b") == 2

    def test_zero_ttl_is_never_readable(self):
        cache = ResultCache(max_size=10, default_ttl=60)
        cache.set("k", "v", ttl=0)
        assert cache.get("k") is None
        assert "k" not in cache

    def test_expires_after_ttl(self):
        clock = FakeClock()
        cache = ResultCache(max_size=10, default_ttl=10, clock=clock)
        cache.set("k", "v")
        clock.now = 9.9
        assert cache.get("k") == "v"
        clock.now = 10.0
        assert cache.get("k") is None

    def test_size_drops_expired_entries(self):
        clock = FakeClock()
        cache = ResultCache(max_size=10, default_ttl=10, clock=clock)
        cache.set("short", 1, ttl=1)
        cache.set("long", 2)
        assert cache.size() == 2
        clock.now = 5
        assert cache.size() == 1
        assert cache.has("long")

    def test_delete_and_clear(self):
        cache = ResultCache(max_size=10, default_ttl=60)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.delete("a")
        cache.delete("missing")
        assert cache.get("a") is None
        cache.clear()
        assert cache.size() == 0

    def test_rejects_non_positive_size(self):
        with pytest.raises(ValueError):
            ResultCache(max_size=0)


class TestCacheRegistry:
    def test_invalidate_project_is_scoped(self, config):
        caches = CacheRegistry(config)
        caches.queries.set(query_key("alpha", "q", None, 5), ["hit"])
        caches.queries.set(query_key("alpha-2", "q", None, 5), ["other"])
        caches.contexts.set(context_key("alpha", "activeContext"), {"a": 1})
        caches.patterns.set(patterns_key("alpha"), [])
        caches.embeddings.set(embedding_key("q"), [0.1, 0.2])

        caches.invalidate_project("alpha")

        assert caches.queries.get(query_key("alpha", "q", None, 5)) is None
        assert caches.contexts.get(context_key("alpha", "activeContext")) is None
        assert caches.patterns.get(patterns_key("alpha")) is None
        assert caches.queries.get(query_key("alpha-2", "q", None, 5)) == ["other"]
        assert caches.embeddings.get(embedding_key("q")) == [0.1, 0.2]

    def test_stats(self, config):
        caches = CacheRegistry(config)
        caches.embeddings.set("embed:x", [1.0])
        stats = caches.stats()
        assert stats["embedding_cache"] == {"size": 1, "max_size": config.embedding_cache_size}
        assert stats["pattern_cache"]["max_size"] == config.pattern_cache_size

    def test_query_key_distinguishes_kind_and_top_k(self):
        assert query_key("p", "q", None, 5) != query_key("p", "q", "progress", 5)
        assert query_key("p", "q", None, 5) != query_key("p", "q", None, 10)
