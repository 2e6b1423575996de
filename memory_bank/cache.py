"""Bounded, TTL-aware, LRU-evicting result caches."""

from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from .config import CONFIG, Config
from .utils import content_hash

T = TypeVar("T")


@dataclass(slots=True)
class CacheItem(Generic[T]):
    value: T
    expiry: float


class ResultCache(Generic[T]):
    """LRU cache whose entries also expire after a TTL.

    The OrderedDict is the recency list: the first key is the least recently
    touched one. Expiry is checked lazily on access; `size()` compacts.
    """

    def __init__(
        self,
        max_size: int = 100,
        default_ttl: float = CONFIG.cache_ttl_seconds,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_size <= 0:
            raise ValueError(f"max_size must be positive, got {max_size}")
        self.max_size = max_size
        self.default_ttl = default_ttl
        self._clock = clock
        self._items: OrderedDict[str, CacheItem[T]] = OrderedDict()

    def _live(self, key: str) -> CacheItem[T] | None:
        item = self._items.get(key)
        if item is None:
            return None
        if self._clock() >= item.expiry:
            del self._items[key]
            return None
        return item

    def get(self, key: str) -> T | None:
        item = self._live(key)
        if item is None:
            return None
        self._items.move_to_end(key)
        return item.value

    def set(self, key: str, value: T, ttl: float | None = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        if key in self._items:
            self._items.move_to_end(key)
        elif len(self._items) >= self.max_size:
            self._items.popitem(last=False)
        self._items[key] = CacheItem(value=value, expiry=self._clock() + ttl)

    def has(self, key: str) -> bool:
        return self._live(key) is not None

    def delete(self, key: str) -> None:
        self._items.pop(key, None)

    def clear(self) -> None:
        self._items.clear()

    def size(self) -> int:
        now = self._clock()
        for key in [k for k, item in self._items.items() if now >= item.expiry]:
            del self._items[key]
        return len(self._items)

    def invalidate_matching(self, fragment: str) -> int:
        """Drop every key containing `fragment`; returns how many were dropped."""
        doomed = [key for key in self._items if fragment in key]
        for key in doomed:
            del self._items[key]
        return len(doomed)

    def __contains__(self, key: str) -> bool:
        return self.has(key)


# Key builders. The project always sits between colons so that project
# invalidation can match ":{project}:" without hitting longer project names.


def embedding_key(text: str) -> str:
    return f"embed:{content_hash(text)}"


def query_key(project: str, text: str, kind: str | None, top_k: int) -> str:
    return f"query:{project}:{kind or 'all'}:{top_k}:{content_hash(text)}"


def context_key(project: str, context_kind: str) -> str:
    return f"context:{project}:{context_kind}"


def patterns_key(project: str) -> str:
    return f"patterns:{project}:all"


class CacheRegistry:
    """The four cache instances used by a MemoryStore."""

    def __init__(self, config: Config = CONFIG, clock: Callable[[], float] = time.monotonic) -> None:
        ttl = config.cache_ttl_seconds
        self.embeddings: ResultCache[list[float]] = ResultCache(config.embedding_cache_size, ttl, clock)
        self.queries: ResultCache[Any] = ResultCache(config.query_cache_size, ttl, clock)
        self.contexts: ResultCache[dict] = ResultCache(config.context_cache_size, ttl, clock)
        self.patterns: ResultCache[Any] = ResultCache(config.pattern_cache_size, ttl, clock)

    def invalidate_project(self, project: str) -> None:
        """Forget cached reads for `project`. Embeddings are content-pure and stay."""
        fragment = f":{project}:"
        for cache in (self.queries, self.contexts, self.patterns):
            cache.invalidate_matching(fragment)

    def stats(self) -> dict[str, dict[str, int]]:
        return {
            name: {"size": cache.size(), "max_size": cache.max_size}
            for name, cache in (
                ("embedding_cache", self.embeddings),
                ("query_cache", self.queries),
                ("context_cache", self.contexts),
                ("pattern_cache", self.patterns),
            )
        }
