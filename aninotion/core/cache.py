"""In-process TTL cache for recommendation responses."""

import time
from collections import OrderedDict
from threading import Lock
from typing import Any, Generic, Optional, TypeVar

from aninotion.config import get_settings

T = TypeVar("T")


class TTLCache(Generic[T]):
    """Simple in-memory cache with time-to-live expiration and a size cap.

    When the cap is reached the least recently used entry is evicted.
    Concurrent misses on the same key both recompute; there is no
    single-flight protection.

    Usage:
        cache = TTLCache[list[dict]](ttl_seconds=3600, max_entries=1000)

        data = cache.get("similar:42:10:0.1")
        if data is None:
            data = compute()
            cache.set("similar:42:10:0.1", data)
    """

    def __init__(self, ttl_seconds: int = 3600, max_entries: int = 1000):
        self.ttl = ttl_seconds
        self.max_entries = max_entries
        self._cache: OrderedDict[str, tuple[float, T]] = OrderedDict()
        self._lock = Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> T | None:
        """Get a value from cache, returning None if expired or missing."""
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                self.misses += 1
                return None

            stored_at, value = entry
            if time.monotonic() - stored_at > self.ttl:
                del self._cache[key]
                self.misses += 1
                return None

            self._cache.move_to_end(key)
            self.hits += 1
            return value

    def set(self, key: str, value: T) -> None:
        """Store a value in cache."""
        with self._lock:
            self._cache[key] = (time.monotonic(), value)
            self._cache.move_to_end(key)
            while len(self._cache) > self.max_entries:
                self._cache.popitem(last=False)

    def invalidate(self, key: str | None = None) -> None:
        """Invalidate a specific key or all keys if key is None."""
        with self._lock:
            if key is None:
                self._cache.clear()
            else:
                self._cache.pop(key, None)

    def __len__(self) -> int:
        return len(self._cache)

    def stats(self) -> dict[str, Any]:
        lookups = self.hits + self.misses
        return {
            "keys": len(self._cache),
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": self.hits / lookups if lookups else 0.0,
            "max_entries": self.max_entries,
            "ttl_seconds": self.ttl,
        }


# Key patterns for recommendation responses
def similar_key(post_id: str, limit: int, min_score: float) -> str:
    return f"similar:{post_id}:{limit}:{min_score}"


def personalized_key(post_ids: list[str], limit: int) -> str:
    return f"personalized:{','.join(sorted(post_ids))}:{limit}"


def anime_key(anime_name: str, limit: int) -> str:
    return f"anime:{anime_name.lower()}:{limit}"


def tag_key(tag: str, limit: int) -> str:
    return f"tag:{tag.lower()}:{limit}"


def trending_category_key(category_id: str, limit: int, timeframe: int) -> str:
    return f"trending:category:{category_id}:{limit}:{timeframe}"


_recommendation_cache: Optional[TTLCache[list[dict]]] = None


def get_recommendation_cache() -> TTLCache[list[dict]]:
    """Get the shared recommendation response cache."""
    global _recommendation_cache
    if _recommendation_cache is None:
        settings = get_settings()
        _recommendation_cache = TTLCache(
            ttl_seconds=settings.recommendation_cache_ttl_seconds,
            max_entries=settings.recommendation_cache_max_entries,
        )
    return _recommendation_cache
