"""In-process config cache for rolloutguard.

Provides the same ``get`` / ``set`` / ``delete`` surface as the Redis
integration so the flag store can run single-process (or under test)
without a network cache.

Configuration (Environment Variables):
    ROLLOUTGUARD_CACHE_BACKEND: "memory" or "redis" (default: "memory")
    ROLLOUTGUARD_CACHE_TTL_S: Default TTL in seconds (default: 3600)

Example:
    >>> cache = MemoryCache(default_ttl=3600)
    >>> cache.set("canary:checkout:config", {"enabled": True, "percentage": 10})
    True
    >>> cache.get("canary:checkout:config")["percentage"]
    10
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from rolloutguard.utils.time_provider import DefaultTimeProvider, TimeProvider

T = TypeVar("T")


@dataclass
class CacheStats:
    """Cache statistics."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    size: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total

    def to_dict(self) -> dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "size": self.size,
            "hit_rate": round(self.hit_rate, 4),
        }


@dataclass
class CacheEntry(Generic[T]):
    """Cache entry with an absolute expiry."""

    value: T
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class MemoryCache(Generic[T]):
    """Thread-safe in-memory LRU cache with TTL.

    Expiry is evaluated against the injected time provider, so tests can
    age entries past their TTL without sleeping.
    """

    def __init__(
        self,
        max_size: int = 10000,
        default_ttl: int = 3600,
        time_provider: TimeProvider | None = None,
    ) -> None:
        """Initialize memory cache.

        Args:
            max_size: Maximum number of entries
            default_ttl: Default TTL in seconds
            time_provider: Clock used for expiry (system clock by default)
        """
        self._cache: OrderedDict[str, CacheEntry[T]] = OrderedDict()
        self._lock = threading.RLock()
        self._max_size = max_size
        self._default_ttl = default_ttl
        self._clock = time_provider or DefaultTimeProvider()
        self._stats = CacheStats()

    def get(self, key: str) -> T | None:
        """Get value from cache, or None if missing/expired."""
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                self._stats.misses += 1
                return None

            if entry.is_expired(self._clock.now()):
                del self._cache[key]
                self._stats.misses += 1
                self._stats.evictions += 1
                self._stats.size = len(self._cache)
                return None

            self._cache.move_to_end(key)
            self._stats.hits += 1
            return entry.value

    def set(self, key: str, value: T, ttl: int | None = None) -> bool:
        """Store ``value`` under ``key`` for ``ttl`` seconds."""
        with self._lock:
            if key in self._cache:
                del self._cache[key]
            while len(self._cache) >= self._max_size:
                self._cache.popitem(last=False)
                self._stats.evictions += 1

            self._cache[key] = CacheEntry(
                value=value,
                expires_at=self._clock.now() + (ttl or self._default_ttl),
            )
            self._stats.size = len(self._cache)
            return True

    def delete(self, key: str) -> bool:
        """Delete entry from cache; False if it was not present."""
        with self._lock:
            if key in self._cache:
                del self._cache[key]
                self._stats.size = len(self._cache)
                return True
            return False

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
            self._stats.size = 0

    def get_stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                hits=self._stats.hits,
                misses=self._stats.misses,
                evictions=self._stats.evictions,
                size=len(self._cache),
            )
