"""
TTL cache for happiness-index results.

Keys are explicit structs rather than formatted strings, and the clock is
injected so expiry can be tested without sleeping. The default instance is
process-local; a multi-instance deployment can swap in a shared backend
that implements the same get/put/invalidate/clear surface.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Generic, Hashable, Optional, TypeVar

V = TypeVar("V")


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


@dataclass(frozen=True)
class CHICacheKey:
    """Cache key for one CHI computation."""
    window_minutes: int
    product_area: Optional[str] = None


@dataclass
class CacheEntry(Generic[V]):
    value: V
    stored_at: datetime
    expires_at: datetime


@dataclass
class CacheStats:
    entries: int
    hits: int
    misses: int

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class TTLCache(Generic[V]):
    """Fixed-TTL in-memory cache. No invalidation on write."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], datetime] = utc_now):
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock
        self._entries: dict[Hashable, CacheEntry[V]] = {}
        self._hits = 0
        self._misses = 0

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def get(self, key: Hashable) -> Optional[V]:
        """Return the cached value, or None if absent or expired."""
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None

        if self._clock() >= entry.expires_at:
            del self._entries[key]
            self._misses += 1
            return None

        self._hits += 1
        return entry.value

    def put(self, key: Hashable, value: V) -> None:
        now = self._clock()
        self._entries[key] = CacheEntry(value=value, stored_at=now, expires_at=now + self._ttl)

    def invalidate(self, key: Hashable) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> CacheStats:
        return CacheStats(entries=len(self._entries), hits=self._hits, misses=self._misses)

    def __len__(self) -> int:
        return len(self._entries)
