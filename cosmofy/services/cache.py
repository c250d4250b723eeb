"""
TieredCache - three independent cache scopes with TTL and fallback windows.

Scopes:
- COLLECTION: whole-collection snapshots ("all constellations")
- QUERY: results for one set of query parameters ("passes over 51.5,-0.1")
- ENTITY: detail for one named item ("orion")

Each scope has its own TTL (fresh enough to serve directly) and a looser
fallback window (still good enough to serve when every upstream fails).
Entries are replaced, never mutated in place.
"""

import asyncio
import hashlib
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Generic, TypeVar

from loguru import logger

T = TypeVar("T")


class CacheScope(str, Enum):
    """Independent cache partitions."""

    COLLECTION = "collection"
    QUERY = "query"
    ENTITY = "entity"


@dataclass
class ScopeConfig:
    """TTL, fallback window and size bound for one scope."""

    ttl: timedelta
    fallback_ttl: timedelta | None = None
    max_entries: int = 500

    @property
    def usable_for(self) -> timedelta:
        if self.fallback_ttl is None:
            return self.ttl
        return max(self.ttl, self.fallback_ttl)


DEFAULT_SCOPES: dict[CacheScope, ScopeConfig] = {
    CacheScope.COLLECTION: ScopeConfig(
        ttl=timedelta(days=1), fallback_ttl=timedelta(days=30)
    ),
    CacheScope.QUERY: ScopeConfig(
        ttl=timedelta(hours=1), fallback_ttl=timedelta(days=1)
    ),
    CacheScope.ENTITY: ScopeConfig(
        ttl=timedelta(days=30), fallback_ttl=timedelta(days=90)
    ),
}


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """A single cache entry. Fresh iff ``now - stored_at < ttl``."""

    value: T
    stored_at: datetime
    ttl: timedelta
    fallback_ttl: timedelta | None = None

    def age(self, now: datetime | None = None) -> timedelta:
        return (now or datetime.now()) - self.stored_at

    def is_fresh(self, now: datetime | None = None) -> bool:
        return self.age(now) < self.ttl

    def is_usable(self, window: timedelta, now: datetime | None = None) -> bool:
        """Check if entry may still serve as a fallback."""
        return self.age(now) < max(window, self.ttl)


@dataclass
class ScopeStats:
    """Per-scope statistics."""

    hits: int = 0
    fallback_hits: int = 0
    misses: int = 0
    evictions: int = 0
    size: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.fallback_hits + self.misses
        if total == 0:
            return 0.0
        return (self.hits + self.fallback_hits) / total

    def to_dict(self) -> dict[str, Any]:
        return {
            "hits": self.hits,
            "fallback_hits": self.fallback_hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "size": self.size,
            "hit_rate": f"{self.hit_rate:.2%}",
        }


def make_key(*parts: Any, prefix: str = "") -> str:
    """Build a deterministic cache key from parameters."""
    normalized = []
    for part in parts:
        if isinstance(part, dict):
            part = "&".join(f"{k}={v}" for k, v in sorted(part.items()))
        elif isinstance(part, float):
            part = f"{part:.4f}"
        normalized.append(str(part))
    full_key = ":".join(normalized)

    # Hash long keys
    if len(full_key) > 200:
        return f"{prefix}{hashlib.md5(full_key.encode()).hexdigest()[:16]}"

    return f"{prefix}{full_key}"


class TieredCache:
    """
    Shared cache with independent collection/query/entity scopes.

    One instance is built per process and passed to every caller.

    Usage:
        cache = TieredCache()

        entry = await cache.get(CacheScope.QUERY, "passes:51.5:-0.1")
        if entry is None:
            passes = await fetch_passes()
            await cache.put(CacheScope.QUERY, "passes:51.5:-0.1", passes)

        # Every upstream failed: accept anything inside the fallback window
        stale = await cache.get_fallback(CacheScope.QUERY, "passes:51.5:-0.1")
    """

    def __init__(
        self,
        scopes: dict[CacheScope, ScopeConfig] | None = None,
        clock: Callable[[], datetime] = datetime.now,
        debug: bool = False,
    ):
        self._scopes = {**DEFAULT_SCOPES, **(scopes or {})}
        self._data: dict[CacheScope, dict[str, CacheEntry[Any]]] = {
            scope: {} for scope in CacheScope
        }
        self._stats: dict[CacheScope, ScopeStats] = {
            scope: ScopeStats() for scope in CacheScope
        }
        self._clock = clock
        self._debug = debug
        self._lock = asyncio.Lock()

    def now(self) -> datetime:
        return self._clock()

    def config(self, scope: CacheScope) -> ScopeConfig:
        return self._scopes[scope]

    def is_fresh(self, entry: CacheEntry[Any]) -> bool:
        """Pure function of entry age against its TTL."""
        return entry.is_fresh(self.now())

    async def get(self, scope: CacheScope, key: str) -> CacheEntry[Any] | None:
        """Return the entry only if it is still fresh."""
        async with self._lock:
            entry = self._data[scope].get(key)
            stats = self._stats[scope]

            if entry is None or not entry.is_fresh(self.now()):
                stats.misses += 1
                self._log(f"MISS {scope.value}: {key[:50]}")
                return None

            stats.hits += 1
            self._log(f"HIT {scope.value}: {key[:50]}")
            return entry

    async def get_fallback(
        self,
        scope: CacheScope,
        key: str,
        max_age: timedelta | None = None,
    ) -> CacheEntry[Any] | None:
        """
        Return the entry if it is inside the usable-as-fallback window.

        Args:
            scope: Cache scope
            key: Cache key
            max_age: Override the scope's fallback window
        """
        async with self._lock:
            entry = self._data[scope].get(key)
            window = max_age if max_age is not None else self._window(scope, entry)
            if entry is None or not entry.is_usable(window, self.now()):
                self._log(f"NO FALLBACK {scope.value}: {key[:50]}")
                return None

            self._stats[scope].fallback_hits += 1
            self._log(
                f"FALLBACK {scope.value}: {key[:50]} "
                f"(age {entry.age(self.now()).total_seconds():.0f}s)"
            )
            return entry

    async def put(
        self,
        scope: CacheScope,
        key: str,
        value: Any,
        ttl: timedelta | None = None,
        fallback_ttl: timedelta | None = None,
    ) -> CacheEntry[Any]:
        """Store value, replacing any previous entry for the key."""
        config = self._scopes[scope]
        entry = CacheEntry(
            value=value,
            stored_at=self.now(),
            ttl=ttl if ttl is not None else config.ttl,
            fallback_ttl=fallback_ttl,
        )

        async with self._lock:
            bucket = self._data[scope]
            if len(bucket) >= config.max_entries and key not in bucket:
                self._evict_oldest(scope)

            bucket[key] = entry
            self._log(
                f"SET {scope.value}: {key[:50]} (TTL: {entry.ttl.total_seconds()}s)"
            )
        return entry

    async def sweep(self) -> int:
        """Remove entries past their fallback window. Returns count removed."""
        removed = 0
        now = self.now()
        async with self._lock:
            for scope, bucket in self._data.items():
                dead = [
                    k
                    for k, v in bucket.items()
                    if not v.is_usable(self._window(scope, v), now)
                ]
                for key in dead:
                    del bucket[key]
                removed += len(dead)

        if removed:
            logger.info(f"Cache sweep removed {removed} expired entries")
        return removed

    def _window(self, scope: CacheScope, entry: CacheEntry[Any] | None) -> timedelta:
        """Fallback window for an entry: its own, else the scope default."""
        if entry is not None and entry.fallback_ttl is not None:
            return entry.fallback_ttl
        return self._scopes[scope].usable_for

    def _evict_oldest(self, scope: CacheScope) -> None:
        """Evict the oldest entry of a scope. Caller holds the lock."""
        bucket = self._data[scope]
        if not bucket:
            return

        oldest_key = min(bucket, key=lambda k: bucket[k].stored_at)
        del bucket[oldest_key]
        self._stats[scope].evictions += 1
        self._log(f"EVICT {scope.value}: {oldest_key[:50]}")

    def get_stats(self) -> dict[str, dict[str, Any]]:
        """Get per-scope statistics."""
        result = {}
        for scope, stats in self._stats.items():
            stats.size = len(self._data[scope])
            result[scope.value] = stats.to_dict()
        return result

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[TieredCache] {message}")

