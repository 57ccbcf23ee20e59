"""
TTL Read-Through Cache for Classroom Sync.

Fronts slow-changing reads (profile, class list, document list) so repeated
UI triggers do not hit the remote services.

Features:
- get-or-fetch with per-call TTL
- Expired entries are never served
- Stale sweep when the host regains foreground visibility
- Cache statistics

Usage:
    cache = TTLCache()
    courses = await cache.get_or_fetch("classes:u1", 300, lambda: service.list_courses())
"""

from __future__ import annotations

import inspect
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, TypeVar, Union

from loguru import logger

from .config import CacheSettings

T = TypeVar("T")


class CacheCategory(Enum):
    """Categories for cache TTL management."""
    PROFILE = "profile"
    CLASS_LIST = "class_list"
    DOCUMENTS = "documents"


# TTL in seconds for each category
CATEGORY_TTL = {
    CacheCategory.PROFILE: 5 * 60,
    CacheCategory.CLASS_LIST: 5 * 60,
    CacheCategory.DOCUMENTS: 5 * 60,
}


@dataclass
class CacheEntry(Generic[T]):
    """A cached value with its write time."""
    value: T
    timestamp: float
    ttl: float

    def age(self, now: float) -> float:
        return now - self.timestamp

    def is_valid(self, now: float) -> bool:
        return self.age(now) < self.ttl


@dataclass
class CacheStats:
    """Cache statistics."""
    hits: int = 0
    misses: int = 0
    evictions: int = 0

    @property
    def hit_ratio(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "hit_ratio": round(self.hit_ratio, 3),
            "evictions": self.evictions,
        }


FetchFn = Callable[[], Union[T, Awaitable[T]]]


class TTLCache:
    """
    In-memory cache where entries expire a fixed time after being written.

    The clock returns seconds; it is injectable so tests can move time.
    """

    def __init__(
        self,
        clock: Optional[Callable[[], float]] = None,
        category_ttls: Optional[Dict[CacheCategory, float]] = None,
    ):
        self._clock = clock or time.time
        self._category_ttls = {**CATEGORY_TTL, **(category_ttls or {})}
        self._entries: Dict[str, CacheEntry[Any]] = {}
        self.stats = CacheStats()

    @property
    def size(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None if absent or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if not entry.is_valid(self._clock()):
            del self._entries[key]
            self.stats.evictions += 1
            return None
        return entry.value

    def set(self, key: str, value: Any, ttl: float) -> None:
        self._entries[key] = CacheEntry(value=value, timestamp=self._clock(), ttl=ttl)

    async def get_or_fetch(self, key: str, ttl: float, fetch: FetchFn) -> Any:
        """
        Return the cached value for key, fetching and storing it on a miss.

        Args:
            key: Cache key
            ttl: Time to live in seconds
            fetch: Zero-argument callable, sync or async, producing the value

        Returns:
            The cached or freshly fetched value
        """
        entry = self._entries.get(key)
        if entry is not None and entry.is_valid(self._clock()):
            self.stats.hits += 1
            return entry.value

        self.stats.misses += 1
        value = fetch()
        if inspect.isawaitable(value):
            value = await value

        self.set(key, value, ttl)
        logger.debug(f"Cache refreshed: {key}")
        return value

    async def get_or_fetch_category(self, key: str, category: CacheCategory, fetch: FetchFn) -> Any:
        return await self.get_or_fetch(key, self._category_ttls[category], fetch)

    def invalidate(self, key: str) -> bool:
        """Drop one entry. Returns True if it existed."""
        return self._entries.pop(key, None) is not None

    def invalidate_prefix(self, prefix: str) -> int:
        keys = [k for k in self._entries if k.startswith(prefix)]
        for key in keys:
            del self._entries[key]
        return len(keys)

    def invalidate_stale(self) -> int:
        """
        Drop every entry whose age has reached its TTL.

        Called when the host application regains foreground visibility, so a
        long-lived session does not keep serving old data.

        Returns:
            Number of entries dropped
        """
        now = self._clock()
        stale = [k for k, e in self._entries.items() if not e.is_valid(now)]
        for key in stale:
            del self._entries[key]
        if stale:
            self.stats.evictions += len(stale)
            logger.debug(f"Dropped {len(stale)} stale cache entries")
        return len(stale)

    def clear(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        return count



def cache_from_settings(
    settings: CacheSettings,
    clock: Optional[Callable[[], float]] = None,
) -> Optional[TTLCache]:
    """Build the read-through cache from config, or None when caching is off."""
    if not settings.enabled:
        logger.info("Read-through cache disabled")
        return None
    return TTLCache(
        clock=clock,
        category_ttls={
            CacheCategory.PROFILE: settings.profile_ttl,
            CacheCategory.CLASS_LIST: settings.class_list_ttl,
            CacheCategory.DOCUMENTS: settings.documents_ttl,
        },
    )
