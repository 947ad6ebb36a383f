"""
Bounded in-memory cache with TTL.

Used by the nutrition database clients for search results and food details.
"""

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, List, Optional, Tuple, TypeVar

import structlog

logger = structlog.get_logger(__name__)

V = TypeVar("V")


@dataclass
class CacheEntry(Generic[V]):
    """Cached value with its insertion and expiry times (epoch seconds)."""

    value: V
    stored_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


class TTLCache(Generic[V]):
    """
    In-memory cache with TTL and insertion-order eviction.

    Once the cache grows past ``max_entries`` the ``evict_count`` oldest
    entries (by insertion) are dropped in one pass. Overwriting a key counts
    as a fresh insertion.

    Example:
        >>> cache = TTLCache(ttl_seconds=3600)
        >>> cache.set("search:apple", [{"fdcId": 1}])
        >>> cache.get("search:apple")
        [{'fdcId': 1}]
    """

    def __init__(
        self,
        ttl_seconds: float,
        max_entries: int = 1000,
        evict_count: int = 200,
        clock: Callable[[], float] = time.time,
        name: str = "cache",
    ) -> None:
        """Initialize cache.

        Args:
            ttl_seconds: Entry lifetime
            max_entries: Size above which eviction runs
            evict_count: Entries removed per eviction pass
            clock: Time source (epoch seconds)
            name: Label used in log events
        """
        if ttl_seconds <= 0:
            raise ValueError(f"TTL must be positive, got {ttl_seconds}")
        if max_entries <= 0:
            raise ValueError(f"max_entries must be positive, got {max_entries}")

        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.evict_count = evict_count
        self.name = name
        self._clock = clock
        self._entries: Dict[str, CacheEntry[V]] = {}

    def get(self, key: str, default: Optional[Any] = None) -> Any:
        """Return the cached value, or ``default`` when absent or expired."""
        entry = self._entries.get(key)
        if entry is None:
            logger.debug("Cache miss", cache=self.name, key=key)
            return default

        if entry.is_expired(self._clock()):
            logger.debug("Cache expired", cache=self.name, key=key)
            del self._entries[key]
            return default

        logger.debug("Cache hit", cache=self.name, key=key)
        return entry.value

    def contains(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and not entry.is_expired(self._clock())

    def set(self, key: str, value: V) -> None:
        now = self._clock()
        self._entries.pop(key, None)
        self._entries[key] = CacheEntry(value=value, stored_at=now, expires_at=now + self.ttl_seconds)

        if len(self._entries) > self.max_entries:
            self._evict_oldest()

    def _evict_oldest(self) -> None:
        # dicts keep insertion order: the first keys are the oldest
        oldest = list(self._entries)[: self.evict_count]
        for key in oldest:
            del self._entries[key]
        logger.info("Cache eviction", cache=self.name, evicted=len(oldest), size=len(self._entries))

    def remove_expired(self) -> int:
        """Remove expired entries.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        expired_keys = [key for key, entry in self._entries.items() if entry.is_expired(now)]

        for key in expired_keys:
            del self._entries[key]

        if expired_keys:
            logger.info("Removed expired entries", cache=self.name, count=len(expired_keys))

        return len(expired_keys)

    def clear(self) -> None:
        """Clear all cache entries."""
        self._entries.clear()
        logger.info("Cache cleared", cache=self.name)

    def now(self) -> float:
        """Current time on the cache clock."""
        return self._clock()

    def items(self) -> List[Tuple[str, CacheEntry[V]]]:
        """Snapshot of (key, entry) pairs, expired ones included."""
        return list(self._entries.items())

    def size(self) -> int:
        return len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
