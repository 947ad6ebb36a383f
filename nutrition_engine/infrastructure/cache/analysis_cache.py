"""
In-memory analysis result cache.

Keeps complete AnalysisResults by request fingerprint (SHA-256 of the image
or of the normalized text) so a repeated photo or description never reaches
an AI backend twice. Optionally mirrored to a JSON file so results survive
a restart.
"""

import asyncio
import json
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Callable, Dict, Optional, Union

import structlog

from nutrition_engine.domain.analysis.entities.analysis_result import AnalysisResult

logger = structlog.get_logger(__name__)

DEFAULT_TTL_HOURS = 36
DEFAULT_MAX_SIZE = 1000


@dataclass
class _Entry:
    result: AnalysisResult
    stored_at: float
    last_accessed: float
    access_count: int = 1


@dataclass(frozen=True)
class CacheStats:
    """Snapshot of cache counters."""

    total_requests: int
    cache_hits: int
    cache_misses: int
    hit_rate: int  # percent, rounded
    current_size: int
    max_size: int
    total_evictions: int
    oldest_entry: Optional[float] = None  # epoch seconds
    newest_entry: Optional[float] = None

    def to_dict(self) -> dict:
        return asdict(self)


class InMemoryAnalysisCache:
    """Analysis cache with TTL, a size bound and hit statistics.

    Inserting a new fingerprint at capacity evicts the least recently
    accessed entry. Store failures (including persistence) are logged and
    swallowed; a cache must never fail the request it is caching.

    Example:
        >>> cache = InMemoryAnalysisCache(ttl_hours=36, max_size=1000)
        >>> await cache.set(request.fingerprint(), result)
        >>> await cache.get(request.fingerprint()) == result
        True
    """

    def __init__(
        self,
        ttl_hours: float = DEFAULT_TTL_HOURS,
        max_size: int = DEFAULT_MAX_SIZE,
        persistence_file: Optional[Union[str, Path]] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if ttl_hours <= 0:
            raise ValueError(f"TTL must be positive, got {ttl_hours}")
        if max_size <= 0:
            raise ValueError(f"Max size must be positive, got {max_size}")

        self.ttl_seconds = ttl_hours * 3600
        self.max_size = max_size
        self.persistence_file = Path(persistence_file) if persistence_file else None
        self._clock = clock
        self._entries: Dict[str, _Entry] = {}
        self._lock = asyncio.Lock()
        self._persist_lock = asyncio.Lock()

        self._total_requests = 0
        self._hits = 0
        self._misses = 0
        self._evictions = 0

        logger.info(
            "Analysis cache initialized",
            max_size=max_size,
            ttl_hours=ttl_hours,
            persistence=bool(self.persistence_file),
        )

    def _is_expired(self, entry: _Entry, now: float) -> bool:
        return now - entry.stored_at > self.ttl_seconds

    async def get(self, fingerprint: str) -> Optional[AnalysisResult]:
        async with self._lock:
            self._total_requests += 1
            entry = self._entries.get(fingerprint)

            if entry is None:
                self._misses += 1
                logger.debug("Cache miss", fingerprint=fingerprint[:20])
                return None

            now = self._clock()
            if self._is_expired(entry, now):
                del self._entries[fingerprint]
                self._misses += 1
                logger.debug(
                    "Cache expired",
                    fingerprint=fingerprint[:20],
                    age_hours=round((now - entry.stored_at) / 3600, 1),
                )
                return None

            entry.access_count += 1
            entry.last_accessed = now
            self._hits += 1
            logger.debug(
                "Cache hit",
                fingerprint=fingerprint[:20],
                access_count=entry.access_count,
            )
            return entry.result

    async def set(self, fingerprint: str, result: AnalysisResult) -> None:
        async with self._lock:
            try:
                now = self._clock()
                if fingerprint not in self._entries and len(self._entries) >= self.max_size:
                    self._evict_least_recent()

                self._entries[fingerprint] = _Entry(result=result, stored_at=now, last_accessed=now)
                logger.debug(
                    "Cache set",
                    fingerprint=fingerprint[:20],
                    size=len(self._entries),
                    max_size=self.max_size,
                )
            except Exception as e:
                logger.error("Cache set failed", fingerprint=fingerprint[:20], error=str(e))
                return
        await self._persist()

    async def has(self, fingerprint: str) -> bool:
        """Check presence without touching statistics."""
        async with self._lock:
            entry = self._entries.get(fingerprint)
            if entry is None:
                return False
            if self._is_expired(entry, self._clock()):
                del self._entries[fingerprint]
                return False
            return True

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()
            logger.info("Cache cleared")
        await self._persist()

    async def cleanup_expired(self) -> int:
        """Remove expired entries.

        Returns:
            Number of entries removed
        """
        async with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if self._is_expired(entry, now)]
            for key in expired:
                del self._entries[key]

            if expired:
                logger.info("Cache cleanup", removed=len(expired))

        if expired:
            await self._persist()
        return len(expired)

    def get_stats(self) -> CacheStats:
        stamps = [entry.stored_at for entry in self._entries.values()]
        hit_rate = round(self._hits / self._total_requests * 100) if self._total_requests else 0
        return CacheStats(
            total_requests=self._total_requests,
            cache_hits=self._hits,
            cache_misses=self._misses,
            hit_rate=hit_rate,
            current_size=len(self._entries),
            max_size=self.max_size,
            total_evictions=self._evictions,
            oldest_entry=min(stamps) if stamps else None,
            newest_entry=max(stamps) if stamps else None,
        )

    def size(self) -> int:
        return len(self._entries)

    def _evict_least_recent(self) -> None:
        oldest_key = min(self._entries, key=lambda key: self._entries[key].last_accessed)
        del self._entries[oldest_key]
        self._evictions += 1
        logger.debug("Cache eviction", fingerprint=oldest_key[:20])

    # ---- Persistence ----

    async def _persist(self) -> None:
        """Mirror entries to disk without holding the cache lock.

        The snapshot is taken when the write starts, so writes queued behind
        each other always leave the newest state on disk.
        """
        if not self.persistence_file:
            return
        async with self._persist_lock:
            try:
                payload = self._snapshot()
                await asyncio.to_thread(self._write_payload, self.persistence_file, payload)
            except Exception as e:
                logger.error("Cache persist failed", path=str(self.persistence_file), error=str(e))

    def _snapshot(self) -> dict:
        return {
            "saved_at": self._clock(),
            "total_evictions": self._evictions,
            "entries": {
                key: {
                    "result": entry.result.to_dict(),
                    "stored_at": entry.stored_at,
                    "last_accessed": entry.last_accessed,
                    "access_count": entry.access_count,
                }
                for key, entry in self._entries.items()
            },
        }

    def _write_payload(self, path: Path, payload: dict) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(payload), encoding="utf-8")
        tmp_path.replace(path)

    def save_to_disk(self) -> None:
        """Write all entries to the persistence file (no-op without one)."""
        if not self.persistence_file:
            return
        self._write_payload(self.persistence_file, self._snapshot())

    def load_from_disk(self) -> int:
        """
        Restore unexpired entries from the persistence file.

        A missing file is not an error; an unreadable one is logged and
        ignored.

        Returns:
            Number of entries restored
        """
        if not self.persistence_file or not self.persistence_file.exists():
            return 0

        try:
            payload = json.loads(self.persistence_file.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.error("Cache load failed", path=str(self.persistence_file), error=str(e))
            return 0
        if not isinstance(payload, dict):
            logger.error("Cache load failed", path=str(self.persistence_file), error="not an object")
            return 0

        now = self._clock()
        restored = 0
        for key, raw in payload.get("entries", {}).items():
            try:
                entry = _Entry(
                    result=AnalysisResult.from_dict(raw["result"]),
                    stored_at=float(raw["stored_at"]),
                    last_accessed=float(raw.get("last_accessed", raw["stored_at"])),
                    access_count=int(raw.get("access_count", 1)),
                )
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping corrupt cache entry", fingerprint=key[:20], error=str(e))
                continue
            if self._is_expired(entry, now) or len(self._entries) >= self.max_size:
                continue
            self._entries[key] = entry
            restored += 1

        self._evictions = int(payload.get("total_evictions", 0))
        logger.info("Cache loaded from disk", restored=restored)
        return restored
