"""In-memory TTL cache for booking sets and lookup results. No Redis needed.

Two independent tables:
- record sets: every booking fetched from one source, keyed by source id
- lookup results: the outcome of one search, keyed by lookup key

Note: Each uvicorn worker has its own cache instance. With --workers 2,
a source may be fetched twice (once per worker). The cache still removes
repeated upstream calls within the same worker.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable

logger = logging.getLogger(__name__)

RECORD_SET_TTL_SECONDS = 5 * 60
LOOKUP_TTL_SECONDS = 2 * 60
SWEEP_INTERVAL_SECONDS = 5 * 60


@dataclass(frozen=True)
class SourceOutcome:
    """What one source reported during a search."""

    source: str
    found: bool
    record_count: int
    error: str | None = None

    def to_dict(self) -> dict:
        data = {"source": self.source, "found": self.found, "record_count": self.record_count}
        if self.error:
            data["error"] = self.error
        return data


@dataclass(frozen=True)
class LookupResult:
    """Outcome of a search. ``match`` is None for a confirmed not-found."""

    match: dict | None
    source_of_match: str | None = None
    per_source_outcomes: tuple[SourceOutcome, ...] = ()
    search_duration_ms: str = "0ms"

    def to_dict(self) -> dict:
        return {
            "match": self.match,
            "source_of_match": self.source_of_match,
            "per_source_outcomes": [o.to_dict() for o in self.per_source_outcomes],
            "search_duration_ms": self.search_duration_ms,
        }


@dataclass(frozen=True)
class CachedRecordSet:
    source_id: str
    records: list[dict] = field(repr=False)
    cached_at: float
    ttl: float


@dataclass(frozen=True)
class CachedLookupResult:
    lookup_key: str
    result: LookupResult
    cached_at: float
    ttl: float


def _is_stale(entry: Any, now: float) -> bool:
    return now - entry.cached_at > entry.ttl


class BookingCache:
    def __init__(
        self,
        record_set_ttl: float = RECORD_SET_TTL_SECONDS,
        lookup_ttl: float = LOOKUP_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.record_set_ttl = record_set_ttl
        self.lookup_ttl = lookup_ttl
        self._clock = clock
        self._record_sets: dict[str, CachedRecordSet] = {}
        self._lookups: dict[str, CachedLookupResult] = {}

    def get_record_set(self, source_id: str) -> list[dict] | None:
        entry = self._record_sets.get(source_id)
        if entry is None:
            return None
        if _is_stale(entry, self._clock()):
            del self._record_sets[source_id]
            return None
        return list(entry.records)

    def put_record_set(self, source_id: str, records: list[dict]) -> None:
        self._record_sets[source_id] = CachedRecordSet(
            source_id=source_id,
            records=list(records),
            cached_at=self._clock(),
            ttl=self.record_set_ttl,
        )
        logger.info("Cached %d bookings for %s", len(records), source_id)

    def get_lookup_result(self, lookup_key: str) -> LookupResult | None:
        entry = self._lookups.get(lookup_key)
        if entry is None:
            return None
        if _is_stale(entry, self._clock()):
            del self._lookups[lookup_key]
            return None
        logger.info("Cache hit for search: %s", lookup_key)
        return entry.result

    def put_lookup_result(self, lookup_key: str, result: LookupResult) -> None:
        self._lookups[lookup_key] = CachedLookupResult(
            lookup_key=lookup_key,
            result=result,
            cached_at=self._clock(),
            ttl=self.lookup_ttl,
        )
        logger.info("Cached search result for: %s", lookup_key)

    def sweep_expired(self) -> int:
        """Drop every entry older than its TTL. Returns how many were removed."""
        now = self._clock()
        removed = 0
        for table in (self._record_sets, self._lookups):
            for key in [k for k, entry in table.items() if _is_stale(entry, now)]:
                del table[key]
                removed += 1
        return removed

    def stats(self) -> dict:
        now = self._clock()
        record_ages = [now - e.cached_at for e in self._record_sets.values()]
        lookup_ages = [now - e.cached_at for e in self._lookups.values()]
        return {
            "record_set_count": len(self._record_sets),
            "lookup_count": len(self._lookups),
            "oldest_record_set_age_seconds": int(max(record_ages, default=0)),
            "oldest_lookup_age_seconds": int(max(lookup_ages, default=0)),
        }

    def clear_all(self) -> None:
        self._record_sets.clear()
        self._lookups.clear()
        logger.info("All cache cleared")


async def run_periodic_sweep(cache: BookingCache, interval_seconds: float = SWEEP_INTERVAL_SECONDS) -> None:
    """Sweep expired entries forever, once per interval. Cancel to stop."""
    while True:
        await asyncio.sleep(interval_seconds)
        removed = cache.sweep_expired()
        if removed:
            logger.info("Cache sweep removed %d expired entries", removed)
