"""Cross-source booking search.

Fans one lookup id out over every configured microsite at once. The match
reported is the one from the first source in configuration order that has
it, so the answer does not depend on which upstream happens to reply first.
"""

import asyncio
import logging
import time
from dataclasses import replace

import httpx

from config import Settings
from errors import SourceUnavailableError, UnknownSourceError
from services.cache import BookingCache, LookupResult, SourceOutcome
from services.travel_compositor import TravelCompositorClient

logger = logging.getLogger(__name__)

MULTI_KEY_PREFIX = "multi_"


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


class BookingSearch:
    def __init__(self, clients: list[TravelCompositorClient], cache: BookingCache):
        self.clients = clients
        self.cache = cache
        self._by_source = {c.source_id: c for c in clients}
        self._inflight: dict[str, asyncio.Task] = {}

    @classmethod
    def from_settings(cls, settings: Settings, http: httpx.AsyncClient, cache: BookingCache) -> "BookingSearch":
        """Build one client per configured source, skipping excluded ones."""
        for source in settings.sources:
            if source.source_id in settings.excluded_sources:
                logger.warning("Skipping source %s (%s): excluded by configuration", source.source_id, source.name)

        clients = [
            TravelCompositorClient(
                source,
                http,
                cache,
                windows=settings.booking_windows,
                page_size=settings.page_size,
                max_pages=settings.max_pages,
                timeout=settings.request_timeout,
            )
            for source in settings.active_sources
        ]
        logger.info("Booking search ready with %d sources", len(clients))
        return cls(clients, cache)

    @property
    def source_ids(self) -> list[str]:
        return [c.source_id for c in self.clients]

    def get_client(self, source_id: str) -> TravelCompositorClient:
        client = self._by_source.get(source_id)
        if client is None:
            raise UnknownSourceError(source_id, self.source_ids)
        return client

    async def find_in_source(self, source_id: str, lookup_id: str) -> dict | None:
        """Search one source directly. Its errors reach the caller."""
        return await self.get_client(source_id).find_booking(lookup_id)

    async def _search_source(self, client: TravelCompositorClient, lookup_id: str) -> tuple[dict | None, SourceOutcome]:
        try:
            # The count comes from the same outcome as the match, never a second fetch
            result = await client.search(lookup_id)
        except SourceUnavailableError as e:
            logger.warning("Source %s failed during search for %s: %s", client.source_id, lookup_id, e)
            return None, SourceOutcome(client.source_id, False, 0, error=str(e))
        except Exception as e:
            logger.exception("Unexpected error searching %s for %s", client.source_id, lookup_id)
            return None, SourceOutcome(client.source_id, False, 0, error=str(e) or type(e).__name__)
        record_count = result.per_source_outcomes[0].record_count
        return result.match, SourceOutcome(client.source_id, result.match is not None, record_count)

    async def _search_all(self, lookup_id: str, key: str) -> LookupResult:
        started = time.perf_counter()
        logger.info("Multi-source search for %s across %d sources", lookup_id, len(self.clients))

        results = await asyncio.gather(*[self._search_source(c, lookup_id) for c in self.clients])

        # gather keeps configuration order regardless of completion order
        match = None
        source_of_match = None
        for client, (booking, _outcome) in zip(self.clients, results):
            if booking is not None:
                match = booking
                source_of_match = client.source_id
                break

        result = LookupResult(
            match=match,
            source_of_match=source_of_match,
            per_source_outcomes=tuple(outcome for _booking, outcome in results),
            search_duration_ms=f"{_elapsed_ms(started)}ms",
        )
        self.cache.put_lookup_result(key, result)
        logger.info(
            "Multi-source search for %s complete in %s (found in: %s)",
            lookup_id,
            result.search_duration_ms,
            source_of_match,
        )
        return result

    async def find_across_sources(self, lookup_id: str) -> LookupResult:
        """Search every source, caching the merged outcome (found or not)."""
        started = time.perf_counter()
        key = f"{MULTI_KEY_PREFIX}{lookup_id}"

        cached = self.cache.get_lookup_result(key)
        if cached is not None:
            return replace(cached, search_duration_ms=f"{_elapsed_ms(started)}ms (cached)")

        # Concurrent searches for the same id share one fan-out
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._search_all(lookup_id, key))
            self._inflight[key] = task
            task.add_done_callback(lambda _t: self._inflight.pop(key, None))
        return await asyncio.shield(task)
