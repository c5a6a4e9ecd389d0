"""Travel Compositor client — one authenticated microsite per instance.

Fetches every booking a microsite exposes by querying several date windows
in parallel, merges them into one de-duplicated, id-sorted set and keeps it
in the shared BookingCache. Single-source searches scan that set.
"""

import asyncio
import enum
import logging
import re
import time
import uuid
from dataclasses import dataclass, field

import httpx

from config import SourceConfig
from errors import SourceAuthenticationError, SourceUnavailableError
from services.cache import BookingCache, LookupResult, SourceOutcome

logger = logging.getLogger(__name__)

AUTH_PATH = "/resources/authentication/authenticate"
BOOKINGS_PATH = "/resources/booking/getBookings"
USER_AGENT = "BookingLookupService/1.0"

# Refresh tokens this many seconds before the upstream expiry
TOKEN_REFRESH_MARGIN_SECONDS = 60
DEFAULT_TOKEN_LIFETIME_SECONDS = 7200

# Identifier-bearing fields checked when resolving a lookup id, in order
ID_FIELDS = ("id", "bookingId", "reservationId", "bookingReference", "reference", "tripId")


class FetchStatus(str, enum.Enum):
    COMPLETE = "complete"  # every window answered
    PARTIAL = "partial"  # some windows failed and contributed nothing
    FAILED = "failed"  # no window answered


@dataclass
class BookingFetch:
    """Merged result of all date-window sub-requests for one source."""

    source_id: str
    records: list[dict]
    status: FetchStatus
    window_errors: dict[str, str] = field(default_factory=dict)


def _numeric_id(record: dict) -> int:
    digits = re.sub(r"\D", "", str(record.get("id") or ""))
    return int(digits) if digits else 0


def merge_bookings(batches: list[list[dict]]) -> list[dict]:
    """Union of batches, first occurrence of an id wins, sorted by numeric id."""
    merged: list[dict] = []
    seen: set[str] = set()
    for batch in batches:
        for record in batch:
            record_id = record.get("id")
            if record_id is not None:
                key = str(record_id)
                if key in seen:
                    continue
                seen.add(key)
            merged.append(record)
    merged.sort(key=_numeric_id)
    return merged


def _candidate_ids(record: dict) -> list[str]:
    return [str(record[f]).lower() for f in ID_FIELDS if record.get(f)]


def match_booking(records: list[dict], lookup_id: str) -> dict | None:
    """Find the booking a lookup id refers to.

    Exact (case-insensitive) equality on any id field wins over everything.
    Otherwise the first record whose id field contains the query, or is
    contained in it, is returned.
    """
    query = lookup_id.strip().lower()
    if not query:
        return None

    for record in records:
        if query in _candidate_ids(record):
            return record

    for record in records:
        if any(query in candidate or candidate in query for candidate in _candidate_ids(record)):
            return record
    return None


def _extract_bookings(payload) -> list[dict]:
    if isinstance(payload, dict):
        payload = payload.get("bookedTrip") or payload.get("bookings") or []
    if not isinstance(payload, list):
        return []
    return [r for r in payload if isinstance(r, dict)]


class TravelCompositorClient:
    """Client for a single microsite, sharing an HTTP client and a cache."""

    def __init__(
        self,
        source: SourceConfig,
        http: httpx.AsyncClient,
        cache: BookingCache,
        windows: list[tuple[str, str]],
        page_size: int = 1000,
        max_pages: int = 5,
        timeout: float = 15.0,
    ):
        self.source = source
        self.http = http
        self.cache = cache
        self.windows = windows
        self.page_size = page_size
        self.max_pages = max_pages
        self.timeout = timeout
        self.trace_id = f"TC-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"

        self._token: str | None = None
        self._token_expiry: float = 0.0
        self._fetch_lock = asyncio.Lock()

    @property
    def source_id(self) -> str:
        return self.source.source_id

    def _headers(self) -> dict:
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Accept-Encoding": "gzip",
            "Travelc-Trace-Id": self.trace_id,
            "User-Agent": USER_AGENT,
        }

    async def authenticate(self) -> str:
        """Obtain a fresh auth token. Raises SourceAuthenticationError."""
        logger.info("Authenticating with %s", self.source.name)
        try:
            resp = await self.http.post(
                AUTH_PATH,
                json={
                    "username": self.source.username,
                    "password": self.source.password,
                    "micrositeId": self.source.microsite_id,
                },
                headers=self._headers(),
                timeout=self.timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as e:
            raise SourceAuthenticationError(self.source_id, f"HTTP {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            raise SourceAuthenticationError(self.source_id, str(e) or type(e).__name__) from e

        token = data.get("token") if isinstance(data, dict) else None
        if not token:
            raise SourceAuthenticationError(self.source_id, "no token received")

        lifetime = data.get("expirationInSeconds") or DEFAULT_TOKEN_LIFETIME_SECONDS
        self._token = token
        self._token_expiry = time.time() + lifetime - TOKEN_REFRESH_MARGIN_SECONDS
        return token

    async def ensure_token(self) -> str:
        if self._token is None or time.time() >= self._token_expiry:
            return await self.authenticate()
        return self._token

    async def _fetch_window(self, token: str, start: str, end: str) -> list[dict]:
        """Page through one date window. Any failure propagates to the caller."""
        records: list[dict] = []
        headers = {**self._headers(), "auth-token": token}
        for page in range(self.max_pages):
            resp = await self.http.get(
                BOOKINGS_PATH,
                params={
                    "microsite": self.source.microsite_id,
                    "from": start,
                    "to": end,
                    "first": page * self.page_size,
                    "limit": self.page_size,
                },
                headers=headers,
                timeout=self.timeout,
            )
            if resp.status_code == 401 and self._token == token:
                # Rejected upstream: authenticate again on the next fetch
                self._token = None
            resp.raise_for_status()
            batch = _extract_bookings(resp.json())
            records.extend(batch)
            if len(batch) < self.page_size:
                break
        return records

    async def _safe_fetch_window(self, token: str, start: str, end: str) -> list[dict] | str:
        """Window records, or the error message if the window failed."""
        try:
            return await self._fetch_window(token, start, end)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Booking window %s-%s failed for %s: %s", start, end, self.source_id, e)
            return str(e) or type(e).__name__

    async def fetch_bookings(self) -> BookingFetch:
        """Query every window upstream, bypassing the cache."""
        token = await self.ensure_token()
        results = await asyncio.gather(
            *[self._safe_fetch_window(token, start, end) for start, end in self.windows]
        )

        batches = [r for r in results if isinstance(r, list)]
        window_errors = {
            f"{start}-{end}": r for (start, end), r in zip(self.windows, results) if isinstance(r, str)
        }
        if not window_errors:
            status = FetchStatus.COMPLETE
        elif batches:
            status = FetchStatus.PARTIAL
        else:
            status = FetchStatus.FAILED

        return BookingFetch(
            source_id=self.source_id,
            records=merge_bookings(batches),
            status=status,
            window_errors=window_errors,
        )

    async def get_all_bookings(self) -> list[dict]:
        """All bookings of this source, served from cache when fresh."""
        cached = self.cache.get_record_set(self.source_id)
        if cached is not None:
            return cached

        async with self._fetch_lock:
            # Another task may have filled the cache while we waited
            cached = self.cache.get_record_set(self.source_id)
            if cached is not None:
                return cached

            logger.info("Fetching bookings from %s", self.source_id)
            fetch = await self.fetch_bookings()
            if fetch.status is FetchStatus.FAILED:
                reasons = "; ".join(f"{w}: {err}" for w, err in fetch.window_errors.items())
                raise SourceUnavailableError(self.source_id, f"all booking windows failed ({reasons})")
            if fetch.status is FetchStatus.PARTIAL:
                logger.warning(
                    "Partial fetch for %s: %d of %d windows failed",
                    self.source_id,
                    len(fetch.window_errors),
                    len(self.windows),
                )

            self.cache.put_record_set(self.source_id, fetch.records)
            logger.info("Fetch complete: %d bookings from %s", len(fetch.records), self.source_id)
            return list(fetch.records)

    def lookup_key(self, lookup_id: str) -> str:
        return f"{self.source_id}:{lookup_id}"

    async def search(self, lookup_id: str) -> LookupResult:
        """Search this source only, returning the cached outcome with its record count.

        Upstream failures propagate.
        """
        key = self.lookup_key(lookup_id)
        cached = self.cache.get_lookup_result(key)
        if cached is not None:
            return cached

        started = time.perf_counter()
        records = await self.get_all_bookings()
        booking = match_booking(records, lookup_id)

        result = LookupResult(
            match=booking,
            source_of_match=self.source_id if booking else None,
            per_source_outcomes=(SourceOutcome(self.source_id, booking is not None, len(records)),),
            search_duration_ms=f"{int((time.perf_counter() - started) * 1000)}ms",
        )
        self.cache.put_lookup_result(key, result)
        if booking:
            logger.info("Found %s in %s", lookup_id, self.source_id)
        else:
            logger.info("%s not found in %s", lookup_id, self.source_id)
        return result

    async def find_booking(self, lookup_id: str) -> dict | None:
        """Search this source only. Upstream failures propagate."""
        return (await self.search(lookup_id)).match
