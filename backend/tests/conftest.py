"""Shared fixtures: a fake Travel Compositor upstream served over MockTransport."""

import asyncio
import json
from collections import Counter

import httpx
import pytest
import pytest_asyncio

from config import SourceConfig
from services.cache import BookingCache
from services.travel_compositor import AUTH_PATH, BOOKINGS_PATH, TravelCompositorClient

BASE_URL = "https://tc.test"
FULL_YEAR = [("20250101", "20251231")]


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTravelCompositor:
    """In-memory stand-in for the upstream API, counting every call."""

    def __init__(self, bookings: dict[str, list[dict]] | None = None):
        self.bookings = bookings or {}
        self.window_bookings: dict[tuple[str, str], list[dict]] = {}
        self.failing_auth: set[str] = set()
        self.failing_windows: set[tuple[str, str]] = set()
        self.timing_out: set[str] = set()
        self.rejected_tokens: set[str] = set()
        self.delays: dict[str, float] = {}
        self.token_lifetime = 3600
        self.auth_calls: Counter = Counter()
        self.booking_calls: Counter = Counter()
        self.completed: list[str] = []
        self.timeouts: list[tuple[str, dict]] = []

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.timeouts.append((request.url.path, request.extensions.get("timeout")))

        if request.url.path == AUTH_PATH:
            microsite = json.loads(request.content)["micrositeId"]
            self.auth_calls[microsite] += 1
            if microsite in self.failing_auth:
                return httpx.Response(401, json={"error": "invalid credentials"})
            # Each login hands out a new token: token-<microsite>-<n>
            return httpx.Response(
                200,
                json={
                    "token": f"token-{microsite}-{self.auth_calls[microsite]}",
                    "expirationInSeconds": self.token_lifetime,
                },
            )

        if request.url.path == BOOKINGS_PATH:
            params = request.url.params
            microsite = params["microsite"]
            token = request.headers.get("auth-token", "")
            if not token.startswith(f"token-{microsite}-") or token in self.rejected_tokens:
                return httpx.Response(401)
            self.booking_calls[microsite] += 1
            if microsite in self.timing_out:
                raise httpx.ReadTimeout("read timed out", request=request)
            if microsite in self.delays:
                await asyncio.sleep(self.delays[microsite])
            self.completed.append(microsite)
            if (microsite, params["from"]) in self.failing_windows:
                return httpx.Response(500, json={"error": "upstream exploded"})

            records = self.window_bookings.get((microsite, params["from"]), self.bookings.get(microsite, []))
            first, limit = int(params["first"]), int(params["limit"])
            return httpx.Response(200, json={"bookedTrip": records[first : first + limit]})

        return httpx.Response(404)


def make_source(source_id: str) -> SourceConfig:
    return SourceConfig(
        source_id=source_id,
        username=f"user-{source_id}",
        password="secret",
        microsite_id=source_id,
        name=f"Microsite {source_id}",
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return BookingCache(clock=clock)


@pytest.fixture
def upstream():
    return FakeTravelCompositor(
        {
            "A": [{"id": "RRP-1"}, {"id": "RRP-2"}],
            "B": [{"id": "RRP-3"}],
        }
    )


@pytest_asyncio.fixture
async def http(upstream):
    async with httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(upstream.handler)) as client:
        yield client


@pytest.fixture
def make_client(http, cache):
    def _make(source_id: str, windows=FULL_YEAR, **kwargs) -> TravelCompositorClient:
        return TravelCompositorClient(make_source(source_id), http, cache, windows=windows, **kwargs)

    return _make
