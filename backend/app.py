"""FastAPI application entry point for the booking lookup API."""

import asyncio
import contextlib
import logging
import sys

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from config import Settings, settings
from errors import register_error_handlers
from services.booking_search import BookingSearch
from services.cache import BookingCache, run_periodic_sweep

# Structured logging: JSON for production, human-readable for local
if settings.is_production:
    logging.basicConfig(
        level=logging.INFO,
        format='{"time":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s","message":"%(message)s"}',
        stream=sys.stdout,
    )
else:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

logger = logging.getLogger(__name__)


def create_app(
    app_settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Build the app. ``transport`` replaces the network layer (tests)."""
    app_settings = app_settings or settings
    app = FastAPI(title="Booking Lookup API", version="1.0.0")
    app.state.settings = app_settings

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Security headers
    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response: Response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        if app_settings.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response

    # Centralized error handlers
    register_error_handlers(app)

    from routes.bookings import router as bookings_router
    from routes.cache import router as cache_router
    from routes.health import router as health_router

    app.include_router(health_router)
    app.include_router(bookings_router)
    app.include_router(cache_router)

    @app.on_event("startup")
    async def _start_services() -> None:
        missing = app_settings.validate()
        if missing:
            logger.warning("Missing env vars (booking lookups will find nothing): %s", ", ".join(missing))

        app.state.http = httpx.AsyncClient(
            base_url=app_settings.tc_base_url,
            timeout=app_settings.request_timeout,
            transport=transport,
        )
        app.state.cache = BookingCache(
            record_set_ttl=app_settings.record_set_ttl,
            lookup_ttl=app_settings.lookup_ttl,
        )
        app.state.booking_search = BookingSearch.from_settings(app_settings, app.state.http, app.state.cache)
        app.state.sweeper = asyncio.create_task(run_periodic_sweep(app.state.cache, app_settings.sweep_interval))

    @app.on_event("shutdown")
    async def _stop_services() -> None:
        app.state.sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await app.state.sweeper
        await app.state.http.aclose()

    return app


app = create_app()
