"""Health and readiness check routes."""

import asyncio
import logging

from fastapi import APIRouter, Depends, Request

from dependencies import get_booking_search
from errors import SourceUnavailableError
from services.booking_search import BookingSearch

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/ready")
async def ready(request: Request) -> dict:
    """Lightweight readiness check — no external calls."""
    return {"status": "ok", "service": "booking-lookup-api", "commit": request.app.state.settings.git_sha}


@router.get("/health")
async def health(request: Request, search: BookingSearch = Depends(get_booking_search)) -> dict:
    """Deep health check that authenticates against every source."""

    async def check(client) -> tuple[str, str | None]:
        try:
            await client.authenticate()
            return "connected", None
        except SourceUnavailableError as e:
            logger.warning("Health check failed for %s: %s", client.source_id, e)
            return "error", str(e)

    checks = await asyncio.gather(*[check(c) for c in search.clients])

    sources = {}
    for client, (state, error) in zip(search.clients, checks):
        sources[client.source_id] = {"status": state}
        if error:
            sources[client.source_id]["error"] = error

    if not sources:
        status = "not_configured"
    elif all(s["status"] == "connected" for s in sources.values()):
        status = "ok"
    else:
        status = "degraded"

    return {
        "status": status,
        "service": "booking-lookup-api",
        "commit": request.app.state.settings.git_sha,
        "sources": sources,
    }
