"""Booking lookup routes.

GET /bookings/{lookup_id}                      → search every source
GET /sources                                   → configured sources
GET /sources/{source_id}/bookings/{lookup_id}  → search one source
"""

import logging

from fastapi import APIRouter, Depends, Request

from dependencies import get_booking_search
from services.booking_search import BookingSearch

logger = logging.getLogger(__name__)

router = APIRouter()


def _validate_lookup_id(lookup_id: str) -> str:
    lookup_id = lookup_id.strip()
    if not lookup_id:
        raise ValueError("Booking ID is required")
    return lookup_id


@router.get("/bookings/{lookup_id}")
async def find_booking(lookup_id: str, search: BookingSearch = Depends(get_booking_search)) -> dict:
    """Look a booking up across all sources.

    Always answers 200: sources that failed show up with an ``error`` in
    ``per_source_outcomes``, so a null match plus errors means "unknown"
    rather than "not found".
    """
    lookup_id = _validate_lookup_id(lookup_id)
    result = await search.find_across_sources(lookup_id)

    failed = [o.source for o in result.per_source_outcomes if o.error]
    if result.match is not None:
        _summary = f"Booking {lookup_id} found in {result.source_of_match} ({result.search_duration_ms})"
    else:
        _summary = f"Booking {lookup_id} not found in {len(result.per_source_outcomes)} sources ({result.search_duration_ms})"
    if failed:
        _summary += f"; unavailable: {', '.join(failed)}"

    return {"_summary": _summary, **result.to_dict()}


@router.get("/sources")
async def list_sources(request: Request, search: BookingSearch = Depends(get_booking_search)) -> dict:
    configured = request.app.state.settings
    return {
        "sources": [{"source_id": c.source_id, "name": c.source.name} for c in search.clients],
        "excluded": sorted(configured.excluded_sources),
    }


@router.get("/sources/{source_id}/bookings/{lookup_id}")
async def find_booking_in_source(
    source_id: str,
    lookup_id: str,
    search: BookingSearch = Depends(get_booking_search),
) -> dict:
    """Look a booking up in one source. Upstream failures answer 502."""
    lookup_id = _validate_lookup_id(lookup_id)
    booking = await search.find_in_source(source_id, lookup_id)
    return {"source": source_id, "match": booking}
