"""FastAPI dependencies resolving the services created at startup."""

from fastapi import Request

from services.booking_search import BookingSearch
from services.cache import BookingCache


def get_booking_search(request: Request) -> BookingSearch:
    return request.app.state.booking_search


def get_cache(request: Request) -> BookingCache:
    return request.app.state.cache
