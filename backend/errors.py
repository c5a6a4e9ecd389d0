"""Custom exceptions and centralized FastAPI error handlers."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class BookingLookupError(Exception):
    """Base exception with HTTP status code."""

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.status_code = status_code


class SourceUnavailableError(BookingLookupError):
    """An upstream source could not be reached or returned nothing usable."""

    def __init__(self, source_id: str, reason: str):
        super().__init__(f"Source {source_id} unavailable: {reason}", status_code=502)
        self.source_id = source_id


class SourceAuthenticationError(SourceUnavailableError):
    def __init__(self, source_id: str, reason: str):
        super().__init__(source_id, f"authentication failed ({reason})")


class UnknownSourceError(BookingLookupError):
    def __init__(self, source_id: str, configured: list[str]):
        super().__init__(
            f"Unknown source: {source_id}. Configured: {configured}",
            status_code=404,
        )


def register_error_handlers(app: FastAPI) -> None:
    """Register centralized exception handlers on the FastAPI app."""

    @app.exception_handler(BookingLookupError)
    async def handle_lookup_error(_request: Request, exc: BookingLookupError):
        return JSONResponse({"error": str(exc)}, status_code=exc.status_code)

    @app.exception_handler(ValueError)
    async def handle_value_error(_request: Request, exc: ValueError):
        return JSONResponse({"error": str(exc)}, status_code=400)

    @app.exception_handler(Exception)
    async def handle_unexpected(_request: Request, exc: Exception):
        logger.exception("Unhandled error: %s", exc)
        return JSONResponse(
            {"error": "Internal server error"},
            status_code=500,
        )
