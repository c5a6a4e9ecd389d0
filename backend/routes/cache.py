"""Operator routes for inspecting and resetting the booking cache."""

import logging

from fastapi import APIRouter, Depends

from dependencies import get_cache
from services.cache import BookingCache

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cache")


@router.get("/stats")
async def cache_stats(cache: BookingCache = Depends(get_cache)) -> dict:
    return cache.stats()


@router.post("/sweep")
async def sweep_cache(cache: BookingCache = Depends(get_cache)) -> dict:
    removed = cache.sweep_expired()
    return {"removed": removed, "stats": cache.stats()}


@router.post("/clear")
async def clear_cache(cache: BookingCache = Depends(get_cache)) -> dict:
    logger.info("Manual cache reset requested")
    cache.clear_all()
    return {"status": "cleared", "stats": cache.stats()}
