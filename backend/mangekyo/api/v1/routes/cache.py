"""Cache management API routes."""

import re

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from mangekyo.api.dependencies import Orchestrator

router = APIRouter()


class CacheStatsResponse(BaseModel):
    """Cache statistics response."""
    hits: int
    misses: int
    memory_hits: int
    fuzzy_hits: int
    persistent_hits: int
    evictions: int
    compressed_savings: int
    memory_size: int
    memory_capacity: int
    persistent_errors: int
    preload_queue_size: int
    preloaded: int
    hit_rate: float


class InvalidateRequest(BaseModel):
    pattern: str = Field(..., min_length=1, description="Substring, manga id or regex")
    regex: bool = False


class InvalidateResponse(BaseModel):
    pattern: str
    entries_deleted: int


@router.get("/cache/stats")
async def get_cache_stats(orchestrator: Orchestrator) -> CacheStatsResponse:
    """Get cache hit/miss counters and tier sizes."""
    stats = orchestrator.cache.get_stats()
    return CacheStatsResponse(**stats.model_dump(), hit_rate=stats.hit_rate)


@router.post("/cache/invalidate")
async def invalidate_cache(body: InvalidateRequest, orchestrator: Orchestrator) -> InvalidateResponse:
    """Remove cached translations matching a pattern."""
    if body.regex:
        try:
            pattern = re.compile(body.pattern)
        except re.error as e:
            raise HTTPException(status_code=400, detail=f"Invalid regex: {e}")
        removed = await orchestrator.cache.invalidate(pattern)
    else:
        removed = await orchestrator.cache.invalidate(body.pattern)
    return InvalidateResponse(pattern=body.pattern, entries_deleted=removed)


@router.post("/cache/manga/{manga_id}/invalidate")
async def invalidate_manga(manga_id: str, orchestrator: Orchestrator) -> InvalidateResponse:
    """Remove every cached translation of a manga."""
    removed = await orchestrator.invalidate_manga(manga_id)
    return InvalidateResponse(pattern=manga_id, entries_deleted=removed)


@router.post("/cache/sweep")
async def sweep_cache(orchestrator: Orchestrator) -> dict:
    """Delete expired entries and trim the persistent tier."""
    return await orchestrator.cache.sweep()
