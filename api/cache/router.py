"""
Cache observability endpoint.
"""

from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(prefix="/api/cache")


@router.get("/stats")
async def cache_stats(request: Request) -> dict:
    return request.app.state.cache.snapshot()
