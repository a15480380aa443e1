"""
Trip API endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from cache.store import CacheStore

from . import service
from .aggregator import ResultAggregator
from .dependencies import filter_spec, get_aggregator, get_cache
from .schemas import FilterSpec

router = APIRouter(prefix="/api")


def _respond(response: Response, result: service.CachedResponse) -> dict:
    response.headers["X-Cache"] = "HIT" if result.hit else "MISS"
    return result.payload


@router.get("/trips")
async def list_trips(
    response: Response,
    spec: FilterSpec = Depends(filter_spec),
    cache: CacheStore = Depends(get_cache),
    aggregator: ResultAggregator = Depends(get_aggregator),
) -> dict:
    result = await service.list_trips(spec, cache=cache, aggregator=aggregator)
    return _respond(response, result)


@router.get("/trips/all")
async def list_all_trips(
    response: Response,
    spec: FilterSpec = Depends(filter_spec),
    cache: CacheStore = Depends(get_cache),
    aggregator: ResultAggregator = Depends(get_aggregator),
) -> dict:
    result = await service.list_all_trips(spec, cache=cache, aggregator=aggregator)
    return _respond(response, result)


@router.get("/trips/from/{origin}")
async def trips_from(
    origin: str,
    response: Response,
    spec: FilterSpec = Depends(filter_spec),
    cache: CacheStore = Depends(get_cache),
    aggregator: ResultAggregator = Depends(get_aggregator),
) -> dict:
    result = await service.trips_for(
        spec.with_filter("origin", origin),
        endpoint="trips_from",
        not_found="No trips found for this origin.",
        cache=cache,
        aggregator=aggregator,
    )
    return _respond(response, result)


@router.get("/trips/to/{destination}")
async def trips_to(
    destination: str,
    response: Response,
    spec: FilterSpec = Depends(filter_spec),
    cache: CacheStore = Depends(get_cache),
    aggregator: ResultAggregator = Depends(get_aggregator),
) -> dict:
    result = await service.trips_for(
        spec.with_filter("destination", destination),
        endpoint="trips_to",
        not_found="No trips found for this destination.",
        cache=cache,
        aggregator=aggregator,
    )
    return _respond(response, result)


@router.get("/trips/route/{origin}/{destination}")
async def trips_on_route(
    origin: str,
    destination: str,
    response: Response,
    spec: FilterSpec = Depends(filter_spec),
    cache: CacheStore = Depends(get_cache),
    aggregator: ResultAggregator = Depends(get_aggregator),
) -> dict:
    result = await service.trips_for(
        spec.with_filter("origin", origin).with_filter("destination", destination),
        endpoint="trips_route",
        not_found=f"No trips found from {origin} to {destination}.",
        cache=cache,
        aggregator=aggregator,
    )
    return _respond(response, result)


@router.get("/origins")
async def list_origins(
    response: Response,
    cache: CacheStore = Depends(get_cache),
    aggregator: ResultAggregator = Depends(get_aggregator),
) -> dict:
    result = await service.distinct_values("origin", cache=cache, aggregator=aggregator)
    return _respond(response, result)


@router.get("/destinations")
async def list_destinations(
    response: Response,
    cache: CacheStore = Depends(get_cache),
    aggregator: ResultAggregator = Depends(get_aggregator),
) -> dict:
    result = await service.distinct_values("destination", cache=cache, aggregator=aggregator)
    return _respond(response, result)


@router.get("/stats")
async def trip_stats(
    response: Response,
    cache: CacheStore = Depends(get_cache),
) -> dict:
    result = await service.trip_stats(cache=cache)
    return _respond(response, result)


@router.get("/stats/routes")
async def route_stats(
    response: Response,
    cache: CacheStore = Depends(get_cache),
) -> dict:
    result = await service.route_stats(cache=cache)
    return _respond(response, result)
