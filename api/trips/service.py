"""
Trip query orchestration.

Flow for every cached endpoint:
1) Validate/normalize the FilterSpec (400 on bad input, before any cache or DB work)
2) Derive the cache key from endpoint name + normalized spec
3) Serve from the cache on a hit
4) On a miss, fan out to the providers, merge, and store the response

Responses built from a partial fetch (some provider failed) are returned but
not cached, so a transient provider outage is not pinned for a whole TTL.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import date
from typing import Any

import asyncpg
from fastapi import HTTPException, status
from fastapi.encoders import jsonable_encoder

from cache import keys
from cache.store import CacheStore

from . import providers as provider_registry
from . import query_builder, repository
from .aggregator import AggregateFetchError, AggregateResult, ResultAggregator
from .providers import Provider
from .schemas import FilterSpec

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CachedResponse:
    payload: dict[str, Any]
    hit: bool


def pagination(total: int, page: int, limit: int) -> dict[str, Any]:
    total_pages = math.ceil(total / limit) if limit > 0 else 0
    return {
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": total_pages,
        "hasNextPage": page < total_pages,
        "hasPrevPage": page > 1,
    }


def normalize(spec: FilterSpec, *, today: date | None = None) -> FilterSpec:
    try:
        return query_builder.normalize_spec(spec, today=today)
    except query_builder.FilterValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


async def _through_cache(
    cache: CacheStore,
    key: str,
    produce: Callable[[], Awaitable[tuple[dict[str, Any], bool]]],
) -> CachedResponse:
    cached = cache.get(key)
    if cached is not None:
        return CachedResponse(payload=cached, hit=True)

    try:
        payload, cacheable = await produce()
    except AggregateFetchError as exc:
        logger.warning("aggregate_fetch_failed key=%s error=%s", key, exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to fetch trips.") from exc

    if cacheable:
        cache.set(key, payload)
    else:
        logger.info("response_not_cached key=%s reason=partial", key)
    return CachedResponse(payload=payload, hit=False)


def _provider_list(providers: Sequence[Provider] | None) -> list[Provider]:
    return list(providers) if providers is not None else provider_registry.all_providers()


def _page_payload(result: AggregateResult, spec: FilterSpec) -> dict[str, Any]:
    return {
        "data": jsonable_encoder(result.rows),
        "pagination": pagination(result.total, spec.page, spec.limit or 1),
        "providers": [p.summary() for p in result.providers],
    }


async def list_trips(
    spec: FilterSpec,
    *,
    cache: CacheStore,
    aggregator: ResultAggregator,
    endpoint: str = "trips",
    providers: Sequence[Provider] | None = None,
    today: date | None = None,
) -> CachedResponse:
    """
    One page of trips matching `spec`, merged across providers.
    """
    spec = normalize(spec, today=today)
    sources = _provider_list(providers)

    async def produce() -> tuple[dict[str, Any], bool]:
        result = await aggregator.fetch(sources, spec, today=today)
        return _page_payload(result, spec), not result.partial

    return await _through_cache(cache, keys.build_key(endpoint, spec), produce)


async def list_all_trips(
    spec: FilterSpec,
    *,
    cache: CacheStore,
    aggregator: ResultAggregator,
    providers: Sequence[Provider] | None = None,
    today: date | None = None,
) -> CachedResponse:
    """
    Every matching trip, unpaginated. Pagination fields of `spec` are ignored.
    """
    spec = normalize(spec, today=today).model_copy(update={"page": 1, "limit": None})
    sources = _provider_list(providers)

    async def produce() -> tuple[dict[str, Any], bool]:
        result = await aggregator.fetch_all_rows(sources, spec, today=today)
        payload = {
            "data": jsonable_encoder(result.rows),
            "count": result.total,
            "providers": [p.summary() for p in result.providers],
        }
        return payload, not result.partial

    return await _through_cache(cache, keys.build_key("trips_all", spec), produce)


async def trips_for(
    spec: FilterSpec,
    *,
    endpoint: str,
    not_found: str,
    cache: CacheStore,
    aggregator: ResultAggregator,
    providers: Sequence[Provider] | None = None,
    today: date | None = None,
) -> CachedResponse:
    """
    Paginated listing for a path-scoped endpoint (origin, destination, route); 404 when empty.
    """
    response = await list_trips(
        spec,
        cache=cache,
        aggregator=aggregator,
        endpoint=endpoint,
        providers=providers,
        today=today,
    )
    if response.payload["pagination"]["total"] == 0:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=not_found)
    return response


async def distinct_values(
    field_name: str,
    *,
    cache: CacheStore,
    aggregator: ResultAggregator,
    providers: Sequence[Provider] | None = None,
) -> CachedResponse:
    sources = _provider_list(providers)

    async def produce() -> tuple[dict[str, Any], bool]:
        values, results = await aggregator.fetch_distinct(sources, field_name)
        payload = {
            "data": values,
            "count": len(values),
            "providers": [r.summary() for r in results],
        }
        return payload, all(r.ok for r in results)

    return await _through_cache(cache, keys.build_key(f"distinct_{field_name}"), produce)


async def _stats_query(name: str, query: Awaitable[Any]) -> Any:
    # The statistics read every provider table in one statement, so a failing
    # table fails the whole query.
    try:
        return await query
    except (asyncpg.PostgresError, OSError) as exc:
        raise AggregateFetchError(f"{name} query failed: {exc}") from exc


async def trip_stats(
    *,
    cache: CacheStore,
    providers: Sequence[Provider] | None = None,
) -> CachedResponse:
    sources = _provider_list(providers)

    async def produce() -> tuple[dict[str, Any], bool]:
        return await _stats_query("stats", repository.trip_stats(sources)), True

    return await _through_cache(cache, keys.build_key("stats"), produce)


async def route_stats(
    *,
    cache: CacheStore,
    providers: Sequence[Provider] | None = None,
) -> CachedResponse:
    sources = _provider_list(providers)

    async def produce() -> tuple[dict[str, Any], bool]:
        row = await _stats_query("stats_routes", repository.route_stats(sources))
        if row is None or not row.get("total_routes"):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No route statistics found.")
        payload = {
            "totalRoutes": int(row["total_routes"]),
            "meanPrice": row.get("mean_price"),
            "lowestPrice": row.get("lowest_price"),
            "highestPrice": row.get("highest_price"),
            "medianPrice": row.get("median_price"),
            "standardDeviation": row.get("standard_deviation"),
            "uniqueOperators": int(row.get("unique_operators") or 0),
            "cheapestProvider": row.get("cheapest_provider"),
            "transportTypes": row.get("transport_types"),
        }
        return payload, True

    return await _through_cache(cache, keys.build_key("stats_routes"), produce)
