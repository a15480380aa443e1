"""
Cross-provider statistics SQL (raw).

Listings are fetched per provider by the aggregator. Statistics such as the
median price need every row at once, so these queries read one UNION ALL of
the provider tables, projected to logical column names.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from core import db

from .providers import Provider
from .query_builder import quote_ident

STAT_FIELDS = ("origin", "destination", "transport_type", "operator_name", "price_inr")

POPULAR_ROUTES_LIMIT = 5


def union_source(providers: Sequence[Provider]) -> tuple[str, list[Any]]:
    """
    `SELECT ... UNION ALL SELECT ...` over all provider tables.

    The provider tag is a bound parameter, one per branch ($1, $2, ...).
    """
    if not providers:
        raise ValueError("union_source needs at least one provider.")
    branches: list[str] = []
    params: list[Any] = []
    for provider in providers:
        params.append(provider.name)
        columns = ", ".join(
            f"{quote_ident(provider.column(name))} AS {quote_ident(name)}" for name in STAT_FIELDS
        )
        branches.append(f"SELECT {columns}, ${len(params)}::text AS provider FROM {quote_ident(provider.table)}")
    return "\nUNION ALL\n".join(branches), params


async def trip_stats(providers: Sequence[Provider]) -> dict[str, Any]:
    source, params = union_source(providers)
    totals = await db.fetch_one(
        f"""
        WITH trips AS (
        {source}
        )
        SELECT
          count(*)::int AS total_trips,
          count(DISTINCT origin)::int AS unique_origins,
          count(DISTINCT destination)::int AS unique_destinations
        FROM trips
        """,
        *params,
    )
    routes = await db.fetch_all(
        f"""
        WITH trips AS (
        {source}
        )
        SELECT origin, destination, count(*)::int AS trip_count
        FROM trips
        GROUP BY origin, destination
        ORDER BY trip_count DESC, origin ASC, destination ASC
        LIMIT ${len(params) + 1}
        """,
        *params,
        POPULAR_ROUTES_LIMIT,
    )
    totals = totals or {}
    return {
        "totalTrips": int(totals.get("total_trips") or 0),
        "uniqueOrigins": int(totals.get("unique_origins") or 0),
        "uniqueDestinations": int(totals.get("unique_destinations") or 0),
        "mostPopularRoutes": [
            {
                "origin": row["origin"],
                "destination": row["destination"],
                "trip_count": int(row["trip_count"]),
            }
            for row in routes
        ],
    }


async def route_stats(providers: Sequence[Provider]) -> dict[str, Any] | None:
    source, params = union_source(providers)
    return await db.fetch_one(
        f"""
        WITH trips AS (
        {source}
        )
        SELECT
          count(DISTINCT concat(origin, '|', destination))::int AS total_routes,
          round(avg(price_inr)::numeric, 2)::float8 AS mean_price,
          min(price_inr)::float8 AS lowest_price,
          max(price_inr)::float8 AS highest_price,
          round((percentile_cont(0.5) WITHIN GROUP (ORDER BY price_inr))::numeric, 2)::float8 AS median_price,
          round(stddev(price_inr)::numeric, 2)::float8 AS standard_deviation,
          count(DISTINCT operator_name)::int AS unique_operators,
          (
            SELECT t.provider
            FROM trips t
            WHERE t.price_inr IS NOT NULL
            ORDER BY t.price_inr ASC
            LIMIT 1
          ) AS cheapest_provider,
          (
            SELECT string_agg(DISTINCT t.transport_type, ', ')
            FROM trips t
            WHERE t.transport_type IS NOT NULL
          ) AS transport_types
        FROM trips
        """,
        *params,
    )
