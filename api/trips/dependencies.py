"""
FastAPI dependencies for trip endpoints.
"""

from __future__ import annotations

from datetime import date

from fastapi import Query, Request

from cache.store import CacheStore

from .aggregator import ResultAggregator
from .schemas import DateRange, FilterSpec


def get_cache(request: Request) -> CacheStore:
    return request.app.state.cache


def get_aggregator(request: Request) -> ResultAggregator:
    return request.app.state.aggregator


def filter_spec(
    origin_q: list[str] | None = Query(default=None, alias="origin"),
    destination_q: list[str] | None = Query(default=None, alias="destination"),
    transport_type: list[str] | None = Query(default=None),
    operator_name: list[str] | None = Query(default=None),
    start_date: date | None = None,
    end_date: date | None = None,
    date_preset: str | None = Query(default=None, max_length=32),
    sort_by: str | None = Query(default=None, max_length=64),
    sort_order: str | None = Query(default=None, max_length=8),
    page: int = 1,
    limit: int | None = None,
) -> FilterSpec:
    """
    Parse listing query parameters. Filters are repeatable (`?origin=A&origin=B`).

    Range checks (page, limit, sort whitelist, presets) happen in the service,
    which clamps or rejects with a 400.
    """
    filters = {
        name: tuple(values)
        for name, values in (
            ("origin", origin_q),
            ("destination", destination_q),
            ("transport_type", transport_type),
            ("operator_name", operator_name),
        )
        if values
    }
    date_range = None
    if start_date is not None or end_date is not None or date_preset:
        date_range = DateRange(start=start_date, end=end_date, preset=date_preset)
    return FilterSpec(
        filters=filters,
        date_range=date_range,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )
