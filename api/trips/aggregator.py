"""
Multi-provider fan-out / fan-in.

Every provider gets its own statements, all providers run concurrently, and
all of them are awaited before merging. A provider that fails contributes an
empty, explicitly failed `ProviderResult`; only when every provider fails is
the whole fetch an error.

Pagination across providers: each provider returns its first `page * limit`
rows in the requested order, the sorted streams are merged, and the page is
sliced from the merged stream. `total` is the sum of the providers' own
filtered counts.
"""

from __future__ import annotations

import asyncio
import heapq
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

from core import config, db

from . import query_builder
from .providers import TRIP_FIELDS, Provider
from .schemas import FilterSpec

logger = logging.getLogger(__name__)

FetchAll = Callable[..., Awaitable[list[dict[str, Any]]]]


class AggregateFetchError(RuntimeError):
    pass


@dataclass(frozen=True)
class ProviderResult:
    provider: str
    rows: list[dict[str, Any]] = field(default_factory=list)
    total: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def summary(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "ok": self.ok,
            "total": self.total,
            "error": self.error,
        }


@dataclass(frozen=True)
class AggregateResult:
    rows: list[dict[str, Any]]
    total: int
    providers: list[ProviderResult]

    @property
    def partial(self) -> bool:
        return any(not p.ok for p in self.providers)


def normalize_row(row: dict[str, Any], provider: str) -> dict[str, Any]:
    """
    Common trip shape: logical field names, numeric prices as floats,
    timezone-aware timestamps (naive ones are UTC), plus a `provider` tag.
    """
    out: dict[str, Any] = {}
    for name in TRIP_FIELDS:
        value = row.get(name)
        if isinstance(value, Decimal):
            value = float(value)
        elif isinstance(value, datetime) and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        out[name] = value
    out["provider"] = provider
    return out


def _sort_key(field_name: str, descending: bool) -> Callable[[dict[str, Any]], tuple[bool, Any]]:
    # NULLS LAST in both directions, matching the SQL ORDER BY.
    fold = field_name in query_builder.TEXT_SORT_FIELDS

    def value(row: dict[str, Any]) -> Any:
        raw = row.get(field_name)
        return raw.lower() if fold and isinstance(raw, str) else raw

    if descending:
        return lambda row: (row.get(field_name) is not None, value(row))
    return lambda row: (row.get(field_name) is None, value(row))


def merge_sorted(
    streams: Sequence[list[dict[str, Any]]],
    *,
    sort_by: str | None,
    sort_order: str | None,
) -> list[dict[str, Any]]:
    field_name, order = query_builder.resolve_sort(sort_by, sort_order)
    descending = order == "desc"
    return list(heapq.merge(*streams, key=_sort_key(field_name, descending), reverse=descending))


def _error_text(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


class ResultAggregator:
    def __init__(self, fetch_all: FetchAll | None = None, *, max_window: int | None = None) -> None:
        self._fetch_all = fetch_all or db.fetch_all
        self._max_window = max_window

    async def fetch(
        self,
        providers: Sequence[Provider],
        spec: FilterSpec,
        *,
        today: date | None = None,
    ) -> AggregateResult:
        """
        One page of trips across `providers`. `spec` must already be normalized.
        """
        limit = spec.limit or 1
        window = spec.page * limit
        max_window = self._max_window if self._max_window is not None else config.max_result_window()
        if window > max_window:
            # Past the deepest reachable row: counts only, empty page.
            logger.info("page_beyond_window page=%s limit=%s max_window=%s", spec.page, limit, max_window)
            window = 0
        results = await self._fan_out(providers, spec, rows=window, with_count=True, today=today)

        merged = merge_sorted([r.rows for r in results], sort_by=spec.sort_by, sort_order=spec.sort_order)
        start = (spec.page - 1) * limit
        return AggregateResult(
            rows=merged[start : start + limit],
            total=sum(r.total for r in results),
            providers=results,
        )

    async def fetch_all_rows(
        self,
        providers: Sequence[Provider],
        spec: FilterSpec,
        *,
        today: date | None = None,
    ) -> AggregateResult:
        """
        Every matching trip across `providers`, merged in sort order.
        """
        results = await self._fan_out(providers, spec, rows=None, with_count=False, today=today)
        merged = merge_sorted([r.rows for r in results], sort_by=spec.sort_by, sort_order=spec.sort_order)
        return AggregateResult(rows=merged, total=len(merged), providers=results)

    async def fetch_distinct(self, providers: Sequence[Provider], field_name: str) -> tuple[list[str], list[ProviderResult]]:
        """
        Sorted union of the distinct non-null values of `field_name`.
        """
        statements = [
            query_builder.build_distinct_query(p.table, p.columns, field_name)
            for p in providers
        ]
        outcomes = await asyncio.gather(
            *(self._fetch_all(sql, *args) for sql, args in statements),
            return_exceptions=True,
        )

        results: list[ProviderResult] = []
        values: set[str] = set()
        for provider, outcome in zip(providers, outcomes):
            if isinstance(outcome, BaseException):
                results.append(self._failed(provider, outcome))
                continue
            found = [str(row[field_name]) for row in outcome if row.get(field_name) is not None]
            values.update(found)
            results.append(ProviderResult(provider=provider.name, total=len(found)))

        self._raise_if_all_failed(results)
        return sorted(values), results

    async def _fan_out(
        self,
        providers: Sequence[Provider],
        spec: FilterSpec,
        *,
        rows: int | None,
        with_count: bool,
        today: date | None,
    ) -> list[ProviderResult]:
        # Statements are built up front so validation errors surface to the
        # caller instead of being mistaken for a provider failure.
        jobs = []
        for provider in providers:
            page_sql = query_builder.build_page_query(provider.table, provider.columns, spec, rows=rows, today=today)
            count_sql = (
                query_builder.build_count_query(provider.table, provider.columns, spec, today=today)
                if with_count
                else None
            )
            jobs.append(self._query_provider(provider, page_sql, count_sql))

        results = list(await asyncio.gather(*jobs))
        self._raise_if_all_failed(results)
        return results

    async def _query_provider(
        self,
        provider: Provider,
        page_sql: tuple[str, list[Any]],
        count_sql: tuple[str, list[Any]] | None,
    ) -> ProviderResult:
        calls = [self._fetch_all(page_sql[0], *page_sql[1])]
        if count_sql is not None:
            calls.append(self._fetch_all(count_sql[0], *count_sql[1]))

        outcomes = await asyncio.gather(*calls, return_exceptions=True)
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                return self._failed(provider, outcome)

        rows = [normalize_row(row, provider.name) for row in outcomes[0]]
        if count_sql is not None:
            count_rows = outcomes[1]
            total = int(count_rows[0]["total"]) if count_rows else 0
        else:
            total = len(rows)
        return ProviderResult(provider=provider.name, rows=rows, total=total)

    def _failed(self, provider: Provider, exc: BaseException) -> ProviderResult:
        if isinstance(exc, asyncio.CancelledError):
            raise exc
        logger.warning(
            "provider_query_failed provider=%s error=%s",
            provider.name,
            _error_text(exc),
            exc_info=exc,
        )
        return ProviderResult(provider=provider.name, error=_error_text(exc))

    @staticmethod
    def _raise_if_all_failed(results: Sequence[ProviderResult]) -> None:
        if results and all(not r.ok for r in results):
            details = "; ".join(f"{r.provider}: {r.error}" for r in results)
            raise AggregateFetchError(f"All providers failed: {details}")
