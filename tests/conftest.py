"""
Shared pytest fixtures for the trip fare API tests.

Provides:
- a controllable clock for TTL tests
- cache store instances
- a fake query executor standing in for `core.db.fetch_all`
- a FastAPI app/client wired with the trip and cache routers
"""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from cache import router as cache_router
from cache.store import CacheStore
from trips import router as trips_router
from trips.aggregator import ResultAggregator

CONFIG_ENV_VARS = (
    "CACHE_TTL_S",
    "CACHE_MAX_ITEMS",
    "CACHE_MAX_BYTES",
    "PAGE_SIZE_DEFAULT",
    "PAGE_SIZE_MAX",
    "MAX_RESULT_WINDOW",
    "SORT_STRICT",
    "TWELVEGO_TABLE",
    "BOOKAWAY_TABLE",
    "THB_TO_INR",
    "IMPORT_BATCH_SIZE",
)


@pytest.fixture(autouse=True)
def clean_config_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Run every test against default settings."""
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> CacheStore:
    return CacheStore(max_items=3, ttl_s=60, clock=clock)


def _trip(trip_id: int, origin: str, destination: str, hour: int, price: str, **extra: Any) -> dict[str, Any]:
    row = {
        "id": trip_id,
        "route_url": f"https://example.test/route/{trip_id}",
        "origin": origin,
        "destination": destination,
        "departure_time": datetime(2026, 10, 20, hour, 0),
        "arrival_time": datetime(2026, 10, 20, hour + 3, 0),
        "transport_type": "bus",
        "duration_min": 180,
        "price": Decimal(price),
        "price_inr": Decimal(price) * 2,
        "currency": "THB",
        "travel_date": date(2026, 10, 20),
        "operator_name": "Green Bus",
    }
    row.update(extra)
    return row


# Rows come back from SQL already aliased to logical field names, sorted by departure time.
TWELVEGO_ROWS = [
    _trip(1, "Bangkok", "Chiang Mai", 6, "650.00"),
    _trip(2, "Bangkok", "Phuket", 9, "900.00", transport_type="ferry"),
    _trip(3, "Krabi", "Phuket", 14, "400.00", departure_time=datetime(2026, 10, 20, 14, 0, tzinfo=timezone.utc)),
]

BOOKAWAY_ROWS = [
    _trip(1, "Bangkok", "Pattaya", 7, "300.00", operator_name="Roong Reuang"),
    _trip(2, "Chiang Mai", "Pai", 11, "250.00", transport_type="minivan"),
]


class FakeDatabase:
    """
    Stand-in for `core.db.fetch_all`.

    Serves fixture rows per table and honours LIMIT, but does not evaluate
    WHERE clauses; tests that need filtering assert on the SQL instead.
    """

    def __init__(
        self,
        rows_by_table: dict[str, list[dict[str, Any]]],
        *,
        totals: dict[str, int] | None = None,
        failing: set[str] | None = None,
    ) -> None:
        self.rows_by_table = rows_by_table
        self.totals = totals or {}
        self.failing = failing or set()
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

    def _table(self, sql: str) -> str:
        match = re.search(r'FROM "([A-Za-z0-9_]+)"', sql)
        assert match, f"no table in SQL: {sql}"
        return match.group(1)

    async def fetch_all(self, sql: str, *args: Any) -> list[dict[str, Any]]:
        self.calls.append((sql, args))
        table = self._table(sql)
        if table in self.failing:
            raise ConnectionError(f"could not reach {table}")

        rows = self.rows_by_table.get(table, [])
        if sql.startswith("SELECT count(*)"):
            return [{"total": self.totals.get(table, len(rows))}]
        if sql.startswith("SELECT DISTINCT"):
            field = re.search(r'AS "([a-z_]+)"', sql).group(1)
            return [{field: value} for value in sorted({r[field] for r in rows if r.get(field) is not None})]
        if "LIMIT $" in sql:
            return [dict(r) for r in rows[: args[-1]]]
        return [dict(r) for r in rows]


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase({"trips_12go": TWELVEGO_ROWS, "trips_bookaway": BOOKAWAY_ROWS})


@pytest.fixture
def aggregator(fake_db: FakeDatabase) -> ResultAggregator:
    return ResultAggregator(fake_db.fetch_all)


@pytest.fixture
def app(fake_db: FakeDatabase, clock: FakeClock) -> FastAPI:
    app = FastAPI()
    app.include_router(trips_router.router)
    app.include_router(cache_router.router)
    app.state.cache = CacheStore(max_items=100, ttl_s=600, max_bytes=1024 * 1024, clock=clock)
    app.state.aggregator = ResultAggregator(fake_db.fetch_all)
    return app


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)
