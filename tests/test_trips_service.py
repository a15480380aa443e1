"""Tests for cache-through trip orchestration."""

from __future__ import annotations

from datetime import date

import asyncpg
import pytest
from fastapi import HTTPException

from cache.store import CacheStore
from core import db
from trips import service
from trips.aggregator import ResultAggregator
from trips.schemas import DateRange, FilterSpec

from conftest import BOOKAWAY_ROWS, TWELVEGO_ROWS, FakeDatabase


@pytest.fixture
def big_store(clock) -> CacheStore:
    return CacheStore(max_items=50, ttl_s=600, max_bytes=1024 * 1024, clock=clock)


class TestPaginationMetadata:
    def test_middle_page(self) -> None:
        assert service.pagination(total=95, page=2, limit=10) == {
            "total": 95,
            "page": 2,
            "limit": 10,
            "totalPages": 10,
            "hasNextPage": True,
            "hasPrevPage": True,
        }

    def test_empty_result(self) -> None:
        meta = service.pagination(total=0, page=1, limit=50)
        assert meta["totalPages"] == 0
        assert meta["hasNextPage"] is False
        assert meta["hasPrevPage"] is False


@pytest.mark.asyncio
async def test_miss_then_hit(big_store: CacheStore, fake_db: FakeDatabase, aggregator: ResultAggregator) -> None:
    spec = FilterSpec(filters={"origin": ("Bangkok",)})

    first = await service.list_trips(spec, cache=big_store, aggregator=aggregator)
    calls_after_first = len(fake_db.calls)
    second = await service.list_trips(spec, cache=big_store, aggregator=aggregator)

    assert first.hit is False
    assert second.hit is True
    assert second.payload == first.payload
    assert len(fake_db.calls) == calls_after_first, "cache hit must not query the database"
    assert big_store.stats.hits == 1
    assert big_store.stats.misses == 1


@pytest.mark.asyncio
async def test_equivalent_requests_share_an_entry(big_store: CacheStore, aggregator: ResultAggregator) -> None:
    await service.list_trips(
        FilterSpec(filters={"origin": ("Krabi", "Bangkok")}, page=0, sort_by="bogus"),
        cache=big_store,
        aggregator=aggregator,
    )
    again = await service.list_trips(
        FilterSpec(filters={"origin": ("bangkok", "KRABI")}, page=1, limit=50),
        cache=big_store,
        aggregator=aggregator,
    )
    assert again.hit is True
    assert len(big_store) == 1


@pytest.mark.asyncio
async def test_payload_is_json_ready(big_store: CacheStore, aggregator: ResultAggregator) -> None:
    result = await service.list_trips(FilterSpec(limit=2), cache=big_store, aggregator=aggregator)

    first = result.payload["data"][0]
    assert isinstance(first["departure_time"], str)
    assert isinstance(first["travel_date"], str)
    assert result.payload["pagination"]["totalPages"] == 3
    assert big_store.bytes_used > 0


@pytest.mark.asyncio
async def test_clamped_pagination_in_response(big_store: CacheStore, aggregator: ResultAggregator) -> None:
    result = await service.list_trips(FilterSpec(page=0, limit=1000), cache=big_store, aggregator=aggregator)
    assert result.payload["pagination"]["page"] == 1
    assert result.payload["pagination"]["limit"] == 100


@pytest.mark.asyncio
async def test_validation_error_never_reaches_cache_or_db(
    big_store: CacheStore, fake_db: FakeDatabase, aggregator: ResultAggregator
) -> None:
    spec = FilterSpec(date_range=DateRange(start=date(2026, 2, 1), end=date(2026, 1, 1)))
    with pytest.raises(HTTPException) as exc_info:
        await service.list_trips(spec, cache=big_store, aggregator=aggregator)

    assert exc_info.value.status_code == 400
    assert fake_db.calls == []
    assert big_store.stats.misses == 0


@pytest.mark.asyncio
async def test_partial_results_are_returned_but_not_cached(big_store: CacheStore) -> None:
    fake = FakeDatabase(
        {"trips_12go": TWELVEGO_ROWS, "trips_bookaway": BOOKAWAY_ROWS},
        failing={"trips_bookaway"},
    )
    result = await service.list_trips(FilterSpec(), cache=big_store, aggregator=ResultAggregator(fake.fetch_all))

    assert len(result.payload["data"]) == 3
    assert [p["ok"] for p in result.payload["providers"]] == [True, False]
    assert len(big_store) == 0


@pytest.mark.asyncio
async def test_total_failure_maps_to_bad_gateway(big_store: CacheStore) -> None:
    fake = FakeDatabase({}, failing={"trips_12go", "trips_bookaway"})
    with pytest.raises(HTTPException) as exc_info:
        await service.list_trips(FilterSpec(), cache=big_store, aggregator=ResultAggregator(fake.fetch_all))
    assert exc_info.value.status_code == 502


@pytest.mark.asyncio
async def test_endpoints_do_not_share_entries(big_store: CacheStore, aggregator: ResultAggregator) -> None:
    spec = FilterSpec(filters={"origin": ("Bangkok",)})
    await service.list_trips(spec, cache=big_store, aggregator=aggregator)
    scoped = await service.trips_for(
        spec,
        endpoint="trips_from",
        not_found="none",
        cache=big_store,
        aggregator=aggregator,
    )
    assert scoped.hit is False
    assert len(big_store) == 2


@pytest.mark.asyncio
async def test_scoped_listing_404_when_empty(big_store: CacheStore) -> None:
    fake = FakeDatabase({"trips_12go": [], "trips_bookaway": []})
    with pytest.raises(HTTPException) as exc_info:
        await service.trips_for(
            FilterSpec(filters={"origin": ("Nowhere",)}),
            endpoint="trips_from",
            not_found="No trips found for this origin.",
            cache=big_store,
            aggregator=ResultAggregator(fake.fetch_all),
        )
    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_all_trips_ignores_pagination(big_store: CacheStore, aggregator: ResultAggregator) -> None:
    result = await service.list_all_trips(FilterSpec(page=3, limit=1), cache=big_store, aggregator=aggregator)
    assert result.payload["count"] == 5
    assert len(result.payload["data"]) == 5


@pytest.mark.asyncio
async def test_distinct_values_cached(big_store: CacheStore, fake_db: FakeDatabase, aggregator: ResultAggregator) -> None:
    first = await service.distinct_values("destination", cache=big_store, aggregator=aggregator)
    second = await service.distinct_values("destination", cache=big_store, aggregator=aggregator)

    assert first.payload["data"] == ["Chiang Mai", "Pai", "Pattaya", "Phuket"]
    assert second.hit is True


@pytest.mark.asyncio
async def test_trip_stats_uses_union_query(big_store: CacheStore, monkeypatch: pytest.MonkeyPatch) -> None:
    seen: list[str] = []

    async def fake_fetch_one(sql: str, *args):
        seen.append(sql)
        assert args == ("12go", "bookaway")
        return {"total_trips": 5, "unique_origins": 3, "unique_destinations": 4}

    async def fake_fetch_all(sql: str, *args):
        seen.append(sql)
        assert args == ("12go", "bookaway", 5)
        return [{"origin": "Bangkok", "destination": "Phuket", "trip_count": 2}]

    monkeypatch.setattr(db, "fetch_one", fake_fetch_one)
    monkeypatch.setattr(db, "fetch_all", fake_fetch_all)

    result = await service.trip_stats(cache=big_store)
    cached = await service.trip_stats(cache=big_store)

    assert result.payload["totalTrips"] == 5
    assert result.payload["mostPopularRoutes"][0]["trip_count"] == 2
    assert cached.hit is True
    assert all("UNION ALL" in sql for sql in seen)
    assert len(seen) == 2


@pytest.mark.asyncio
async def test_route_stats_404_without_rows(big_store: CacheStore, monkeypatch: pytest.MonkeyPatch) -> None:
    async def fake_fetch_one(sql: str, *args):
        return {"total_routes": 0}

    monkeypatch.setattr(db, "fetch_one", fake_fetch_one)
    with pytest.raises(HTTPException) as exc_info:
        await service.route_stats(cache=big_store)
    assert exc_info.value.status_code == 404
    assert len(big_store) == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("call", [service.trip_stats, service.route_stats])
async def test_stats_database_errors_map_to_bad_gateway(
    call, big_store: CacheStore, monkeypatch: pytest.MonkeyPatch
) -> None:
    async def failing_fetch_one(sql: str, *args):
        raise asyncpg.UndefinedTableError('relation "trips_bookaway" does not exist')

    monkeypatch.setattr(db, "fetch_one", failing_fetch_one)
    with pytest.raises(HTTPException) as exc_info:
        await call(cache=big_store)
    assert exc_info.value.status_code == 502
    assert len(big_store) == 0
