"""
Upstream trip providers.

Each provider's listings live in their own table, and the two tables do not
share a schema. A provider maps the logical trip fields to its physical
column names; these maps are the only identifiers the query builder ever
puts into SQL text.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from core import config

PROVIDER_12GO = "12go"
PROVIDER_BOOKAWAY = "bookaway"

# Logical trip fields, in projection order.
TRIP_FIELDS = (
    "id",
    "route_url",
    "origin",
    "destination",
    "departure_time",
    "arrival_time",
    "transport_type",
    "duration_min",
    "price",
    "price_inr",
    "currency",
    "travel_date",
    "operator_name",
)

TWELVEGO_COLUMNS: Mapping[str, str] = {
    "id": "id",
    "route_url": "route_url",
    "origin": "origin",
    "destination": "destination",
    "departure_time": "departure_time",
    "arrival_time": "arrival_time",
    "transport_type": "transport_type",
    "duration_min": "duration_min",
    "price": "price",
    "price_inr": "price_inr",
    "currency": "currency",
    "travel_date": "travel_date",
    "operator_name": "operator_name",
}

BOOKAWAY_COLUMNS: Mapping[str, str] = {
    "id": "id",
    "route_url": "booking_url",
    "origin": "from_location",
    "destination": "to_location",
    "departure_time": "departure_at",
    "arrival_time": "arrival_at",
    "transport_type": "vehicle_type",
    "duration_min": "duration_minutes",
    "price": "price",
    "price_inr": "price_inr",
    "currency": "currency",
    "travel_date": "departure_date",
    "operator_name": "supplier_name",
}


@dataclass(frozen=True)
class Provider:
    name: str
    table: str
    columns: Mapping[str, str]

    def column(self, field: str) -> str:
        try:
            return self.columns[field]
        except KeyError:
            raise KeyError(f"Provider {self.name!r} has no column for field {field!r}.") from None


def twelvego() -> Provider:
    return Provider(name=PROVIDER_12GO, table=config.twelvego_table(), columns=TWELVEGO_COLUMNS)


def bookaway() -> Provider:
    return Provider(name=PROVIDER_BOOKAWAY, table=config.bookaway_table(), columns=BOOKAWAY_COLUMNS)


def all_providers() -> list[Provider]:
    return [twelvego(), bookaway()]


def get_provider(name: str) -> Provider:
    key = (name or "").strip().lower()
    for provider in all_providers():
        if provider.name == key:
            return provider
    known = ", ".join(p.name for p in all_providers())
    raise ValueError(f"Unknown provider {name!r}. Known providers: {known}.")
