"""
Provider dump records.

Both providers export the same JSON shape (`From`, `To`, `Departure Time`,
`Price`, ...). A record is importable only when it has a positive price,
departure and arrival times and a route URL; anything else is skipped.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_CURRENCY = "THB"

_HOURS_RE = re.compile(r"(\d+)\s*h")
_MINUTES_RE = re.compile(r"(\d+)\s*m")
_CLOCK_RE = re.compile(r"^(\d{1,2}):(\d{2})$")
_LEADING_INT_RE = re.compile(r"^\s*(\d+)")

_DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%d %b %Y", "%d %B %Y", "%a, %d %b %Y", "%b %d, %Y")


def parse_duration_minutes(value: Any) -> int | None:
    """
    "2h 30m" -> 150, "45m" -> 45, "02:15" -> 135, "90" -> 90.
    """
    if value is None:
        return None
    text = str(value).strip().lower()
    if not text:
        return None

    total = 0
    hours = _HOURS_RE.search(text)
    minutes = _MINUTES_RE.search(text)
    if hours:
        total += int(hours.group(1)) * 60
    if minutes:
        total += int(minutes.group(1))
    if total > 0:
        return total

    clock = _CLOCK_RE.match(text)
    if clock:
        return int(clock.group(1)) * 60 + int(clock.group(2))

    leading = _LEADING_INT_RE.match(text)
    return int(leading.group(1)) if leading else None


def parse_price(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = re.sub(r"[,\s]", "", str(value))
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def parse_timestamp(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=timezone.utc)


def parse_date(value: Any) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    stamp = parse_timestamp(text)
    if stamp is not None:
        return stamp.date()
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


class TripRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    route_url: str = Field(..., min_length=1)
    origin: str | None = Field(default=None, alias="From")
    destination: str | None = Field(default=None, alias="To")
    departure_time: datetime = Field(..., alias="Departure Time")
    arrival_time: datetime = Field(..., alias="Arrival Time")
    transport_type: str | None = Field(default=None, alias="Transport Type")
    duration_min: int = Field(default=0, ge=0, alias="Duration")
    price: float = Field(..., gt=0, alias="Price")
    price_inr: float | None = Field(default=None, ge=0, alias="Price in INR")
    currency: str = DEFAULT_CURRENCY
    travel_date: date | None = Field(default=None, alias="Date")
    operator_name: str | None = Field(default=None, alias="Operator")

    @field_validator("route_url", "origin", "destination", "transport_type", "operator_name", mode="before")
    @classmethod
    def _strip_text(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("departure_time", "arrival_time", mode="before")
    @classmethod
    def _parse_timestamp(cls, value: Any) -> datetime | None:
        return parse_timestamp(value)

    @field_validator("duration_min", mode="before")
    @classmethod
    def _parse_duration(cls, value: Any) -> int:
        return parse_duration_minutes(value) or 0

    @field_validator("price", "price_inr", mode="before")
    @classmethod
    def _parse_price(cls, value: Any) -> float | None:
        return parse_price(value)

    @field_validator("currency", mode="before")
    @classmethod
    def _default_currency(cls, value: Any) -> str:
        return _blank_to_none(value) or DEFAULT_CURRENCY

    @field_validator("travel_date", mode="before")
    @classmethod
    def _parse_date(cls, value: Any) -> date | None:
        return parse_date(value)

    def inr_price(self, thb_to_inr: float) -> float:
        """
        INR price from the dump, or converted from the source price.
        """
        if self.price_inr:
            return self.price_inr
        return float(round(self.price * thb_to_inr))
