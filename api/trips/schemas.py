"""
Pydantic schemas for trip queries.
"""

from __future__ import annotations

from datetime import date

from pydantic import BaseModel, ConfigDict, Field


class DateRange(BaseModel):
    """
    Either explicit bounds (`start`/`end`, inclusive) or a named `preset`.
    """

    model_config = ConfigDict(frozen=True)

    start: date | None = None
    end: date | None = None
    preset: str | None = None


class FilterSpec(BaseModel):
    """
    One request's constraints: OR within a field, AND across fields.
    """

    model_config = ConfigDict(frozen=True)

    filters: dict[str, tuple[str, ...]] = Field(default_factory=dict)
    date_range: DateRange | None = None
    sort_by: str | None = None
    sort_order: str | None = None
    page: int = 1
    limit: int | None = None

    def with_filter(self, field: str, *values: str) -> FilterSpec:
        filters = dict(self.filters)
        filters[field] = tuple(values)
        return self.model_copy(update={"filters": filters})
