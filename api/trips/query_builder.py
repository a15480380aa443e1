"""
Parameterized SQL for trip queries.

Rules:
- Filter values only ever travel as bound parameters ($1, $2, ... for asyncpg).
- Only identifiers from a provider's fixed column map are written into SQL
  text, and each one is checked against a strict identifier pattern first.
- Sort column/direction come from a whitelist; anything else falls back to
  `departure_time asc` (or is rejected in strict mode).

`build()` returns WHERE fragments plus their parameters; `build_page_query()`
and `build_count_query()` wrap them into complete statements for one
provider table.
"""

from __future__ import annotations

import calendar
import re
from collections.abc import Mapping
from datetime import date, timedelta
from typing import Any, NamedTuple

from core import config

from .providers import TRIP_FIELDS
from .schemas import DateRange, FilterSpec

FILTER_FIELDS = ("origin", "destination", "transport_type", "operator_name")
DATE_FIELD = "travel_date"

SORT_FIELDS = frozenset(
    {
        "departure_time",
        "arrival_time",
        "price",
        "price_inr",
        "duration_min",
        "travel_date",
        "origin",
        "destination",
        "operator_name",
        "transport_type",
    }
)
# Ordered by lower(col) COLLATE "C"; the merge compares str.lower() to match.
TEXT_SORT_FIELDS = frozenset(FILTER_FIELDS)
SORT_ORDERS = frozenset({"asc", "desc"})
DEFAULT_SORT_BY = "departure_time"
DEFAULT_SORT_ORDER = "asc"

LAST_N_DAYS_PRESETS = {
    "last_7_days": 7,
    "last_14_days": 14,
    "last_28_days": 28,
    "last_30_days": 30,
    "last_90_days": 90,
}
CUSTOM_PRESET = "custom"
DATE_PRESETS = frozenset({"today", "yesterday", "this_month", "this_year", CUSTOM_PRESET, *LAST_N_DAYS_PRESETS})

MAX_VALUES_PER_FIELD = 50

_IDENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class FilterValidationError(ValueError):
    pass


class Predicate(NamedTuple):
    fragments: list[str]
    params: list[Any]

    def where_clause(self) -> str:
        if not self.fragments:
            return ""
        return "WHERE " + "\n  AND ".join(self.fragments)


def quote_ident(name: str) -> str:
    """
    Quote a SQL identifier that comes from a fixed column map or table setting.

    Dotted names (schema.table) are quoted part by part.
    """
    parts = (name or "").split(".")
    if not parts or not all(_IDENT_RE.match(part) for part in parts):
        raise ValueError(f"Unsafe SQL identifier: {name!r}")
    return ".".join(f'"{part}"' for part in parts)


def _column(field_map: Mapping[str, str], field: str) -> str:
    try:
        return quote_ident(field_map[field])
    except KeyError:
        raise FilterValidationError(f"Field {field!r} is not available for this source.") from None


def resolve_sort(
    sort_by: str | None,
    sort_order: str | None,
    *,
    strict: bool = False,
) -> tuple[str, str]:
    field = (sort_by or "").strip().lower()
    order = (sort_order or "").strip().lower()

    if field and field not in SORT_FIELDS:
        if strict:
            raise FilterValidationError(
                f"Unsupported sort column {sort_by!r}. Allowed: {sorted(SORT_FIELDS)}"
            )
        field = ""
    if order and order not in SORT_ORDERS:
        if strict:
            raise FilterValidationError("sort_order must be 'asc' or 'desc'.")
        order = ""

    if not field:
        # Unknown or missing column resets the direction too.
        return DEFAULT_SORT_BY, DEFAULT_SORT_ORDER
    return field, order or DEFAULT_SORT_ORDER


def clamp_pagination(
    page: int | None,
    limit: int | None,
    *,
    default_limit: int,
    max_limit: int,
) -> tuple[int, int]:
    page = page if page is not None else 1
    limit = limit if limit is not None else default_limit
    return max(1, int(page)), max(1, min(int(limit), max_limit))


def resolve_date_range(date_range: DateRange | None, *, today: date | None = None) -> tuple[date | None, date | None]:
    """
    Turn explicit bounds or a preset into inclusive (start, end) dates.

    Explicit bounds win over a preset.
    """
    if date_range is None:
        return None, None

    start, end = date_range.start, date_range.end
    preset = (date_range.preset or "").strip().lower()

    if start is not None or end is not None:
        if preset == CUSTOM_PRESET and (start is None or end is None):
            raise FilterValidationError("date_preset 'custom' requires both start_date and end_date.")
        if start is not None and end is not None and start > end:
            raise FilterValidationError("start_date must not be after end_date.")
        return start, end

    if not preset:
        return None, None
    if preset not in DATE_PRESETS:
        raise FilterValidationError(f"Unknown date_preset {date_range.preset!r}. Allowed: {sorted(DATE_PRESETS)}")
    if preset == CUSTOM_PRESET:
        raise FilterValidationError("date_preset 'custom' requires both start_date and end_date.")

    today = today or date.today()
    if preset == "today":
        return today, today
    if preset == "yesterday":
        yesterday = today - timedelta(days=1)
        return yesterday, yesterday
    if preset in LAST_N_DAYS_PRESETS:
        return today - timedelta(days=LAST_N_DAYS_PRESETS[preset] - 1), today
    if preset == "this_month":
        last_day = calendar.monthrange(today.year, today.month)[1]
        return today.replace(day=1), today.replace(day=last_day)
    # this_year
    return date(today.year, 1, 1), date(today.year, 12, 31)


def _clean_filters(filters: Mapping[str, Any]) -> dict[str, tuple[str, ...]]:
    cleaned: dict[str, tuple[str, ...]] = {}
    for field, raw_values in filters.items():
        if field not in FILTER_FIELDS:
            raise FilterValidationError(f"Unknown filter field {field!r}. Allowed: {list(FILTER_FIELDS)}")
        if isinstance(raw_values, str):
            raw_values = (raw_values,)
        values: list[str] = []
        seen: set[str] = set()
        for raw in raw_values or ():
            value = str(raw).strip()
            if not value or value.lower() in seen:
                continue
            seen.add(value.lower())
            values.append(value)
        if len(values) > MAX_VALUES_PER_FIELD:
            raise FilterValidationError(f"Too many values for {field!r} (max {MAX_VALUES_PER_FIELD}).")
        if values:
            cleaned[field] = tuple(sorted(values, key=str.lower))
    return cleaned


def normalize_spec(
    spec: FilterSpec,
    *,
    default_limit: int | None = None,
    max_limit: int | None = None,
    strict_sort: bool | None = None,
    today: date | None = None,
) -> FilterSpec:
    """
    Validate and canonicalize a request's FilterSpec.

    The result has whitelisted sort settings, clamped pagination, cleaned
    filter values and a date preset resolved to explicit bounds (so a preset
    and the equivalent explicit range share one cache key).
    """
    default_limit = default_limit if default_limit is not None else config.page_size_default()
    max_limit = max_limit if max_limit is not None else config.page_size_max()
    strict_sort = config.sort_strict() if strict_sort is None else strict_sort

    sort_by, sort_order = resolve_sort(spec.sort_by, spec.sort_order, strict=strict_sort)
    page, limit = clamp_pagination(
        spec.page,
        spec.limit,
        default_limit=min(default_limit, max_limit),
        max_limit=max_limit,
    )
    start, end = resolve_date_range(spec.date_range, today=today)
    date_range = DateRange(start=start, end=end) if (start or end) else None

    return FilterSpec(
        filters=_clean_filters(spec.filters),
        date_range=date_range,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )


def build(
    spec: FilterSpec,
    field_map: Mapping[str, str],
    *,
    start: int = 1,
    today: date | None = None,
) -> Predicate:
    """
    WHERE fragments plus ordered parameters for `spec` against one table.

    `start` is the first placeholder number, so callers can append more
    parameters after these.
    """
    fragments: list[str] = []
    params: list[Any] = []

    def placeholder(value: Any) -> str:
        params.append(value)
        return f"${start + len(params) - 1}"

    filters = _clean_filters(spec.filters)
    for field in FILTER_FIELDS:
        values = filters.get(field)
        if not values:
            continue
        column = _column(field_map, field)
        slots = ", ".join(placeholder(v.lower()) for v in values)
        fragments.append(f"lower({column}) IN ({slots})")

    date_start, date_end = resolve_date_range(spec.date_range, today=today)
    if date_start is not None or date_end is not None:
        column = _column(field_map, DATE_FIELD)
        if date_start is not None and date_end is not None:
            fragments.append(f"{column} BETWEEN {placeholder(date_start)} AND {placeholder(date_end)}")
        elif date_start is not None:
            fragments.append(f"{column} >= {placeholder(date_start)}")
        else:
            fragments.append(f"{column} <= {placeholder(date_end)}")

    return Predicate(fragments, params)


def _projection(field_map: Mapping[str, str]) -> str:
    return ",\n  ".join(
        f"{quote_ident(field_map[field])} AS {quote_ident(field)}"
        for field in TRIP_FIELDS
        if field in field_map
    )


def order_by_clause(field_map: Mapping[str, str], sort_by: str | None, sort_order: str | None) -> str:
    field, order = resolve_sort(sort_by, sort_order)
    direction = "DESC" if order == "desc" else "ASC"
    expr = _column(field_map, field)
    if field in TEXT_SORT_FIELDS:
        expr = f'lower({expr}) COLLATE "C"'
    return f"ORDER BY {expr} {direction} NULLS LAST, {_column(field_map, 'id')} ASC"


def build_page_query(
    table: str,
    field_map: Mapping[str, str],
    spec: FilterSpec,
    *,
    rows: int | None,
    today: date | None = None,
) -> tuple[str, list[Any]]:
    """
    SELECT the first `rows` matching trips in sort order (all of them when `rows` is None).
    """
    predicate = build(spec, field_map, today=today)
    params = list(predicate.params)
    sql = (
        f"SELECT\n  {_projection(field_map)}\n"
        f"FROM {quote_ident(table)}\n"
        f"{predicate.where_clause()}\n"
        f"{order_by_clause(field_map, spec.sort_by, spec.sort_order)}"
    )
    if rows is not None:
        params.append(max(0, int(rows)))
        sql += f"\nLIMIT ${len(params)}"
    return sql, params


def build_count_query(
    table: str,
    field_map: Mapping[str, str],
    spec: FilterSpec,
    *,
    today: date | None = None,
) -> tuple[str, list[Any]]:
    predicate = build(spec, field_map, today=today)
    sql = f"SELECT count(*) AS total\nFROM {quote_ident(table)}\n{predicate.where_clause()}"
    return sql, list(predicate.params)


def build_distinct_query(table: str, field_map: Mapping[str, str], field: str) -> tuple[str, list[Any]]:
    if field not in FILTER_FIELDS:
        raise FilterValidationError(f"Field {field!r} does not support distinct listing.")
    column = _column(field_map, field)
    sql = (
        f"SELECT DISTINCT {column} AS {quote_ident(field)}\n"
        f"FROM {quote_ident(table)}\n"
        f"WHERE {column} IS NOT NULL"
    )
    return sql, []
