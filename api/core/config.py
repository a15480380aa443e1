"""
Environment-driven settings.

Every setting is read on call so tests can override env vars with
monkeypatch. Malformed values fall back to the default instead of failing
startup.
"""

from __future__ import annotations

import os


DEFAULT_CACHE_TTL_S = 600.0
DEFAULT_CACHE_MAX_ITEMS = 100
DEFAULT_CACHE_MAX_BYTES = 50 * 1024 * 1024  # 50 MiB

DEFAULT_PAGE_SIZE = 50
DEFAULT_MAX_PAGE_SIZE = 100
DEFAULT_MAX_RESULT_WINDOW = 10_000


def _env_str(name: str, default: str) -> str:
    return os.environ.get(name, default).strip() or default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


def cache_ttl_s() -> float:
    return max(0.0, _env_float("CACHE_TTL_S", DEFAULT_CACHE_TTL_S))


def cache_max_items() -> int:
    return max(1, _env_int("CACHE_MAX_ITEMS", DEFAULT_CACHE_MAX_ITEMS))


def cache_max_bytes() -> int | None:
    """
    Byte ceiling for the response cache. 0 (or negative) disables size-based eviction.
    """
    value = _env_int("CACHE_MAX_BYTES", DEFAULT_CACHE_MAX_BYTES)
    return value if value > 0 else None


def page_size_default() -> int:
    return max(1, _env_int("PAGE_SIZE_DEFAULT", DEFAULT_PAGE_SIZE))


def page_size_max() -> int:
    return max(1, _env_int("PAGE_SIZE_MAX", DEFAULT_MAX_PAGE_SIZE))


def max_result_window() -> int:
    """
    Deepest row (page * limit) a listing may reach. Pages past it come back empty.
    """
    return max(1, _env_int("MAX_RESULT_WINDOW", DEFAULT_MAX_RESULT_WINDOW))


def sort_strict() -> bool:
    return _env_bool("SORT_STRICT", False)


def twelvego_table() -> str:
    return _env_str("TWELVEGO_TABLE", "trips_12go")


def bookaway_table() -> str:
    return _env_str("BOOKAWAY_TABLE", "trips_bookaway")


def thb_to_inr() -> float:
    return _env_float("THB_TO_INR", 2.32)


def import_batch_size() -> int:
    return max(1, _env_int("IMPORT_BATCH_SIZE", 400))


def db_pool_min_size() -> int:
    return max(1, _env_int("DB_POOL_MIN_SIZE", 1))


def db_pool_max_size() -> int:
    return max(db_pool_min_size(), _env_int("DB_POOL_MAX_SIZE", 5))


def cors_origins() -> list[str]:
    raw = _env_str("CORS_ORIGINS", "*")
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def log_level() -> str:
    return _env_str("LOG_LEVEL", "INFO").upper()
