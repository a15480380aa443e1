"""
Cache counters for operational visibility.

Counters only go up. `snapshot()` copies plain ints and floats without taking
a lock, so reading stats never waits on cache traffic.
"""

from __future__ import annotations

import time
from typing import Any


class StatsCollector:
    def __init__(self) -> None:
        self.hits = 0
        self.misses = 0
        self.sets = 0
        self.evictions = 0
        self.expirations = 0
        self.rejections = 0
        self.accounting_errors = 0
        self.last_eviction_at: float | None = None
        self.bytes_used = 0
        self.items = 0

    def record_hit(self) -> None:
        self.hits += 1

    def record_miss(self) -> None:
        self.misses += 1

    def record_set(self) -> None:
        self.sets += 1

    def record_eviction(self) -> None:
        self.evictions += 1
        self.last_eviction_at = time.time()

    def record_expiration(self) -> None:
        self.expirations += 1

    def record_rejection(self) -> None:
        self.rejections += 1

    def record_accounting_error(self) -> None:
        self.accounting_errors += 1

    def update_usage(self, *, items: int, bytes_used: int) -> None:
        self.items = items
        self.bytes_used = bytes_used

    def snapshot(self) -> dict[str, Any]:
        hits = self.hits
        misses = self.misses
        lookups = hits + misses
        return {
            "hits": hits,
            "misses": misses,
            "hit_ratio": round(hits / lookups, 4) if lookups else 0.0,
            "sets": self.sets,
            "evictions": self.evictions,
            "expirations": self.expirations,
            "rejections": self.rejections,
            "accounting_errors": self.accounting_errors,
            "last_eviction_at": self.last_eviction_at,
            "items": self.items,
            "bytes_used": self.bytes_used,
        }
