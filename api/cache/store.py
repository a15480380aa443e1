"""
Bounded in-process response cache.

Entries expire after a TTL (checked lazily on access) and are evicted in
least-recently-used order when the store exceeds its item ceiling or its
optional byte ceiling.

One instance is created per process in the FastAPI lifespan (`api/main.py`)
and handed to request handlers through a dependency.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable

from .sizing import CacheAccountingError, estimate_size
from .stats import StatsCollector

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    key: str
    value: Any
    created_at: float
    expires_at: float
    size: int

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class CacheStore:
    def __init__(
        self,
        *,
        max_items: int,
        ttl_s: float,
        max_bytes: int | None = None,
        clock: Callable[[], float] = time.monotonic,
        sizer: Callable[[str, Any], int] = estimate_size,
        stats: StatsCollector | None = None,
    ) -> None:
        if max_items < 1:
            raise ValueError("max_items must be >= 1.")
        if ttl_s <= 0:
            raise ValueError("ttl_s must be > 0.")
        self.max_items = max_items
        self.max_bytes = max_bytes if max_bytes and max_bytes > 0 else None
        self.ttl_s = ttl_s
        self._clock = clock
        self._sizer = sizer
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._bytes = 0
        # Plain lock: nothing awaits while holding it.
        self._lock = threading.Lock()
        self.stats = stats or StatsCollector()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        entry = self._entries.get(key)  # type: ignore[arg-type]
        return entry is not None and not entry.is_expired(self._clock())

    @property
    def bytes_used(self) -> int:
        return self._bytes

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.stats.record_miss()
                logger.debug("cache_miss key=%s", key)
                return None

            if entry.is_expired(self._clock()):
                self._remove(key)
                self.stats.record_expiration()
                self.stats.record_miss()
                logger.debug("cache_expired key=%s", key)
                return None

            self._entries.move_to_end(key)
            self.stats.record_hit()
            logger.debug("cache_hit key=%s", key)
            return entry.value

    def set(self, key: str, value: Any, ttl_s: float | None = None) -> bool:
        """
        Insert or replace `key`. Returns False when the entry alone exceeds the byte budget.
        """
        size = self._entry_size(key, value)
        ttl = self.ttl_s if ttl_s is None else ttl_s

        with self._lock:
            if self.max_bytes is not None and size > self.max_bytes:
                self.stats.record_rejection()
                logger.warning(
                    "cache_rejected key=%s size=%s max_bytes=%s",
                    key,
                    size,
                    self.max_bytes,
                )
                return False

            if key in self._entries:
                self._remove(key)

            while len(self._entries) >= self.max_items:
                self._evict_lru()

            if self.max_bytes is not None:
                while self._entries and self._bytes + size > self.max_bytes:
                    self._evict_lru()

            now = self._clock()
            self._entries[key] = CacheEntry(
                key=key,
                value=value,
                created_at=now,
                expires_at=now + ttl,
                size=size,
            )
            self._bytes += size
            self.stats.record_set()
            self._sync_usage()
            return True

    def delete(self, key: str) -> bool:
        with self._lock:
            if key not in self._entries:
                return False
            self._remove(key)
            return True

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._bytes = 0
            self._sync_usage()

    def snapshot(self) -> dict[str, Any]:
        data = self.stats.snapshot()
        data.update(
            {
                "max_items": self.max_items,
                "max_bytes": self.max_bytes,
                "ttl_s": self.ttl_s,
            }
        )
        return data

    def _entry_size(self, key: str, value: Any) -> int:
        try:
            return int(self._sizer(key, value))
        except CacheAccountingError:
            # Bookkeeping failures never block caching; the entry is free.
            self.stats.record_accounting_error()
            logger.warning("cache_size_failed key=%s", key, exc_info=True)
            return 0

    def _remove(self, key: str) -> CacheEntry:
        entry = self._entries.pop(key)
        self._bytes -= entry.size
        self._sync_usage()
        return entry

    def _evict_lru(self) -> None:
        key = next(iter(self._entries))
        entry = self._remove(key)
        self.stats.record_eviction()
        logger.debug("cache_evicted key=%s size=%s", key, entry.size)

    def _sync_usage(self) -> None:
        self.stats.update_usage(items=len(self._entries), bytes_used=self._bytes)
