"""
Approximate byte footprint of cache entries.

The estimate is the UTF-8 length of the compact JSON form of the value plus
the UTF-8 length of the key. It tracks what the payload costs to hold and to
send, not the exact Python object overhead.
"""

from __future__ import annotations

import json
from typing import Any


class CacheAccountingError(RuntimeError):
    pass


def estimate_size(key: str, value: Any) -> int:
    """
    Return the estimated size in bytes of `key` + `value`.

    Raises CacheAccountingError when the value cannot be serialized.
    """
    try:
        payload = json.dumps(value, ensure_ascii=False, separators=(",", ":"), allow_nan=False)
    except (TypeError, ValueError, RecursionError) as exc:
        raise CacheAccountingError(f"Cannot size cache value for key {key!r}: {exc}") from exc
    return len(payload.encode("utf-8")) + len(key.encode("utf-8"))
