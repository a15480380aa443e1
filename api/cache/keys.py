"""
Cache key derivation.

Every cached endpoint goes through `build_key`, so two requests share an
entry exactly when they carry the same logical parameters:

- mapping keys are sorted
- multi-value fields are de-duplicated and sorted
- strings are stripped; fields matched case-insensitively are lower-cased
- dates render as ISO-8601
- None and empty collections are dropped, so "absent" equals "empty"

The canonical JSON is hashed so keys stay short whatever the filters.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel

# Free-text fields compared with lower() in SQL.
CASE_INSENSITIVE_FIELDS = frozenset({"origin", "destination", "transport_type", "operator_name"})

_EMPTY = object()


def _canonical(value: Any, *, fold_case: bool = False) -> Any:
    if isinstance(value, BaseModel):
        value = value.model_dump()

    if value is None:
        return _EMPTY
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, str):
        text = value.strip()
        return text.lower() if fold_case else text
    if isinstance(value, bool) or isinstance(value, (int, float)):
        return value
    if isinstance(value, (datetime, date)):
        return value.isoformat()

    if isinstance(value, Mapping):
        out: dict[str, Any] = {}
        for k in sorted(value, key=str):
            item = _canonical(value[k], fold_case=str(k) in CASE_INSENSITIVE_FIELDS)
            if item is _EMPTY:
                continue
            out[str(k)] = item
        return out or _EMPTY

    if isinstance(value, (list, tuple, set, frozenset)):
        items = []
        for v in value:
            item = _canonical(v, fold_case=fold_case)
            if item is _EMPTY or item == "":
                continue
            items.append(item)
        if not items:
            return _EMPTY
        # Sort on the serialized form so mixed element types stay comparable.
        unique = {json.dumps(i, sort_keys=True, separators=(",", ":")): i for i in items}
        return [unique[k] for k in sorted(unique)]

    return str(value)


def canonicalize(params: Any) -> str:
    """
    Stable JSON text for `params`.
    """
    value = _canonical(params)
    if value is _EMPTY:
        value = {}
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=True)


def build_key(endpoint: str, params: Any = None) -> str:
    endpoint = (endpoint or "").strip()
    if not endpoint:
        raise ValueError("Cache key endpoint name is empty.")
    digest = hashlib.sha256(canonicalize(params).encode("utf-8")).hexdigest()
    return f"{endpoint}:{digest}"
