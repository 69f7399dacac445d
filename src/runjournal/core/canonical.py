# src/runjournal/core/canonical.py
"""
JSON rendering of journal documents.

Two renderings share one normalization pass:
1. document_json(): human-readable, insertion-ordered, indented. Used for
   journal files so sections appear in the order watchers reported them.
2. canonical_json(): RFC 8785/JCS (rfc8785 package). Used for content
   hashes so the same document always hashes the same.

Normalization converts numpy scalars/arrays, datetimes, Decimals and
bytes to JSON primitives. Simulation watchers report numpy values
routinely.

NaN and Infinity are REJECTED, never silently converted. A journal that
says "iters: NaN" after a round trip through a store is worse than a
failed save.
"""

from __future__ import annotations

import base64
import hashlib
import json
import math
from collections.abc import Mapping
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

import numpy as np
import rfc8785

# Largest integer a JSON number holds exactly as an IEEE 754 double
_MAX_SAFE_INTEGER = 2**53 - 1


def _normalize_value(obj: Any) -> Any:
    """Convert a single value to a JSON-safe primitive.

    Raises:
        ValueError: If value is NaN or Infinity
    """
    if isinstance(obj, float | np.floating):
        if math.isnan(obj) or math.isinf(obj):
            raise ValueError(f"Cannot serialize non-finite float: {obj}. Use None for missing values, not NaN.")
        if isinstance(obj, np.floating):
            return float(obj)
        return obj

    if obj is None or isinstance(obj, str | int | bool):
        return obj

    if isinstance(obj, np.bool_):
        return bool(obj)
    if isinstance(obj, np.integer):
        return int(obj)
    if isinstance(obj, np.ndarray):
        if obj.size > 0 and np.issubdtype(obj.dtype, np.number) and not np.all(np.isfinite(obj)):
            raise ValueError("NaN/Infinity found in NumPy array. Use None for missing values, not NaN.")
        return [_normalize_for_json(x) for x in obj.tolist()]

    if isinstance(obj, datetime):
        if obj.tzinfo is None:
            obj = obj.replace(tzinfo=UTC)
        return obj.astimezone(UTC).isoformat()

    if isinstance(obj, bytes):
        return {"__bytes__": base64.b64encode(obj).decode("ascii")}

    if isinstance(obj, Decimal):
        if not obj.is_finite():
            raise ValueError(f"Cannot serialize non-finite Decimal: {obj}. Use None for missing values, not NaN/Infinity.")
        return str(obj)

    return obj


def _normalize_for_json(data: Any) -> Any:
    """Recursively normalize a data structure, keeping mapping order."""
    if isinstance(data, Mapping):
        return {k: _normalize_for_json(v) for k, v in data.items()}
    if isinstance(data, list | tuple):
        return [_normalize_for_json(v) for v in data]
    return _normalize_value(data)


def _hashable_integers(data: Any) -> Any:
    """Replace integers outside the IEEE 754 safe range with their decimal text.

    RFC 8785 refuses such integers; I-JSON (RFC 7493) represents them as
    strings. Only the hash input is rewritten, stored documents keep the int.
    """
    if isinstance(data, dict):
        return {k: _hashable_integers(v) for k, v in data.items()}
    if isinstance(data, list):
        return [_hashable_integers(v) for v in data]
    if isinstance(data, int) and not isinstance(data, bool) and abs(data) > _MAX_SAFE_INTEGER:
        return str(data)
    return data


def document_json(obj: Any, *, indent: int = 2) -> str:
    """Render a journal document as readable, deterministic JSON.

    Keys keep insertion order. Output always ends with a newline.

    Raises:
        ValueError: If data contains NaN, Infinity, or other non-finite values
        TypeError: If data contains types that cannot be serialized
    """
    normalized = _normalize_for_json(obj)
    return json.dumps(normalized, indent=indent, ensure_ascii=False, allow_nan=False) + "\n"


def canonical_json(obj: Any) -> str:
    """Produce canonical JSON (no whitespace, sorted keys) for hashing.

    Raises:
        ValueError: If data contains NaN, Infinity, or other non-finite values
        TypeError: If data contains types that cannot be serialized
    """
    normalized = _hashable_integers(_normalize_for_json(obj))
    result: bytes = rfc8785.dumps(normalized)
    return result.decode("utf-8")


def stable_hash(obj: Any) -> str:
    """SHA-256 hex digest of canonical JSON."""
    canonical = canonical_json(obj)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def normalize_document(obj: Mapping[str, Any]) -> dict[str, Any]:
    """Return a JSON-primitive copy of a document (for stores that need plain data)."""
    normalized: dict[str, Any] = _normalize_for_json(obj)
    return normalized
