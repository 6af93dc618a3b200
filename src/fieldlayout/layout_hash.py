"""Canonical JSON encoding and revision hashing for persisted layouts."""

from __future__ import annotations

import hashlib
import json
import math
from typing import Any


class CanonicalJsonTypeError(TypeError):
    """Raised when a layout document holds a value JSON cannot represent."""


def _check(obj: Any, path: str) -> None:
    if obj is None or isinstance(obj, (str, bool, int)):
        return
    if isinstance(obj, float):
        if not math.isfinite(obj):
            raise ValueError(f"Non-finite float at {path}: {obj!r}")
        return
    if isinstance(obj, list):
        for idx, item in enumerate(obj):
            _check(item, f"{path}[{idx}]")
        return
    if isinstance(obj, dict):
        for key, value in obj.items():
            if not isinstance(key, str):
                raise CanonicalJsonTypeError(f"Unsupported key type at {path}: {type(key).__name__}")
            _check(value, f"{path}.{key}")
        return
    raise CanonicalJsonTypeError(f"Unsupported type at {path}: {type(obj).__name__}")


def canonical_dumps(obj: Any) -> str:
    """Serialize a layout document deterministically.

    Keys are sorted at every level, list order is kept, separators carry no
    whitespace and non-ASCII text is written as-is.
    """
    _check(obj, "$")
    return json.dumps(obj, sort_keys=True, ensure_ascii=False, separators=(",", ":"), allow_nan=False)


def layout_hash(layout_doc: Any) -> str:
    """Return the sha256 revision hash of a persisted layout document."""
    digest = hashlib.sha256(canonical_dumps(layout_doc).encode("utf-8")).hexdigest()
    return f"sha256:{digest}"
