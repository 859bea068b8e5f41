"""
Canonical JSON encoding.

Deterministic serialization of JSON-like values: object keys sorted,
no insignificant whitespace, recursive. Deep-equal values encode to the
same string regardless of key order, so the output can feed a content hash.
"""

import json
import math
from typing import Any


class _Undefined:
    """Marker for object entries that must be left out of the encoding."""

    def __repr__(self) -> str:
        return "UNDEFINED"


UNDEFINED = _Undefined()


def _encode_scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if not math.isfinite(value):
            return "null"
        # 1.0 and 1 are the same JSON number
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str):
        return json.dumps(value, ensure_ascii=False)
    return json.dumps(str(value), ensure_ascii=False)


def canonical_encode(value: Any) -> str:
    if value is None or value is UNDEFINED:
        return "null"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(canonical_encode(entry) for entry in value) + "]"
    if isinstance(value, dict):
        entries = [
            f"{json.dumps(str(key), ensure_ascii=False)}:{canonical_encode(value[key])}"
            for key in sorted(value.keys(), key=str)
            if value[key] is not UNDEFINED
        ]
        return "{" + ",".join(entries) + "}"
    return _encode_scalar(value)
