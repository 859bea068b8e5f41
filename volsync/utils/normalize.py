"""Value coercion helpers for upstream payloads.

The upstream platform serializes enums inconsistently (``"Funded=2"``,
``"2"`` or ``2``) and sends numbers as either JSON numbers or strings.
Everything that stores or compares upstream values goes through here.
"""

import math
from datetime import datetime, timezone
from typing import Any, List, Optional

# 0001-01-01 to 1970-01-01 in .NET ticks (100ns)
_DOTNET_EPOCH_TICKS = 621_355_968_000_000_000


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def format_number(value: float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def normalize_enum_value(value: Any) -> Optional[str]:
    """Canonical text form of a provider enum.

    ``normalize_enum_value("Funded=2") == normalize_enum_value(2) == "2"``;
    a label without ``=`` is returned trimmed; non string/number input
    yields None.
    """
    if _is_number(value):
        return format_number(value)
    if not isinstance(value, str):
        return None
    parts = value.split("=")
    return (parts[1] if len(parts) > 1 else parts[0]).strip()


def to_nullable_number(value: Any) -> Optional[float]:
    if _is_number(value):
        return value if math.isfinite(value) else None
    if isinstance(value, str) and value.strip():
        try:
            parsed = float(value.replace(",", "").strip())
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return None


def to_nullable_int(value: Any) -> Optional[int]:
    number = to_nullable_number(value)
    if number is None or not float(number).is_integer():
        return None
    return int(number)


def to_nullable_string(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def to_nullable_bool(value: Any) -> Optional[bool]:
    return value if isinstance(value, bool) else None


def as_list(value: Any) -> List[Any]:
    if not value:
        return []
    return list(value) if isinstance(value, list) else [value]


def _iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )


def to_iso_from_epoch(value: Any) -> Optional[str]:
    """Epoch seconds, epoch milliseconds or .NET ticks to an ISO-8601 UTC string."""
    numeric = to_nullable_number(value)
    if numeric is None:
        return None

    if numeric > 1e15:
        ms = (numeric - _DOTNET_EPOCH_TICKS) // 10_000
    elif numeric > 1e12:
        ms = math.floor(numeric)
    else:
        ms = math.floor(numeric * 1000)

    if ms <= 0:
        return None
    try:
        return _iso(datetime.fromtimestamp(ms / 1000, tz=timezone.utc))
    except (OverflowError, OSError, ValueError):
        return None


def to_iso_from_date(value: Any) -> Optional[str]:
    if not isinstance(value, str) or not value.strip():
        return None
    normalized = value.strip()
    if "T" not in normalized:
        normalized = f"{normalized}T00:00:00Z"
    if normalized.endswith("Z"):
        normalized = normalized[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(normalized)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return _iso(parsed)
