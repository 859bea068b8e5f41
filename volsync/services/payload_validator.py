"""Structural checks on a decoded webhook payload."""

from typing import Any, List

from volsync.schemas.webhook import ValidationResult

_OBJECT_FIELDS = ("tradingAccount", "subscription", "organizationUser")
_OBJECT_OR_LIST_FIELDS = ("tradingPosition", "tradingPortfolio", "tradeReport")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_webhook_payload(payload: Any) -> ValidationResult:
    """Return every violation found; never raises and never mutates ``payload``."""
    if not isinstance(payload, dict):
        return ValidationResult(valid=False, errors=["Payload must be an object."])

    errors: List[str] = []

    if "dtUtc" in payload and not isinstance(payload["dtUtc"], str):
        errors.append("dtUtc must be a string.")

    for key in ("category", "event"):
        value = payload.get(key)
        if value is not None and not (isinstance(value, str) or _is_number(value)):
            errors.append(f"{key} must be a string or number.")

    for key in ("userId", "accountId"):
        value = payload.get(key)
        if value is not None and not isinstance(value, str):
            errors.append(f"{key} must be a string or null.")

    for key in _OBJECT_FIELDS:
        value = payload.get(key)
        if value is not None and not isinstance(value, dict):
            errors.append(f"{key} must be an object.")

    for key in _OBJECT_OR_LIST_FIELDS:
        value = payload.get(key)
        if value is None:
            continue
        if not isinstance(value, (dict, list)):
            errors.append(f"{key} must be an object or array.")

    return ValidationResult(valid=not errors, errors=errors)
