"""Deterministic event identity for inbound webhooks."""

import hashlib
from typing import Any, Optional

from volsync.schemas.webhook import EventIdentity
from volsync.utils.canonical import canonical_encode

COMPUTED_PREFIX = "computed:"


def get_by_path(payload: Any, path: str) -> Optional[Any]:
    """Walk a dot-delimited path through nested objects."""
    if not path:
        return None
    current = payload
    for segment in path.split("."):
        if not isinstance(current, dict) or segment not in current:
            return None
        current = current[segment]
    return current


def compute_event_id(payload: Any) -> str:
    digest = hashlib.sha256(canonical_encode(payload).encode("utf-8")).hexdigest()
    return f"{COMPUTED_PREFIX}{digest}"


def compute_raw_event_id(raw: bytes) -> str:
    """Content hash of the undecoded body, for requests rejected before parsing."""
    return f"{COMPUTED_PREFIX}{hashlib.sha256(raw).hexdigest()}"


def resolve_event_id(payload: Any, path: str = "id") -> EventIdentity:
    """
    Provider id when present, canonical content hash otherwise.

    A provider id is any non-empty string at ``path`` after trimming; the
    trimmed value is used verbatim. Anything else (missing, blank, numeric)
    falls back to ``compute_event_id`` so retries of the same body collapse
    onto one id.
    """
    candidate = get_by_path(payload, path)
    if isinstance(candidate, str) and candidate.strip():
        return EventIdentity(event_id=candidate.strip(), computed=False)
    return EventIdentity(event_id=compute_event_id(payload), computed=True)
