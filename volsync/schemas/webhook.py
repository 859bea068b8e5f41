"""Webhook ingestion schemas."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


@dataclass
class EventIdentity:
    event_id: str
    computed: bool


@dataclass
class AuthResult:
    mode: str
    valid: bool
    signature: Optional[str] = None
    error: Optional[str] = None


@dataclass
class ValidationResult:
    valid: bool
    errors: List[str] = field(default_factory=list)


@dataclass
class ProjectionMeta:
    event_id: str
    received_at: datetime


@dataclass
class ProjectionResult:
    updates: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


@dataclass
class LedgerEntry:
    event_id: str
    auth_mode: str
    signature_valid: bool
    payload: Any
    received_at: datetime
    category: Optional[str] = None
    event: Optional[str] = None
    account_id: Optional[str] = None
    user_id: Optional[str] = None
    headers: Optional[Dict[str, Any]] = None
    correlation_id: Optional[str] = None
    source_ip: Optional[str] = None


@dataclass
class LedgerInsertResult:
    inserted: bool
    duplicate: bool
    error: Optional[str] = None


class AuthDebugInfo(BaseModel):
    """Non-production hint for integrators; never carries secret material."""

    model_config = ConfigDict(populate_by_name=True)

    auth_mode: str = Field(alias="authMode")
    expected_header: str = Field(alias="expectedHeader")
    header_present: bool = Field(alias="headerPresent")


class ProjectionSummary(BaseModel):
    updates: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


class WebhookAckResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ok: bool
    event_id: str = Field(alias="eventId")
    error: Optional[str] = None
    duplicate: Optional[bool] = None
    details: Optional[List[str]] = None
    debug: Optional[AuthDebugInfo] = None
    projections: Optional[ProjectionSummary] = None

    def to_body(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


@dataclass
class WebhookOutcome:
    status_code: int
    response: WebhookAckResponse
