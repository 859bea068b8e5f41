"""
Webhook ingestion pipeline.

One request runs synchronously through: size check, authentication on the
raw bytes, JSON decode, event identity, ledger insert (the duplicate check),
validation, projection. Every rejection is audited and logged with a
``WEBHOOK_AUDIT`` line before the response is built, and every response
carries an event id.

Business failures (validation, projection) answer 200 with ``ok: false``.
Only infrastructure failures (the ledger store) answer 5xx.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from sqlalchemy.orm import Session

from volsync.config import Settings
from volsync.repositories.webhook_event_repository import WebhookEventRepository
from volsync.schemas.webhook import (
    AuthDebugInfo,
    LedgerEntry,
    ProjectionMeta,
    ProjectionSummary,
    WebhookAckResponse,
    WebhookOutcome,
)
from volsync.services.audit_service import AuditService
from volsync.services.event_identity import compute_raw_event_id, resolve_event_id
from volsync.services.payload_validator import validate_webhook_payload
from volsync.services.projection_service import ProjectionService
from volsync.services.webhook_auth_service import WebhookAuthenticator
from volsync.utils.normalize import normalize_enum_value

logger = logging.getLogger(__name__)

TARGET_TYPE = "webhook_event"


def _log_webhook(action: str, event_id: str, status: int, detail: str = "") -> None:
    logger.info(
        "WEBHOOK_AUDIT event=%s id=%s status=%s %s", action, event_id, status, detail
    )


def _source_ip(headers: Mapping[str, str], client_host: Optional[str]) -> Optional[str]:
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return headers.get("x-real-ip") or client_host


def _content_length(headers: Mapping[str, str]) -> Optional[int]:
    value = headers.get("content-length")
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


class WebhookService:
    def __init__(self, db: Session, settings: Settings):
        self.settings = settings
        self.auth_config = settings.webhook_auth
        self.authenticator = WebhookAuthenticator(self.auth_config)
        self.ledger = WebhookEventRepository(db)
        self.projection_service = ProjectionService(db)
        self.audit_service = AuditService(db)

    def _reject(
        self,
        action: str,
        status_code: int,
        response: WebhookAckResponse,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> WebhookOutcome:
        self.audit_service.record(
            action,
            target_type=TARGET_TYPE,
            target_id=response.event_id,
            metadata={"status": status_code, "error": response.error, **(metadata or {})},
        )
        _log_webhook(action, response.event_id, status_code, response.error or "")
        return WebhookOutcome(status_code=status_code, response=response)

    def ingest(
        self,
        raw_body: bytes,
        headers: Mapping[str, str],
        client_host: Optional[str] = None,
    ) -> WebhookOutcome:
        received_at = datetime.now(timezone.utc)
        limit = self.auth_config.max_body_bytes

        declared_length = _content_length(headers)
        if (declared_length is not None and declared_length > limit) or len(raw_body) > limit:
            return self._reject(
                "webhook.rejected.too_large",
                413,
                WebhookAckResponse(
                    ok=False,
                    event_id=compute_raw_event_id(raw_body),
                    error="Payload too large.",
                ),
                {"bytes": max(len(raw_body), declared_length or 0), "limit": limit},
            )

        if not raw_body:
            return self._reject(
                "webhook.rejected.empty",
                400,
                WebhookAckResponse(
                    ok=False, event_id=compute_raw_event_id(raw_body), error="Empty payload."
                ),
            )

        auth = self.authenticator.authenticate(headers, raw_body)
        if not auth.valid:
            header_present = self.authenticator.header_present(headers)
            response = WebhookAckResponse(
                ok=False,
                event_id=compute_raw_event_id(raw_body),
                error=auth.error or "Unauthorized.",
            )
            status_code = 401
            if not self.settings.is_production:
                status_code = 200
                response.debug = AuthDebugInfo(
                    auth_mode=auth.mode,
                    expected_header=self.auth_config.expected_header_name,
                    header_present=header_present,
                )
            return self._reject(
                "webhook.rejected.auth",
                status_code,
                response,
                {"authMode": auth.mode, "headerPresent": header_present},
            )

        try:
            payload = json.loads(raw_body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            return self._reject(
                "webhook.rejected.malformed",
                400,
                WebhookAckResponse(
                    ok=False,
                    event_id=compute_raw_event_id(raw_body),
                    error="Invalid JSON payload.",
                ),
            )

        identity = resolve_event_id(payload, self.auth_config.event_id_path)
        event_id = identity.event_id
        fields = payload if isinstance(payload, dict) else {}

        ledger_result = self.ledger.insert_event(
            LedgerEntry(
                event_id=event_id,
                auth_mode=auth.mode,
                signature_valid=auth.valid,
                payload=payload,
                received_at=received_at,
                category=normalize_enum_value(fields.get("category")),
                event=normalize_enum_value(fields.get("event")),
                account_id=fields.get("accountId") if isinstance(fields.get("accountId"), str) else None,
                user_id=fields.get("userId") if isinstance(fields.get("userId"), str) else None,
                headers=self.authenticator.safe_header_snapshot(headers),
                correlation_id=headers.get("x-correlation-id"),
                source_ip=_source_ip(headers, client_host),
            )
        )

        if ledger_result.error:
            return self._reject(
                "webhook.ledger.failed",
                500,
                WebhookAckResponse(ok=False, event_id=event_id, error=ledger_result.error),
            )

        if ledger_result.duplicate:
            _log_webhook("webhook.duplicate", event_id, 200)
            return WebhookOutcome(
                status_code=200,
                response=WebhookAckResponse(ok=True, event_id=event_id, duplicate=True),
            )

        validation = validate_webhook_payload(payload)
        if not validation.valid:
            return self._reject(
                "webhook.rejected.invalid",
                200,
                WebhookAckResponse(
                    ok=False,
                    event_id=event_id,
                    error="Invalid webhook payload.",
                    details=validation.errors,
                ),
                {"details": validation.errors},
            )

        projection = self.projection_service.apply(
            payload, ProjectionMeta(event_id=event_id, received_at=received_at)
        )
        summary = ProjectionSummary(updates=projection.updates, errors=projection.errors)

        if projection.errors:
            return self._reject(
                "webhook.projection.failed",
                200,
                WebhookAckResponse(
                    ok=False,
                    event_id=event_id,
                    error="Projection failed.",
                    projections=summary,
                ),
                {"errors": projection.errors, "updates": projection.updates},
            )

        _log_webhook("webhook.processed", event_id, 200, ",".join(projection.updates))
        return WebhookOutcome(
            status_code=200,
            response=WebhookAckResponse(ok=True, event_id=event_id, projections=summary),
        )
