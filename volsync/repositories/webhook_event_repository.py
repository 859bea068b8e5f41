"""
Webhook event ledger.

Append-only. The primary key on ``event_id`` is the idempotency boundary:
the insert itself is the duplicate check, so two concurrent deliveries of
the same event cannot both be recorded as first.
"""

import logging
from typing import List, Optional

from sqlalchemy import desc, insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from volsync.models.volumetrica import VolumetricaEvent
from volsync.repositories.base import BaseRepository
from volsync.schemas.volumetrica import WebhookEventResponse
from volsync.schemas.webhook import LedgerEntry, LedgerInsertResult

logger = logging.getLogger(__name__)


class WebhookEventRepository(BaseRepository[VolumetricaEvent, WebhookEventResponse]):
    def __init__(self, db: Session):
        super().__init__(VolumetricaEvent, WebhookEventResponse, db)

    def insert_event(self, entry: LedgerEntry) -> LedgerInsertResult:
        self._ensure_clean_session()
        stmt = insert(VolumetricaEvent).values(
            event_id=entry.event_id,
            auth_mode=entry.auth_mode,
            signature_valid=entry.signature_valid,
            category=entry.category,
            event=entry.event,
            account_id=entry.account_id,
            user_id=entry.user_id,
            payload=entry.payload,
            headers=entry.headers,
            correlation_id=entry.correlation_id,
            source_ip=entry.source_ip,
            received_at=entry.received_at,
        )
        try:
            self.db.execute(stmt)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return LedgerInsertResult(inserted=False, duplicate=True)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Ledger insert failed for {entry.event_id}: {str(e)}")
            return LedgerInsertResult(inserted=False, duplicate=False, error=str(e))
        return LedgerInsertResult(inserted=True, duplicate=False)

    def get_by_event_id(self, event_id: str) -> Optional[WebhookEventResponse]:
        return self.get(event_id)

    def get_recent(
        self, limit: int = 50, account_id: Optional[str] = None
    ) -> List[WebhookEventResponse]:
        self._ensure_clean_session()
        query = self.db.query(VolumetricaEvent)
        if account_id:
            query = query.filter(VolumetricaEvent.account_id == account_id)
        query = query.order_by(desc(VolumetricaEvent.received_at)).limit(limit)
        return [self._to_schema(row) for row in query.all()]

    def count(self) -> int:
        self._ensure_clean_session()
        return self.db.query(VolumetricaEvent).count()
