from typing import List, Optional

from sqlalchemy.orm import Session

from volsync.core.exceptions import NotFoundError
from volsync.repositories.account_repository import AccountRepository
from volsync.repositories.audit_log_repository import AuditLogRepository
from volsync.repositories.position_repository import PositionRepository
from volsync.repositories.trade_repository import TradeRepository
from volsync.repositories.webhook_event_repository import WebhookEventRepository
from volsync.schemas.volumetrica import (
    AccountResponse,
    AuditLogResponse,
    PositionResponse,
    TradeResponse,
    WebhookEventResponse,
)


class ProjectionQueryService:
    """Read access to the ledger and projections for operators."""

    def __init__(self, db: Session):
        self.ledger = WebhookEventRepository(db)
        self.account_repo = AccountRepository(db)
        self.trade_repo = TradeRepository(db)
        self.position_repo = PositionRepository(db)
        self.audit_repo = AuditLogRepository(db)

    def recent_events(
        self, limit: int = 50, account_id: Optional[str] = None
    ) -> List[WebhookEventResponse]:
        return self.ledger.get_recent(limit=limit, account_id=account_id)

    def get_event(self, event_id: str) -> WebhookEventResponse:
        event = self.ledger.get_by_event_id(event_id)
        if not event:
            raise NotFoundError(f"Webhook event not found: {event_id}")
        return event

    def get_account(self, account_id: str) -> AccountResponse:
        account = self.account_repo.get_account(account_id)
        if not account:
            raise NotFoundError(f"Account not found: {account_id}")
        return account

    def account_trades(self, account_id: str, limit: int = 200) -> List[TradeResponse]:
        return self.trade_repo.list_by_account(account_id, limit=limit)

    def account_positions(self, account_id: str) -> List[PositionResponse]:
        return self.position_repo.list_by_account(account_id)

    def audit_entries(self, limit: int = 50, action: Optional[str] = None) -> List[AuditLogResponse]:
        return self.audit_repo.get_recent(limit=limit, action=action)
