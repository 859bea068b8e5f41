"""
Admin Router

Operator-only endpoints:
- account and subscription lifecycle actions against the upstream platform
- webhook ledger, projection and audit log views
"""

from typing import Callable, Optional

from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from volsync.containers import Container
from volsync.core.security import AdminPrincipal, require_admin
from volsync.database.session import get_db
from volsync.schemas.admin import (
    AccountActionRequest,
    ActionResponse,
    SubscriptionActionRequest,
    TradeListResponse,
    WebhookEventListResponse,
)
from volsync.services.admin_action_service import AdminActionService
from volsync.services.projection_query_service import ProjectionQueryService

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.post("/accounts/{account_id}/actions", response_model=ActionResponse)
@inject
def run_account_action(
    account_id: str,
    payload: AccountActionRequest,
    principal: AdminPrincipal = Depends(require_admin),
    db: Session = Depends(get_db),
    admin_action_service_factory: Callable[..., AdminActionService] = Depends(
        Provide[Container.services.admin_action_service.provider]
    ),
):
    """Enable, disable or change the status of a trading account."""
    service = admin_action_service_factory(db=db)
    result = service.run_account_action(account_id, payload, actor=principal)
    return ActionResponse(action=payload.action, target_id=account_id, result=result)


@router.post("/subscriptions/{subscription_id}/actions", response_model=ActionResponse)
@inject
def run_subscription_action(
    subscription_id: str,
    payload: SubscriptionActionRequest,
    principal: AdminPrincipal = Depends(require_admin),
    db: Session = Depends(get_db),
    admin_action_service_factory: Callable[..., AdminActionService] = Depends(
        Provide[Container.services.admin_action_service.provider]
    ),
):
    service = admin_action_service_factory(db=db)
    result = service.run_subscription_action(subscription_id, payload, actor=principal)
    return ActionResponse(action=payload.action, target_id=subscription_id, result=result)


@router.get("/webhook-events", response_model=WebhookEventListResponse)
@inject
def list_webhook_events(
    limit: int = Query(50, ge=1, le=500),
    account_id: Optional[str] = Query(None, alias="accountId"),
    principal: AdminPrincipal = Depends(require_admin),
    db: Session = Depends(get_db),
    projection_query_service_factory: Callable[..., ProjectionQueryService] = Depends(
        Provide[Container.services.projection_query_service.provider]
    ),
):
    """Most recent ledger entries, optionally for one account."""
    service = projection_query_service_factory(db=db)
    events = service.recent_events(limit=limit, account_id=account_id)
    return WebhookEventListResponse(
        events=[event.model_dump(by_alias=True, mode="json") for event in events]
    )


@router.get("/webhook-events/{event_id}")
@inject
def get_webhook_event(
    event_id: str,
    principal: AdminPrincipal = Depends(require_admin),
    db: Session = Depends(get_db),
    projection_query_service_factory: Callable[..., ProjectionQueryService] = Depends(
        Provide[Container.services.projection_query_service.provider]
    ),
):
    service = projection_query_service_factory(db=db)
    event = service.get_event(event_id)
    return {"ok": True, "event": event.model_dump(by_alias=True, mode="json")}


@router.get("/accounts/{account_id}")
@inject
def get_account(
    account_id: str,
    principal: AdminPrincipal = Depends(require_admin),
    db: Session = Depends(get_db),
    projection_query_service_factory: Callable[..., ProjectionQueryService] = Depends(
        Provide[Container.services.projection_query_service.provider]
    ),
):
    service = projection_query_service_factory(db=db)
    account = service.get_account(account_id)
    return {"ok": True, "account": account.model_dump(by_alias=True, mode="json")}


@router.get("/accounts/{account_id}/trades", response_model=TradeListResponse)
@inject
def list_account_trades(
    account_id: str,
    limit: int = Query(200, ge=1, le=1000),
    principal: AdminPrincipal = Depends(require_admin),
    db: Session = Depends(get_db),
    projection_query_service_factory: Callable[..., ProjectionQueryService] = Depends(
        Provide[Container.services.projection_query_service.provider]
    ),
):
    """Closed trades with net P&L derived on read."""
    service = projection_query_service_factory(db=db)
    trades = service.account_trades(account_id, limit=limit)
    return TradeListResponse(
        account_id=account_id,
        trades=[trade.model_dump(by_alias=True, mode="json") for trade in trades],
    )


@router.get("/accounts/{account_id}/positions")
@inject
def list_account_positions(
    account_id: str,
    principal: AdminPrincipal = Depends(require_admin),
    db: Session = Depends(get_db),
    projection_query_service_factory: Callable[..., ProjectionQueryService] = Depends(
        Provide[Container.services.projection_query_service.provider]
    ),
):
    service = projection_query_service_factory(db=db)
    positions = service.account_positions(account_id)
    return {
        "ok": True,
        "accountId": account_id,
        "positions": [position.model_dump(by_alias=True, mode="json") for position in positions],
    }


@router.get("/audit-log")
@inject
def list_audit_log(
    limit: int = Query(50, ge=1, le=500),
    action: Optional[str] = Query(None),
    principal: AdminPrincipal = Depends(require_admin),
    db: Session = Depends(get_db),
    projection_query_service_factory: Callable[..., ProjectionQueryService] = Depends(
        Provide[Container.services.projection_query_service.provider]
    ),
):
    """Most recent audit entries, optionally for one action."""
    service = projection_query_service_factory(db=db)
    entries = service.audit_entries(limit=limit, action=action)
    return {"ok": True, "entries": [entry.model_dump(by_alias=True, mode="json") for entry in entries]}
