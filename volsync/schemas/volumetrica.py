"""Read models for ledger and projection rows."""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, computed_field
from pydantic.alias_generators import to_camel


def net_pl(pl: Optional[float], commission_paid: Optional[float]) -> Optional[float]:
    """Realized P&L after commission; commission defaults to zero."""
    if pl is None:
        return None
    return pl - (commission_paid or 0)


class _RowSchema(BaseModel):
    model_config = ConfigDict(
        from_attributes=True, alias_generator=to_camel, populate_by_name=True
    )


class WebhookEventResponse(_RowSchema):
    event_id: str
    auth_mode: str
    signature_valid: bool
    category: Optional[str] = None
    event: Optional[str] = None
    account_id: Optional[str] = None
    user_id: Optional[str] = None
    payload: Any = None
    headers: Optional[Dict[str, Any]] = None
    correlation_id: Optional[str] = None
    source_ip: Optional[str] = None
    received_at: Optional[datetime] = None


class AccountResponse(_RowSchema):
    account_id: str
    user_id: Optional[str] = None
    account_family_id: Optional[str] = None
    owner_organization_user_id: Optional[str] = None
    status: Optional[str] = None
    trading_permission: Optional[str] = None
    enabled: Optional[bool] = None
    reason: Optional[str] = None
    end_date: Optional[str] = None
    rule_id: Optional[str] = None
    rule_name: Optional[str] = None
    snapshot: Optional[Dict[str, Any]] = None
    raw: Optional[Dict[str, Any]] = None
    is_deleted: bool = False
    deleted_at: Optional[datetime] = None
    last_event_id: Optional[str] = None
    updated_at: Optional[datetime] = None


class TradeResponse(_RowSchema):
    trade_key: str
    trade_id: Optional[int] = None
    account_id: Optional[str] = None
    contract_id: Optional[int] = None
    symbol_name: Optional[str] = None
    entry_date: Optional[str] = None
    exit_date: Optional[str] = None
    quantity: Optional[float] = None
    open_price: Optional[float] = None
    close_price: Optional[float] = None
    pl: Optional[float] = None
    converted_pl: Optional[float] = None
    commission_paid: Optional[float] = None
    last_event_id: Optional[str] = None
    updated_at: Optional[datetime] = None

    @computed_field(alias="netPl")
    @property
    def net_pl(self) -> Optional[float]:
        return net_pl(self.pl, self.commission_paid)


class PlatformUserResponse(_RowSchema):
    volumetrica_user_id: str
    status: Optional[str] = None
    external_id: Optional[str] = None
    invite_url: Optional[str] = None
    raw: Optional[Dict[str, Any]] = None


class AuditLogResponse(_RowSchema):
    id: int
    action: str
    actor_user_id: Optional[str] = None
    actor_email: Optional[str] = None
    target_type: Optional[str] = None
    target_id: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None


class SubscriptionResponse(_RowSchema):
    subscription_id: str
    user_id: Optional[str] = None
    status: Optional[str] = None
    provider_status: Optional[str] = None
    activation: Optional[str] = None
    expiration: Optional[str] = None
    is_deleted: bool = False
    last_event_id: Optional[str] = None


class PositionResponse(_RowSchema):
    position_key: str
    account_id: Optional[str] = None
    position_id: Optional[int] = None
    contract_id: Optional[int] = None
    symbol_name: Optional[str] = None
    entry_date_utc: Optional[str] = None
    price: Optional[float] = None
    quantity: Optional[float] = None
    daily_pl: Optional[float] = None
    open_pl: Optional[float] = None
    last_event_id: Optional[str] = None
