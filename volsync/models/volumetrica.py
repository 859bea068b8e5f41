from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, BigInteger, Boolean, DateTime, Float, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from volsync.models.base import BaseModel, ProjectionMixin


class VolumetricaEvent(BaseModel):
    """
    Append-only webhook event ledger.

    One row per distinct event id. The primary key is the idempotency
    boundary: a replayed delivery fails the insert and is reported as a
    duplicate. Rows are never updated or deleted.
    """

    __tablename__ = "volumetrica_events"
    __table_args__ = (
        Index("idx_volumetrica_events_account", "account_id"),
        Index("idx_volumetrica_events_received", "received_at"),
    )

    event_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    auth_mode: Mapped[str] = mapped_column(String(50), nullable=False)
    signature_valid: Mapped[bool] = mapped_column(Boolean, nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    event: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    account_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    payload: Mapped[Any] = mapped_column(JSON, nullable=True)
    headers: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    correlation_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    source_ip: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    received_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self):
        return f"<VolumetricaEvent(event_id={self.event_id}, event={self.event})>"


class VolumetricaAccount(BaseModel, ProjectionMixin):
    __tablename__ = "volumetrica_accounts"
    __table_args__ = (Index("idx_volumetrica_accounts_user", "user_id"),)

    account_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    account_family_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    owner_organization_user_id: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True
    )
    status: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    trading_permission: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    enabled: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    end_date: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    rule_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    rule_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    snapshot: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    raw: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self):
        return f"<VolumetricaAccount(account_id={self.account_id}, user_id={self.user_id})>"


class VolumetricaSubscription(BaseModel, ProjectionMixin):
    __tablename__ = "volumetrica_subscriptions"

    subscription_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    status: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    provider_status: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    activation: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    expiration: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    dx_data_products: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    dx_agreement_signed: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    dx_agreement_link: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    dx_self_certification: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    platform: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    volumetrica_platform: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    volumetrica_license: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    volumetrica_download_link: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    raw: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class VolumetricaPosition(BaseModel, ProjectionMixin):
    """Open position snapshot; closed positions simply stop being reported."""

    __tablename__ = "volumetrica_positions"
    __table_args__ = (Index("idx_volumetrica_positions_account", "account_id"),)

    position_key: Mapped[str] = mapped_column(String(512), primary_key=True)
    account_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    position_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    contract_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    symbol_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    entry_date_utc: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    quantity: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    daily_pl: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    open_pl: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    raw: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)


class VolumetricaTrade(BaseModel, ProjectionMixin):
    """Closed trade. Net P&L is derived on read (pl - commission_paid)."""

    __tablename__ = "volumetrica_trades"
    __table_args__ = (Index("idx_volumetrica_trades_account", "account_id"),)

    trade_key: Mapped[str] = mapped_column(String(512), primary_key=True)
    trade_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    account_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    contract_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    symbol_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    entry_date: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    exit_date: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    quantity: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    open_price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    close_price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    pl: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    converted_pl: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    commission_paid: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    raw: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)


class VolumetricaUser(BaseModel, ProjectionMixin):
    """Upstream platform user linked to a local account holder via external_id."""

    __tablename__ = "volumetrica_users"
    __table_args__ = (Index("idx_volumetrica_users_external", "external_id"),)

    volumetrica_user_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    status: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    external_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    invite_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    creation_utc: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    update_utc: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    raw: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
