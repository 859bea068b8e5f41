"""
Webhook projection engine.

A single webhook payload may carry any of five unrelated sub-entities
(account, subscription, positions, trades, platform user). Each one is
handled by its own step; a failing step rolls back only its own unit of
work and is reported as ``"<group>: <message>"`` while the remaining steps
still run. There is no cross-entity transaction.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from volsync.repositories.account_repository import AccountRepository
from volsync.repositories.position_repository import PositionRepository
from volsync.repositories.platform_user_repository import PlatformUserRepository
from volsync.repositories.subscription_repository import SubscriptionRepository
from volsync.repositories.trade_repository import TradeRepository
from volsync.schemas.webhook import ProjectionMeta, ProjectionResult
from volsync.utils.normalize import (
    as_list,
    format_number,
    normalize_enum_value,
    to_nullable_bool,
    to_nullable_int,
    to_nullable_number,
    to_nullable_string,
)

logger = logging.getLogger(__name__)

ACCOUNTS = "volumetrica_accounts"
SUBSCRIPTIONS = "volumetrica_subscriptions"
POSITIONS = "volumetrica_positions"
TRADES = "volumetrica_trades"
USERS = "volumetrica_users"


class EntityState(str, Enum):
    ACTIVE = "active"
    DELETED = "deleted"

    @classmethod
    def from_event(cls, event: Any) -> "EntityState":
        return cls.DELETED if normalize_enum_value(event) == "Deleted" else cls.ACTIVE


def _key_part(value: Any) -> str:
    if value is None:
        return "unknown"
    if isinstance(value, float):
        return format_number(value)
    return str(value)


def position_key(position: Dict[str, Any], account_id: Optional[str]) -> str:
    """``pos:<positionId>`` when upstream assigns one, else the identifying tuple."""
    if position.get("positionId") is not None:
        return f"pos:{_key_part(position['positionId'])}"
    return "pos:" + ":".join(
        _key_part(part)
        for part in (
            account_id,
            position.get("contractId"),
            position.get("symbolName"),
            position.get("entryDateUtc"),
        )
    )


def trade_key(trade: Dict[str, Any], account_id: Optional[str]) -> str:
    if trade.get("tradeId") is not None:
        return f"trade:{_key_part(trade['tradeId'])}"
    return "trade:" + ":".join(
        _key_part(part)
        for part in (
            account_id,
            trade.get("contractId"),
            trade.get("entryDate"),
            trade.get("exitDate"),
            trade.get("quantity"),
        )
    )


def _lifecycle_columns(state: EntityState, received_at: datetime) -> Dict[str, Any]:
    deleted = state is EntityState.DELETED
    return {"is_deleted": deleted, "deleted_at": received_at if deleted else None}


def build_account_row(
    account: Dict[str, Any],
    account_id: Optional[str],
    user_id: Optional[str],
    state: EntityState,
    meta: ProjectionMeta,
) -> Dict[str, Any]:
    """Full-replace row for the account projection."""
    row = {
        "account_id": str(account.get("id") or account_id),
        "user_id": user_id,
        "status": normalize_enum_value(account.get("status")),
        "trading_permission": normalize_enum_value(account.get("tradingPermission")),
        "enabled": to_nullable_bool(account.get("enabled")),
        "reason": to_nullable_string(account.get("reason")),
        "end_date": to_nullable_string(account.get("endDate")),
        "rule_id": _optional_text(account.get("ruleId")),
        "rule_name": to_nullable_string(account.get("ruleName")),
        "account_family_id": _optional_text(account.get("accountFamilyId")),
        "owner_organization_user_id": _optional_text(account.get("ownerOrganizationUserId")),
        "snapshot": account.get("snapshot") if isinstance(account.get("snapshot"), dict) else None,
        "raw": account,
        "last_event_id": meta.event_id,
        "updated_at": meta.received_at,
    }
    row.update(_lifecycle_columns(state, meta.received_at))
    return row


def _optional_text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    return str(value)


class ProjectionService:
    def __init__(self, db: Session):
        self.db = db
        self.account_repo = AccountRepository(db)
        self.subscription_repo = SubscriptionRepository(db)
        self.position_repo = PositionRepository(db)
        self.trade_repo = TradeRepository(db)
        self.user_repo = PlatformUserRepository(db)

    def apply(self, payload: Dict[str, Any], meta: ProjectionMeta) -> ProjectionResult:
        result = ProjectionResult()
        state = EntityState.from_event(payload.get("event"))

        trading_account = payload.get("tradingAccount")
        account_block = trading_account if isinstance(trading_account, dict) else None
        nested_user = (account_block or {}).get("user")

        account_id = _optional_text(
            payload.get("accountId") or (account_block or {}).get("id")
        )
        user_id = _optional_text(
            payload.get("userId")
            or (nested_user.get("userId") if isinstance(nested_user, dict) else None)
        )

        steps: List[tuple[str, Callable[[], Optional[str]]]] = [
            ("accounts", lambda: self._heal_account_link(account_id, user_id, meta)),
            ("accounts", lambda: self._upsert_account(account_block, account_id, user_id, state, meta)),
            ("accounts", lambda: self._insert_account_placeholder(account_block, account_id, user_id, state, meta)),
            ("subscriptions", lambda: self._upsert_subscription(payload.get("subscription"), user_id, state, meta)),
            ("positions", lambda: self._upsert_positions(payload, account_id, meta)),
            ("trades", lambda: self._upsert_trades(payload.get("tradeReport"), account_id, meta)),
            ("users", lambda: self._upsert_platform_user(payload.get("organizationUser"), user_id, meta)),
        ]

        for group, step in steps:
            try:
                touched = step()
            except Exception as e:
                if self.db.in_transaction():
                    self.db.rollback()
                logger.error(f"Projection step {group} failed for {meta.event_id}: {str(e)}")
                result.errors.append(f"{group}: {str(e)}")
                continue
            if touched:
                result.updates.append(touched)

        return result

    def _heal_account_link(
        self, account_id: Optional[str], user_id: Optional[str], meta: ProjectionMeta
    ) -> Optional[str]:
        if not account_id or not user_id:
            return None
        linked = self.account_repo.link_user(
            account_id, user_id, event_id=meta.event_id, linked_at=meta.received_at
        )
        return ACCOUNTS if linked else None

    def _upsert_account(
        self,
        account: Optional[Dict[str, Any]],
        account_id: Optional[str],
        user_id: Optional[str],
        state: EntityState,
        meta: ProjectionMeta,
    ) -> Optional[str]:
        if not account or not account.get("id"):
            return None
        self.account_repo.upsert(build_account_row(account, account_id, user_id, state, meta))
        return ACCOUNTS

    def _insert_account_placeholder(
        self,
        account: Optional[Dict[str, Any]],
        account_id: Optional[str],
        user_id: Optional[str],
        state: EntityState,
        meta: ProjectionMeta,
    ) -> Optional[str]:
        if account or not account_id:
            return None
        row = {
            "account_id": account_id,
            "user_id": user_id,
            "raw": {
                "accountId": account_id,
                "userId": user_id,
                "user": {"userId": user_id} if user_id else None,
            },
            "last_event_id": meta.event_id,
            "updated_at": meta.received_at,
        }
        row.update(_lifecycle_columns(state, meta.received_at))
        inserted = self.account_repo.insert_if_absent(row)
        return ACCOUNTS if inserted else None

    def _upsert_subscription(
        self,
        subscription: Any,
        user_id: Optional[str],
        state: EntityState,
        meta: ProjectionMeta,
    ) -> Optional[str]:
        if not isinstance(subscription, dict) or not subscription.get("subscriptionId"):
            return None
        row = {
            "subscription_id": str(subscription["subscriptionId"]),
            "user_id": _optional_text(subscription.get("userId")) or user_id,
            "status": normalize_enum_value(subscription.get("status")),
            "provider_status": normalize_enum_value(subscription.get("providerStatus")),
            "activation": to_nullable_string(subscription.get("activation")),
            "expiration": to_nullable_string(subscription.get("expiration")),
            "dx_data_products": subscription.get("dxDataProducts"),
            "dx_agreement_signed": to_nullable_bool(subscription.get("dxAgreementSigned")),
            "dx_agreement_link": to_nullable_string(subscription.get("dxAgreementLink")),
            "dx_self_certification": _optional_text(subscription.get("dxSelfCertification")),
            "platform": normalize_enum_value(subscription.get("platform")),
            "volumetrica_platform": _optional_text(subscription.get("volumetricaPlatform")),
            "volumetrica_license": to_nullable_string(subscription.get("volumetricaLicense")),
            "volumetrica_download_link": to_nullable_string(
                subscription.get("volumetricaDownloadLink")
            ),
            "raw": subscription,
            "last_event_id": meta.event_id,
            "updated_at": meta.received_at,
        }
        row.update(_lifecycle_columns(state, meta.received_at))
        self.subscription_repo.upsert(row)
        return SUBSCRIPTIONS

    def _upsert_positions(
        self, payload: Dict[str, Any], account_id: Optional[str], meta: ProjectionMeta
    ) -> Optional[str]:
        # tradingPosition wins over tradingPortfolio when both are sent
        source = payload.get("tradingPosition")
        if source is None:
            source = payload.get("tradingPortfolio")

        rows = {}
        for position in as_list(source):
            if not isinstance(position, dict):
                continue
            key = position_key(position, account_id)
            rows[key] = {
                "position_key": key,
                "account_id": account_id,
                "position_id": to_nullable_int(position.get("positionId")),
                "contract_id": to_nullable_int(position.get("contractId")),
                "symbol_name": to_nullable_string(position.get("symbolName")),
                "entry_date_utc": to_nullable_string(position.get("entryDateUtc")),
                "price": to_nullable_number(position.get("price")),
                "quantity": to_nullable_number(position.get("quantity")),
                "daily_pl": to_nullable_number(position.get("dailyPl")),
                "open_pl": to_nullable_number(position.get("openPl")),
                "raw": position,
                "last_event_id": meta.event_id,
                "updated_at": meta.received_at,
            }
        if not rows:
            return None
        self.position_repo.upsert_many(list(rows.values()))
        return POSITIONS

    def _upsert_trades(
        self, report: Any, account_id: Optional[str], meta: ProjectionMeta
    ) -> Optional[str]:
        rows = build_trade_rows(as_list(report), account_id, meta.event_id, meta.received_at)
        if not rows:
            return None
        self.trade_repo.upsert_many(rows)
        return TRADES

    def _upsert_platform_user(
        self, org_user: Any, user_id: Optional[str], meta: ProjectionMeta
    ) -> Optional[str]:
        if not isinstance(org_user, dict):
            return None
        volumetrica_user_id = _optional_text(org_user.get("id")) or user_id
        if not volumetrica_user_id:
            return None
        self.user_repo.upsert(
            {
                "volumetrica_user_id": volumetrica_user_id,
                "status": normalize_enum_value(org_user.get("status")),
                "external_id": _optional_text(org_user.get("externalId")),
                "invite_url": to_nullable_string(org_user.get("inviteUrl")),
                "creation_utc": to_nullable_string(org_user.get("creationUtc")),
                "update_utc": to_nullable_string(org_user.get("updateUtc")),
                "raw": org_user,
                "last_event_id": meta.event_id,
                "updated_at": meta.received_at,
            }
        )
        return USERS


def build_trade_rows(
    trades: List[Any],
    account_id: Optional[str],
    event_id: str,
    received_at: datetime,
) -> List[Dict[str, Any]]:
    """Trade projection rows, one per distinct trade key."""
    rows: Dict[str, Dict[str, Any]] = {}
    for trade in trades:
        if not isinstance(trade, dict):
            continue
        key = trade_key(trade, account_id)
        rows[key] = {
            "trade_key": key,
            "trade_id": to_nullable_int(trade.get("tradeId")),
            "account_id": account_id,
            "contract_id": to_nullable_int(trade.get("contractId")),
            "symbol_name": to_nullable_string(trade.get("symbolName")),
            "entry_date": to_nullable_string(trade.get("entryDate")),
            "exit_date": to_nullable_string(trade.get("exitDate")),
            "quantity": to_nullable_number(trade.get("quantity")),
            "open_price": to_nullable_number(trade.get("openPrice")),
            "close_price": to_nullable_number(trade.get("closePrice")),
            "pl": to_nullable_number(trade.get("pl")),
            "converted_pl": to_nullable_number(trade.get("convertedPL")),
            "commission_paid": to_nullable_number(trade.get("commissionPaid")),
            "raw": trade,
            "last_event_id": event_id,
            "updated_at": received_at,
        }
    return list(rows.values())
