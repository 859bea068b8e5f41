"""
Pull-based reconciliation against the upstream platform.

Webhooks can be missed. Reconciliation reads the authoritative state from
the upstream API, diffs it against the local projections and, by user,
backfills what is missing. Any upstream failure aborts the whole call.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from volsync.core.security import AdminPrincipal
from volsync.providers.volumetrica.client import UpstreamApiError, VolumetricaClient
from volsync.repositories.account_repository import AccountRepository
from volsync.repositories.platform_user_repository import PlatformUserRepository
from volsync.schemas.reconcile import (
    AccountFieldSnapshot,
    AccountReconcileResult,
    ReconcileResult,
    UserReconcileResult,
)
from volsync.schemas.webhook import ProjectionMeta
from volsync.services.audit_service import AuditService
from volsync.services.projection_service import ProjectionService
from volsync.utils.normalize import (
    normalize_enum_value,
    to_iso_from_date,
    to_iso_from_epoch,
    to_nullable_bool,
    to_nullable_int,
    to_nullable_number,
    to_nullable_string,
)

logger = logging.getLogger(__name__)


class ReconciliationError(Exception):
    """Reconciliation aborted; ``status_code`` is 502 upstream, 500 for the store."""

    def __init__(self, details: Any, status_code: int = 502):
        super().__init__("Reconciliation failed.")
        self.details = details
        self.status_code = status_code


def _first_string(*values: Any) -> Optional[str]:
    for value in values:
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def extract_account_id(account: Dict[str, Any]) -> Optional[str]:
    """``accountId``, then string ``id``, then numeric ``id``."""
    found = _first_string(account.get("accountId"), account.get("id"))
    if found:
        return found
    raw_id = account.get("id")
    if isinstance(raw_id, (int, float)) and not isinstance(raw_id, bool):
        return str(int(raw_id)) if float(raw_id).is_integer() else str(raw_id)
    return None


def diff_ids(api_ids: List[str], local_ids: List[str]) -> tuple[List[str], List[str]]:
    """Order-preserving set differences ``(missing_in_projection, missing_in_api)``."""
    api_set, local_set = set(api_ids), set(local_ids)
    missing_in_projection = [value for value in api_ids if value not in local_set]
    missing_in_api = [value for value in local_ids if value not in api_set]
    return missing_in_projection, missing_in_api


def resolve_report_data(report: Any) -> Optional[Dict[str, Any]]:
    """Unwrap an optional ``data`` envelope."""
    if not isinstance(report, dict):
        return None
    if isinstance(report.get("data"), dict):
        return report["data"]
    return report


def _rule_id(account: Dict[str, Any]) -> Optional[str]:
    value = account.get("ruleId")
    if value is None:
        value = account.get("tradingRuleId")
    if value is None or isinstance(value, (dict, list)):
        return None
    return str(value)


def normalize_account_record(
    account: Dict[str, Any],
    received_at: datetime,
    fallback_account_id: Optional[str] = None,
    fallback_user_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Account projection row built from an upstream account-info record."""
    user = account.get("user") if isinstance(account.get("user"), dict) else {}
    return {
        "account_id": _first_string(
            account.get("accountId"), account.get("id"), account.get("accountDefaultId")
        )
        or extract_account_id(account)
        or fallback_account_id
        or "",
        "user_id": _first_string(user.get("userId"), account.get("userId")) or fallback_user_id,
        "status": normalize_enum_value(account.get("status")),
        "trading_permission": normalize_enum_value(account.get("tradingPermission")),
        "enabled": to_nullable_bool(account.get("enabled")),
        "reason": to_nullable_string(account.get("reason")),
        "end_date": to_nullable_string(account.get("endDate")),
        "rule_id": _rule_id(account),
        "rule_name": _first_string(
            account.get("ruleName"),
            account.get("rule"),
            account.get("tradingRuleOrganizationReferenceId"),
        ),
        "account_family_id": to_nullable_string(account.get("accountFamilyId")),
        "owner_organization_user_id": to_nullable_string(account.get("ownerOrganizationUserId")),
        "snapshot": account.get("snapshot") if isinstance(account.get("snapshot"), dict) else None,
        "raw": account,
        "last_event_id": None,
        "updated_at": received_at,
        "is_deleted": False,
        "deleted_at": None,
    }


def normalize_report_trade(trade: Dict[str, Any]) -> Dict[str, Any]:
    """Map an account-report trade onto the webhook ``tradeReport`` shape."""
    entry_date = (
        to_iso_from_epoch(trade.get("entryDate"))
        or to_iso_from_date(trade.get("entrySessionDate"))
        or to_iso_from_date(trade.get("entryDateUtc"))
    )
    exit_date = (
        to_iso_from_epoch(trade.get("exitDate"))
        or to_iso_from_date(trade.get("exitSessionDate"))
        or to_iso_from_date(trade.get("exitDateUtc"))
    )

    def first_present(*keys: str) -> Any:
        for key in keys:
            if trade.get(key) is not None:
                return trade[key]
        return None

    return {
        "tradeId": to_nullable_int(trade.get("tradeId")),
        "contractId": to_nullable_int(trade.get("contractId")),
        "entryDate": entry_date,
        "exitDate": exit_date,
        "quantity": to_nullable_number(trade.get("quantity")),
        "openPrice": to_nullable_number(trade.get("entryPrice")),
        "closePrice": to_nullable_number(trade.get("exitPrice")),
        "pl": to_nullable_number(first_present("netPl", "tradePl", "grossPl")),
        "convertedPL": to_nullable_number(
            first_present("convertedNetPl", "convertedTradePl", "convertedGrossPl")
        ),
        "commissionPaid": None,
        "symbolName": to_nullable_string(trade.get("symbolName")),
    }


def month_start_iso(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    start = datetime(now.year, now.month, 1, tzinfo=timezone.utc)
    return start.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _field_snapshot(
    status: Any, trading_permission: Any, enabled: Any, rule_id: Any
) -> AccountFieldSnapshot:
    return AccountFieldSnapshot(
        status=normalize_enum_value(status),
        trading_permission=normalize_enum_value(trading_permission),
        enabled=to_nullable_bool(enabled),
        rule_id=None if rule_id is None else str(rule_id),
    )


class ReconciliationService:
    def __init__(self, db: Session, client: VolumetricaClient):
        self.db = db
        self.client = client
        self.account_repo = AccountRepository(db)
        self.user_repo = PlatformUserRepository(db)
        self.projection_service = ProjectionService(db)
        self.audit_service = AuditService(db)

    def reconcile(
        self,
        user_id: Optional[str] = None,
        account_id: Optional[str] = None,
        start_dt: Optional[str] = None,
        end_dt: Optional[str] = None,
        include_trades: bool = False,
        actor: Optional[AdminPrincipal] = None,
    ) -> ReconcileResult:
        target_type = "user" if user_id else "account"
        target_id = user_id or account_id
        result = ReconcileResult()

        try:
            if user_id:
                result.user = self._reconcile_user(user_id, start_dt, end_dt, include_trades)
            if account_id:
                result.account = self._reconcile_account(account_id)
        except UpstreamApiError as e:
            logger.error(f"Reconciliation failed for {target_type} {target_id}: {e.message}")
            self.audit_service.record(
                "volumetrica.reconcile.failed",
                actor=actor,
                target_type=target_type,
                target_id=target_id,
                metadata={"error": e.message, "status": e.status},
            )
            raise ReconciliationError(e.to_details()) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Reconciliation store failure for {target_type} {target_id}: {str(e)}")
            self.audit_service.record(
                "volumetrica.reconcile.failed",
                actor=actor,
                target_type=target_type,
                target_id=target_id,
                metadata={"error": str(e), "status": 500},
            )
            raise ReconciliationError({"message": "Projection store unavailable."}, 500) from e

        self.audit_service.record(
            "volumetrica.reconcile",
            actor=actor,
            target_type=target_type,
            target_id=target_id,
            metadata=result.to_body(),
        )
        return result

    def _resolve_user_id(self, user_id: str) -> str:
        link = self.user_repo.find_by_identifier(user_id)
        return link.volumetrica_user_id if link else user_id

    def _reconcile_user(
        self,
        user_id: str,
        start_dt: Optional[str],
        end_dt: Optional[str],
        include_trades: bool,
    ) -> UserReconcileResult:
        received_at = datetime.now(timezone.utc)
        resolved_user_id = self._resolve_user_id(user_id)

        api_accounts = self.client.get_user_accounts(resolved_user_id) or []
        api_records = [acct for acct in api_accounts if isinstance(acct, dict)]
        api_ids = list(
            dict.fromkeys(
                account_id
                for account_id in (extract_account_id(acct) for acct in api_records)
                if account_id
            )
        )

        linked = self.account_repo.link_unowned_accounts(api_ids, resolved_user_id, received_at)
        local_ids = self.account_repo.list_account_ids_for_users([user_id, resolved_user_id])
        missing_in_projection, missing_in_api = diff_ids(api_ids, local_ids)

        backfilled = 0
        for missing_id in missing_in_projection:
            record = resolve_report_data(self.client.get_account_info(missing_id))
            if not record:
                continue
            row = normalize_account_record(record, received_at, missing_id, resolved_user_id)
            if not row["account_id"]:
                continue
            try:
                self.account_repo.upsert(row)
            except SQLAlchemyError as e:
                logger.error(f"Backfill upsert failed for account {missing_id}: {str(e)}")
                continue
            backfilled += 1

        result = UserReconcileResult(
            user_id=user_id,
            resolved_user_id=resolved_user_id,
            api_count=len(api_ids),
            projection_count=len(local_ids),
            missing_in_projection=missing_in_projection,
            missing_in_api=missing_in_api,
            backfilled=backfilled,
            linked_accounts=linked,
        )

        if include_trades:
            report_start = start_dt or month_start_iso()
            for account_id in api_ids:
                self._backfill_trades(account_id, resolved_user_id, report_start, end_dt, result)

        return result

    def _backfill_trades(
        self,
        account_id: str,
        user_id: str,
        report_start: str,
        end_dt: Optional[str],
        result: UserReconcileResult,
    ) -> None:
        report = resolve_report_data(
            self.client.get_account_report(account_id, report_start, end_dt)
        )
        raw_trades = (report or {}).get("trades")
        if not isinstance(raw_trades, list):
            return
        trades = [
            trade
            for trade in (normalize_report_trade(t) for t in raw_trades if isinstance(t, dict))
            if trade["tradeId"] or trade["entryDate"] or trade["exitDate"] or trade["symbolName"]
        ]
        if not trades:
            return

        projection = self.projection_service.apply(
            {"accountId": account_id, "userId": user_id, "tradeReport": trades},
            ProjectionMeta(
                event_id=f"reconcile:{account_id}:{report_start}",
                received_at=datetime.now(timezone.utc),
            ),
        )
        if projection.errors:
            result.trade_backfill_errors.extend(
                f"{account_id}: {message}" for message in projection.errors
            )
        else:
            result.trades_backfilled += len(trades)

    def _reconcile_account(self, account_id: str) -> AccountReconcileResult:
        record = resolve_report_data(self.client.get_account_info(account_id)) or {}
        api = _field_snapshot(
            record.get("status"),
            record.get("tradingPermission"),
            record.get("enabled"),
            _rule_id(record),
        )

        local = self.account_repo.get_account(account_id)
        projection = (
            _field_snapshot(local.status, local.trading_permission, local.enabled, local.rule_id)
            if local
            else None
        )

        compared = projection or AccountFieldSnapshot()
        mismatches = [
            field.alias or name
            for name, field in AccountFieldSnapshot.model_fields.items()
            if getattr(api, name) != getattr(compared, name)
        ]
        return AccountReconcileResult(
            account_id=account_id, api=api, projection=projection, mismatches=mismatches
        )
