from datetime import datetime, timezone
from unittest.mock import Mock, patch

import pytest
from sqlalchemy.exc import OperationalError

from volsync.models.audit import AdminAuditLog
from volsync.models.volumetrica import VolumetricaAccount, VolumetricaTrade, VolumetricaUser
from volsync.providers.volumetrica.client import UpstreamApiError, VolumetricaClient
from volsync.services.reconciliation_service import (
    ReconciliationError,
    ReconciliationService,
    diff_ids,
    extract_account_id,
    month_start_iso,
    normalize_report_trade,
)


@pytest.fixture
def client():
    return Mock(spec=VolumetricaClient)


@pytest.fixture
def service(db, client):
    return ReconciliationService(db, client)


def seed_accounts(db, user_id, *account_ids, **columns):
    columns.setdefault("is_deleted", False)
    for account_id in account_ids:
        db.add(VolumetricaAccount(account_id=account_id, user_id=user_id, **columns))
    db.commit()


def audit_rows(db):
    return db.query(AdminAuditLog).order_by(AdminAuditLog.id).all()


class TestHelpers:
    def test_diff_ids_preserves_order(self):
        assert diff_ids(["A", "B", "C"], ["B", "C", "D"]) == (["A"], ["D"])
        assert diff_ids([], ["X"]) == ([], ["X"])

    def test_extract_account_id(self):
        assert extract_account_id({"accountId": " A1 ", "id": "ignored"}) == "A1"
        assert extract_account_id({"id": "A2"}) == "A2"
        assert extract_account_id({"id": 123}) == "123"
        assert extract_account_id({"id": True}) is None
        assert extract_account_id({}) is None

    def test_month_start(self):
        now = datetime(2024, 3, 17, 9, 30, tzinfo=timezone.utc)
        assert month_start_iso(now) == "2024-03-01T00:00:00.000Z"

    def test_normalize_report_trade(self):
        trade = normalize_report_trade(
            {
                "tradeId": "5",
                "entryDate": 1709290800,
                "exitSessionDate": "2024-03-02",
                "entryPrice": 5100,
                "exitPrice": "5110.5",
                "tradePl": 500,
                "grossPl": 510,
                "symbolName": "ESH4",
            }
        )
        assert trade["tradeId"] == 5
        assert trade["entryDate"] == "2024-03-01T11:00:00.000Z"
        assert trade["exitDate"] == "2024-03-02T00:00:00.000Z"
        assert trade["openPrice"] == 5100
        assert trade["closePrice"] == 5110.5
        assert trade["pl"] == 500
        assert trade["commissionPaid"] is None


class TestUserReconciliation:
    def test_reports_drift_and_backfills(self, service, client, db):
        seed_accounts(db, "vu-1", "B", "C", "D")
        client.get_user_accounts.return_value = [
            {"accountId": "A"},
            {"accountId": "B"},
            {"id": "C"},
            {"accountId": "A"},
        ]
        client.get_account_info.return_value = {
            "data": {"accountId": "A", "status": "Funded=2", "enabled": True, "ruleId": 9}
        }

        result = service.reconcile(user_id="vu-1")

        user = result.user
        assert user.api_count == 3
        assert user.projection_count == 3
        assert user.missing_in_projection == ["A"]
        assert user.missing_in_api == ["D"]
        assert user.backfilled == 1
        client.get_account_info.assert_called_once_with("A")

        backfilled = db.get(VolumetricaAccount, "A")
        assert backfilled.user_id == "vu-1"
        assert backfilled.status == "2"
        assert backfilled.rule_id == "9"

        again = service.reconcile(user_id="vu-1").user
        assert again.missing_in_projection == []
        assert again.missing_in_api == ["D"]
        assert again.backfilled == 0

    def test_soft_deleted_accounts_are_not_local(self, service, client, db):
        seed_accounts(db, "vu-1", "B")
        seed_accounts(db, "vu-1", "Z", is_deleted=True)
        client.get_user_accounts.return_value = [{"accountId": "B"}]

        user = service.reconcile(user_id="vu-1").user

        assert user.missing_in_api == []
        assert user.projection_count == 1

    def test_resolves_email_to_platform_user(self, service, client, db):
        db.add(
            VolumetricaUser(
                volumetrica_user_id="vu-9",
                external_id="local-9",
                raw={"email": "trader@example.com"},
            )
        )
        db.commit()
        client.get_user_accounts.return_value = []

        user = service.reconcile(user_id="trader@example.com").user

        client.get_user_accounts.assert_called_once_with("vu-9")
        assert user.user_id == "trader@example.com"
        assert user.resolved_user_id == "vu-9"

    def test_links_unowned_accounts_before_diffing(self, service, client, db):
        seed_accounts(db, None, "E")
        client.get_user_accounts.return_value = [{"accountId": "E"}]

        user = service.reconcile(user_id="vu-1").user

        assert user.linked_accounts == 1
        assert user.missing_in_projection == []
        client.get_account_info.assert_not_called()
        db.expire_all()
        assert db.get(VolumetricaAccount, "E").user_id == "vu-1"

    def test_backfills_trades_when_requested(self, service, client, db):
        seed_accounts(db, "vu-1", "A1")
        client.get_user_accounts.return_value = [{"accountId": "A1"}]
        client.get_account_report.return_value = {
            "trades": [
                {"tradeId": 5, "entryDate": 1709290800, "netPl": 500, "symbolName": "ESH4"},
                {"unrelated": True},
            ]
        }

        user = service.reconcile(
            user_id="vu-1", start_dt="2024-03-01T00:00:00Z", include_trades=True
        ).user

        client.get_account_report.assert_called_once_with("A1", "2024-03-01T00:00:00Z", None)
        assert user.trades_backfilled == 1
        assert user.trade_backfill_errors == []
        trade = db.get(VolumetricaTrade, "trade:5")
        assert trade.account_id == "A1"
        assert trade.pl == 500
        assert trade.last_event_id == "reconcile:A1:2024-03-01T00:00:00Z"

    def test_trades_are_skipped_by_default(self, service, client, db):
        client.get_user_accounts.return_value = [{"accountId": "A1"}]
        client.get_account_info.return_value = {"accountId": "A1"}

        service.reconcile(user_id="vu-1")

        client.get_account_report.assert_not_called()

    def test_upstream_failure_aborts_and_is_audited(self, service, client, db):
        client.get_user_accounts.side_effect = UpstreamApiError(
            "Volumetrica request failed.", status=503, body="down"
        )

        with pytest.raises(ReconciliationError) as exc_info:
            service.reconcile(user_id="vu-1")

        assert exc_info.value.details == {
            "message": "Volumetrica request failed.",
            "status": 503,
            "body": "down",
        }
        rows = audit_rows(db)
        assert [row.action for row in rows] == ["volumetrica.reconcile.failed"]
        assert rows[0].target_type == "user"
        assert rows[0].target_id == "vu-1"

    def test_store_failure_aborts_and_is_audited(self, service, client, db):
        client.get_user_accounts.return_value = [{"accountId": "A1"}]

        with patch.object(
            service.account_repo,
            "list_account_ids_for_users",
            side_effect=OperationalError("SELECT", {}, Exception("db gone")),
        ):
            with pytest.raises(ReconciliationError) as exc_info:
                service.reconcile(user_id="vu-1")

        assert exc_info.value.status_code == 500
        assert exc_info.value.details == {"message": "Projection store unavailable."}
        rows = audit_rows(db)
        assert [row.action for row in rows] == ["volumetrica.reconcile.failed"]
        assert rows[0].target_id == "vu-1"
        assert rows[0].details["status"] == 500

    def test_success_is_audited_with_result(self, service, client, db):
        client.get_user_accounts.return_value = []

        service.reconcile(user_id="vu-1")

        row = audit_rows(db)[0]
        assert row.action == "volumetrica.reconcile"
        assert row.details["user"]["missingInProjection"] == []
        assert row.details["user"]["resolvedUserId"] == "vu-1"


class TestAccountReconciliation:
    def test_reports_field_mismatches_without_writing(self, service, client, db):
        seed_accounts(
            db, "vu-1", "A1", status="2", trading_permission="0", enabled=True, rule_id="77"
        )
        client.get_account_info.return_value = {
            "data": {
                "status": "Funded=2",
                "tradingPermission": "ReadOnly=1",
                "enabled": True,
                "ruleId": 77,
            }
        }

        account = service.reconcile(account_id="A1").account

        assert account.mismatches == ["tradingPermission"]
        assert account.api.trading_permission == "1"
        assert account.projection.trading_permission == "0"
        db.expire_all()
        assert db.get(VolumetricaAccount, "A1").trading_permission == "0"

    def test_missing_projection(self, service, client):
        client.get_account_info.return_value = {"status": 2, "enabled": False}

        result = service.reconcile(account_id="A9")

        assert result.account.projection is None
        assert result.account.mismatches == ["status", "enabled"]
        assert result.to_body()["account"]["projection"] is None
        assert "user" not in result.to_body()
