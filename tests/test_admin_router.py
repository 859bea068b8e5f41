from unittest.mock import Mock

import pytest
from dependency_injector import providers

from volsync.models.audit import AdminAuditLog
from volsync.models.volumetrica import VolumetricaPosition, VolumetricaTrade
from volsync.providers.volumetrica.client import UpstreamApiError, VolumetricaClient
from volsync.repositories.webhook_event_repository import WebhookEventRepository
from volsync.schemas.webhook import LedgerEntry
from volsync.services.admin_action_service import AdminActionService


@pytest.fixture
def upstream():
    return Mock(spec=VolumetricaClient)


@pytest.fixture
def wired(app, upstream):
    with app.container.services.admin_action_service.override(
        providers.Factory(AdminActionService, client=upstream)
    ):
        yield app


class TestAccountActions:
    def test_disable_account(self, wired, api_client, admin_headers, upstream, db):
        upstream.disable_trading_account.return_value = {"success": True}

        response = api_client.post(
            "/api/admin/accounts/A1/actions",
            json={"action": "disable", "forceClose": True, "reason": " breach "},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json() == {
            "ok": True,
            "action": "disable",
            "targetId": "A1",
            "result": {"success": True},
        }
        upstream.disable_trading_account.assert_called_once_with("A1", True, "breach")
        audit = db.query(AdminAuditLog).one()
        assert audit.action == "volumetrica.account.disable"
        assert audit.actor_user_id == "op-1"
        assert audit.actor_email == "ops@example.com"
        assert audit.details == {"forceClose": True, "reason": "breach"}

    def test_change_status(self, wired, api_client, admin_headers, upstream):
        upstream.change_trading_account_status.return_value = {}

        response = api_client.post(
            "/api/admin/accounts/A1/actions",
            json={"action": "status", "status": 4},
            headers=admin_headers,
        )

        assert response.status_code == 200
        upstream.change_trading_account_status.assert_called_once_with("A1", 4, False, None)

    def test_status_requires_code(self, wired, api_client, admin_headers, upstream):
        response = api_client.post(
            "/api/admin/accounts/A1/actions", json={"action": "status"}, headers=admin_headers
        )

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Status code is required."
        upstream.change_trading_account_status.assert_not_called()

    def test_unsupported_action(self, wired, api_client, admin_headers):
        response = api_client.post(
            "/api/admin/accounts/A1/actions", json={"action": "explode"}, headers=admin_headers
        )

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Unsupported action."

    def test_upstream_failure(self, wired, api_client, admin_headers, upstream, db):
        upstream.enable_trading_account.side_effect = UpstreamApiError(
            "Volumetrica request failed.", status=404, body="missing"
        )

        response = api_client.post(
            "/api/admin/accounts/A1/actions", json={"action": "enable"}, headers=admin_headers
        )

        assert response.status_code == 502
        error = response.json()["error"]
        assert error["message"] == "Account update failed."
        assert error["details"]["status"] == 404
        assert db.query(AdminAuditLog).one().action == "volumetrica.account.action.failed"

    def test_requires_admin(self, wired, api_client):
        response = api_client.post("/api/admin/accounts/A1/actions", json={"action": "enable"})

        assert response.status_code == 401
        assert response.json() == {
            "success": False,
            "error": {"code": "AUTH_001", "message": "Authentication required", "details": {}},
        }


class TestSubscriptionActions:
    def test_deactivate(self, wired, api_client, admin_headers, upstream, db):
        upstream.deactivate_subscription.return_value = "ok"

        response = api_client.post(
            "/api/admin/subscriptions/S1/actions",
            json={"action": "deactivate"},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json()["targetId"] == "S1"
        upstream.deactivate_subscription.assert_called_once_with("S1")
        assert db.query(AdminAuditLog).one().action == "volumetrica.subscription.deactivate"

    def test_upstream_failure(self, wired, api_client, admin_headers, upstream):
        upstream.delete_subscription.side_effect = UpstreamApiError("Volumetrica request failed.")

        response = api_client.post(
            "/api/admin/subscriptions/S1/actions", json={"action": "delete"}, headers=admin_headers
        )

        assert response.status_code == 502
        assert response.json()["error"]["message"] == "Subscription update failed."


class TestProjectionViews:
    def test_trades_carry_net_pl(self, api_client, admin_headers, db):
        db.add(
            VolumetricaTrade(
                trade_key="trade:1", trade_id=1, account_id="A1", pl=787.5, commission_paid=9
            )
        )
        db.add(VolumetricaTrade(trade_key="trade:2", trade_id=2, account_id="A1", pl=None))
        db.commit()

        response = api_client.get("/api/admin/accounts/A1/trades", headers=admin_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["accountId"] == "A1"
        net = {trade["tradeKey"]: trade["netPl"] for trade in body["trades"]}
        assert net == {"trade:1": 778.5, "trade:2": None}

    def test_webhook_events(self, api_client, admin_headers, db, received_at):
        WebhookEventRepository(db).insert_event(
            LedgerEntry(
                event_id="evt-1",
                auth_mode="shared_secret_header",
                signature_valid=True,
                payload={"id": "evt-1"},
                received_at=received_at,
                account_id="A1",
            )
        )

        listing = api_client.get("/api/admin/webhook-events?accountId=A1", headers=admin_headers)
        single = api_client.get("/api/admin/webhook-events/evt-1", headers=admin_headers)
        missing = api_client.get("/api/admin/webhook-events/nope", headers=admin_headers)

        assert [event["eventId"] for event in listing.json()["events"]] == ["evt-1"]
        assert single.json()["event"]["payload"] == {"id": "evt-1"}
        assert missing.status_code == 404

    def test_account_not_found(self, api_client, admin_headers):
        response = api_client.get("/api/admin/accounts/none", headers=admin_headers)

        assert response.status_code == 404

    def test_account_positions(self, api_client, admin_headers, db):
        db.add(VolumetricaPosition(position_key="pos:2", account_id="A1", price=5101.0))
        db.add(VolumetricaPosition(position_key="pos:1", account_id="A1", price=5100.25))
        db.add(VolumetricaPosition(position_key="pos:9", account_id="B1"))
        db.commit()

        response = api_client.get("/api/admin/accounts/A1/positions", headers=admin_headers)

        assert response.status_code == 200
        assert [p["positionKey"] for p in response.json()["positions"]] == ["pos:1", "pos:2"]

    def test_audit_log(self, wired, api_client, admin_headers, upstream):
        upstream.activate_subscription.return_value = {}
        api_client.post(
            "/api/admin/subscriptions/S1/actions", json={"action": "activate"}, headers=admin_headers
        )

        response = api_client.get(
            "/api/admin/audit-log?action=volumetrica.subscription.activate", headers=admin_headers
        )

        entries = response.json()["entries"]
        assert len(entries) == 1
        assert entries[0]["targetId"] == "S1"
        assert entries[0]["actorEmail"] == "ops@example.com"
