from unittest.mock import patch

import pytest
from sqlalchemy.exc import SQLAlchemyError

from volsync.models.volumetrica import (
    VolumetricaAccount,
    VolumetricaPosition,
    VolumetricaSubscription,
    VolumetricaTrade,
    VolumetricaUser,
)
from volsync.schemas.webhook import ProjectionMeta
from volsync.services.projection_service import (
    EntityState,
    ProjectionService,
    position_key,
    trade_key,
)


@pytest.fixture
def service(db):
    return ProjectionService(db)


@pytest.fixture
def meta(received_at):
    return ProjectionMeta(event_id="evt-1", received_at=received_at)


def account_payload(**overrides):
    payload = {
        "event": "Updated=1",
        "tradingAccount": {
            "id": "A1",
            "status": "Funded=2",
            "tradingPermission": "Trading=0",
            "enabled": True,
            "ruleId": 77,
            "ruleName": "50K Eval",
            "snapshot": {"balance": 50000},
            "user": {"userId": "vu-1"},
        },
    }
    payload.update(overrides)
    return payload


class TestKeys:
    def test_position_key_prefers_stable_id(self):
        assert position_key({"positionId": 981, "contractId": 5}, "A1") == "pos:981"

    def test_position_key_composite_fallback(self):
        position = {"contractId": 5, "symbolName": "ESM4", "entryDateUtc": "2024-03-01T10:00:00Z"}
        assert position_key(position, "A1") == "pos:A1:5:ESM4:2024-03-01T10:00:00Z"
        assert position_key({}, None) == "pos:unknown:unknown:unknown:unknown"

    def test_trade_key(self):
        assert trade_key({"tradeId": 12}, "A1") == "trade:12"
        trade = {"contractId": 5, "entryDate": "e", "exitDate": "x", "quantity": 2}
        assert trade_key(trade, "A1") == "trade:A1:5:e:x:2"
        assert trade_key({"contractId": 5}, None) == "trade:unknown:5:unknown:unknown:unknown"

    def test_keys_ignore_integral_float_spelling(self):
        trade = {"contractId": 5, "entryDate": "e", "exitDate": "x"}
        assert trade_key(dict(trade, quantity=2), "A1") == trade_key(dict(trade, quantity=2.0), "A1")
        assert trade_key(dict(trade, quantity=1.5), "A1") == "trade:A1:5:e:x:1.5"
        assert trade_key({"tradeId": 12.0}, "A1") == "trade:12"
        position = {"symbolName": "ES", "entryDateUtc": "t"}
        assert position_key(dict(position, contractId=5.0), "A1") == "pos:A1:5:ES:t"
        assert position_key({"positionId": 981.0}, "A1") == "pos:981"

    def test_entity_state(self):
        assert EntityState.from_event(None) is EntityState.ACTIVE
        assert EntityState.from_event("Deleted") is EntityState.DELETED
        assert EntityState.from_event("Updated") is EntityState.ACTIVE


class TestAccountProjection:
    def test_full_account_upsert(self, service, db, meta):
        result = service.apply(account_payload(), meta)

        assert result.errors == []
        assert result.updates == ["volumetrica_accounts"]
        row = db.get(VolumetricaAccount, "A1")
        assert row.user_id == "vu-1"
        assert row.status == "2"
        assert row.trading_permission == "0"
        assert row.rule_id == "77"
        assert row.snapshot == {"balance": 50000}
        assert row.last_event_id == "evt-1"
        assert row.is_deleted is False

    def test_upsert_fully_replaces_row(self, service, db, meta, received_at):
        service.apply(account_payload(), meta)
        payload = account_payload()
        payload["tradingAccount"] = {"id": "A1", "status": "Breached=4", "user": {"userId": "vu-1"}}
        service.apply(payload, ProjectionMeta(event_id="evt-2", received_at=received_at))

        db.expire_all()
        row = db.get(VolumetricaAccount, "A1")
        assert row.status == "4"
        assert row.rule_name is None
        assert row.last_event_id == "evt-2"

    def test_deleted_event_soft_deletes(self, service, db, meta):
        service.apply(account_payload(event="Deleted"), meta)

        row = db.get(VolumetricaAccount, "A1")
        assert row.is_deleted is True
        assert row.deleted_at is not None

    def test_placeholder_inserted_when_only_id_known(self, service, db, meta):
        result = service.apply({"event": "Updated", "accountId": "A2", "userId": "vu-2"}, meta)

        assert result.updates == ["volumetrica_accounts"]
        row = db.get(VolumetricaAccount, "A2")
        assert row.user_id == "vu-2"
        assert row.raw == {"accountId": "A2", "userId": "vu-2", "user": {"userId": "vu-2"}}
        assert row.status is None

    def test_placeholder_never_overwrites(self, service, db, meta, received_at):
        service.apply(account_payload(), meta)
        result = service.apply(
            {"accountId": "A1"}, ProjectionMeta(event_id="evt-3", received_at=received_at)
        )

        assert result.updates == []
        db.expire_all()
        row = db.get(VolumetricaAccount, "A1")
        assert row.status == "2"
        assert row.last_event_id == "evt-1"

    def test_linkage_heal_is_additive(self, service, db, meta, received_at):
        service.apply({"accountId": "A3"}, meta)
        assert db.get(VolumetricaAccount, "A3").user_id is None

        result = service.apply(
            {"accountId": "A3", "userId": "vu-3"},
            ProjectionMeta(event_id="evt-4", received_at=received_at),
        )

        assert result.updates == ["volumetrica_accounts"]
        db.expire_all()
        row = db.get(VolumetricaAccount, "A3")
        assert row.user_id == "vu-3"
        # existing raw keys are kept, missing ones seeded
        assert row.raw["userId"] is None
        assert row.raw["user"] is None
        assert row.raw["accountId"] == "A3"
        assert row.last_event_id == "evt-4"


class TestOtherEntities:
    def test_subscription_upsert(self, service, db, meta):
        payload = {
            "userId": "vu-1",
            "subscription": {
                "subscriptionId": "S1",
                "status": "Active=1",
                "platform": 2,
                "dxAgreementSigned": True,
            },
        }
        result = service.apply(payload, meta)

        assert result.updates == ["volumetrica_subscriptions"]
        row = db.get(VolumetricaSubscription, "S1")
        assert row.user_id == "vu-1"
        assert row.status == "1"
        assert row.platform == "2"
        assert row.dx_agreement_signed is True

    def test_subscription_without_id_is_skipped(self, service, meta):
        assert service.apply({"subscription": {"status": 1}}, meta).updates == []

    def test_position_key_stability(self, service, db, meta, received_at):
        position = {"contractId": 5, "symbolName": "ESM4", "entryDateUtc": "2024-03-01T10:00:00Z", "price": 5100.25}
        service.apply({"accountId": "A1", "tradingPosition": position}, meta)
        service.apply(
            {"accountId": "A1", "tradingPosition": [dict(position, price=5101.0)]},
            ProjectionMeta(event_id="evt-2", received_at=received_at),
        )

        rows = db.query(VolumetricaPosition).all()
        assert len(rows) == 1
        assert rows[0].position_key == "pos:A1:5:ESM4:2024-03-01T10:00:00Z"
        assert rows[0].price == 5101.0
        assert rows[0].last_event_id == "evt-2"

    def test_trading_position_takes_precedence(self, service, db, meta):
        payload = {
            "accountId": "A1",
            "tradingPosition": {"positionId": 1},
            "tradingPortfolio": [{"positionId": 2}],
        }
        service.apply(payload, meta)
        assert [row.position_key for row in db.query(VolumetricaPosition).all()] == ["pos:1"]

    def test_trades_upsert(self, service, db, meta):
        payload = {
            "accountId": "A1",
            "tradeReport": [
                {"tradeId": 10, "pl": 787.5, "commissionPaid": 9, "quantity": "2"},
                {"contractId": 5, "entryDate": "e", "exitDate": "x"},
            ],
        }
        result = service.apply(payload, meta)

        assert "volumetrica_trades" in result.updates
        trade = db.get(VolumetricaTrade, "trade:10")
        assert trade.pl == 787.5
        assert trade.commission_paid == 9
        assert trade.quantity == 2
        assert db.get(VolumetricaTrade, "trade:A1:5:e:x:unknown") is not None

    def test_platform_user_falls_back_to_top_level_user(self, service, db, meta):
        payload = {"userId": "vu-5", "organizationUser": {"externalId": "local-5", "status": "Active=1"}}
        result = service.apply(payload, meta)

        assert result.updates == ["volumetrica_users"]
        row = db.get(VolumetricaUser, "vu-5")
        assert row.external_id == "local-5"
        assert row.status == "1"

    def test_platform_user_without_any_id_is_skipped(self, service, meta):
        assert service.apply({"organizationUser": {"status": 1}}, meta).updates == []


class TestPartialProjection:
    def test_failed_step_does_not_roll_back_siblings(self, service, db, meta):
        payload = account_payload(tradeReport=[{"tradeId": 1, "pl": 10}])

        with patch.object(
            service.trade_repo, "upsert_many", side_effect=SQLAlchemyError("disk full")
        ):
            result = service.apply(payload, meta)

        assert result.updates == ["volumetrica_accounts"]
        assert len(result.errors) == 1
        assert result.errors[0].startswith("trades: ")
        assert "disk full" in result.errors[0]
        assert db.get(VolumetricaAccount, "A1") is not None
        assert db.query(VolumetricaTrade).count() == 0
