import hashlib

from volsync.services.event_identity import (
    compute_event_id,
    compute_raw_event_id,
    get_by_path,
    resolve_event_id,
)
from volsync.utils.canonical import UNDEFINED, canonical_encode


class TestCanonicalEncode:
    def test_sorts_keys_recursively(self):
        assert canonical_encode({"b": 1, "a": {"d": [1, 2], "c": None}}) == (
            '{"a":{"c":null,"d":[1,2]},"b":1}'
        )

    def test_key_order_does_not_change_output(self):
        left = {"event": "Created", "tradingAccount": {"id": "A1", "enabled": True}}
        right = {"tradingAccount": {"enabled": True, "id": "A1"}, "event": "Created"}
        assert canonical_encode(left) == canonical_encode(right)

    def test_array_order_is_preserved(self):
        assert canonical_encode([3, 1, 2]) != canonical_encode([1, 2, 3])

    def test_undefined_entries_are_dropped(self):
        assert canonical_encode({"a": 1, "b": UNDEFINED}) == canonical_encode({"a": 1})

    def test_scalars(self):
        assert canonical_encode(None) == "null"
        assert canonical_encode(True) == "true"
        assert canonical_encode(2.0) == "2"
        assert canonical_encode(787.5) == "787.5"
        assert canonical_encode("é") == '"é"'


class TestEventIdentity:
    def test_get_by_path_walks_nested_objects(self):
        payload = {"meta": {"delivery": {"id": "d-1"}}}
        assert get_by_path(payload, "meta.delivery.id") == "d-1"
        assert get_by_path(payload, "meta.missing.id") is None
        assert get_by_path({"meta": "flat"}, "meta.id") is None
        assert get_by_path(payload, "") is None

    def test_provider_id_is_used_verbatim(self):
        identity = resolve_event_id({"id": "  evt-42 ", "event": "Created"})
        assert identity.event_id == "evt-42"
        assert identity.computed is False

    def test_custom_path(self):
        identity = resolve_event_id({"envelope": {"eventId": "e-9"}}, "envelope.eventId")
        assert identity.event_id == "e-9"

    def test_blank_or_numeric_id_falls_back_to_hash(self):
        for payload in ({"id": "   "}, {"id": 42}, {"event": "Created"}):
            identity = resolve_event_id(payload)
            assert identity.computed is True
            assert identity.event_id.startswith("computed:")

    def test_computed_id_is_deterministic_across_key_order(self):
        first = {"accountId": "A1", "event": "Updated", "tradeReport": [{"tradeId": 1}]}
        second = {"tradeReport": [{"tradeId": 1}], "event": "Updated", "accountId": "A1"}
        assert compute_event_id(first) == compute_event_id(first)
        assert compute_event_id(first) == compute_event_id(second)
        assert resolve_event_id(first).event_id == resolve_event_id(second).event_id

    def test_raw_event_id_hashes_bytes(self):
        raw = b'{"event": "Created"}'
        assert compute_raw_event_id(raw) == "computed:" + hashlib.sha256(raw).hexdigest()
