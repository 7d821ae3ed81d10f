"""Unit tests for the JSON record store."""

import json
from datetime import timedelta

from match_integrity.models.match_data import MatchRecord
from match_integrity.utils.record_store import (
    HistoryProvider,
    JsonRecordStore,
    VerifiedRecordStore,
)


class TestJsonRecordStore:
    """Test cases for JsonRecordStore."""

    def test_implements_protocols(self, tmp_path):
        store = JsonRecordStore(tmp_path / "state.json")
        assert isinstance(store, HistoryProvider)
        assert isinstance(store, VerifiedRecordStore)

    def test_missing_file_is_empty(self, tmp_path):
        store = JsonRecordStore(tmp_path / "missing.json")

        assert store.load("guest_1") == []
        assert store.load_history("guest_1") == []
        assert store.participants() == []

    def test_save_and_load(self, tmp_path, service, record):
        store = JsonRecordStore(tmp_path / "nested" / "state.json")
        verified = service.apply_verification(record, "guest_1")

        store.save("guest_1", verified)

        assert store.load("guest_1") == [verified]
        assert store.participants() == ["guest_1"]
        assert store.load_raw("guest_1")[0]["homeScore"] == 2

    def test_save_replaces_by_id(self, tmp_path, service, record):
        store = JsonRecordStore(tmp_path / "state.json")
        store.save("guest_1", service.apply_verification(record, "guest_1"))
        resealed = service.apply_verification(record, "guest_1")

        store.save("guest_1", resealed)

        assert store.load("guest_1") == [resealed]

    def test_load_sorts_by_date_and_history_strips_seal(self, tmp_path, service, make_record, clock):
        store = JsonRecordStore(tmp_path / "state.json")
        newer = make_record(id="newer", date=clock() - timedelta(days=1))
        older = make_record(id="older", date=clock() - timedelta(days=3))
        store.save("guest_1", service.apply_verification(newer, "guest_1"))
        store.save("guest_1", service.apply_verification(older, "guest_1"))

        history = store.load_history("guest_1")

        assert [m.id for m in history] == ["older", "newer"]
        assert all(type(m) is MatchRecord for m in history)

    def test_unreadable_entries_are_skipped(self, tmp_path, service, record):
        path = tmp_path / "state.json"
        store = JsonRecordStore(path)
        store.save("guest_1", service.apply_verification(record, "guest_1"))

        state = json.loads(path.read_text())
        state["participants"]["guest_1"]["matches"]["junk"] = {"id": "junk"}
        path.write_text(json.dumps(state))

        assert [r.id for r in store.load("guest_1")] == ["match_1"]

    def test_participants_are_isolated(self, tmp_path, service, record):
        store = JsonRecordStore(tmp_path / "state.json")
        store.save("guest_1", service.apply_verification(record, "guest_1"))

        assert store.load("guest_2") == []
