from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from guidegate.services.admission import (
    BindingSet,
    DeviceBinding,
    DeviceBindingStore,
    KeyValueBindingStore,
    MemoryKeyValue,
    SQLiteKeyValue,
    StoreUnavailableError,
)

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    backend = MemoryKeyValue() if request.param == "memory" else SQLiteKeyValue(tmp_path / "bindings.sqlite")
    store = KeyValueBindingStore(backend)
    yield store
    store.close()


def _roster(*fingerprints: str) -> BindingSet:
    return BindingSet([DeviceBinding(fp, first_access=T0, last_access=T0) for fp in fingerprints])


def test_store_satisfies_protocol(store):
    assert isinstance(store, DeviceBindingStore)


def test_missing_uid_reads_as_empty_roster(store):
    assert len(store.get("nope")) == 0


def test_put_then_get_round_trips(store):
    store.put("42", _roster("fp-a", "fp-b"))
    loaded = store.get("42")
    assert loaded.fingerprints == ["fp-a", "fp-b"]
    assert loaded.find("fp-a").first_access == T0


def test_record_is_compact_json_under_prefixed_key(store):
    store.put("42", _roster("fp-a"))
    raw = store.backend.get_raw("nfc_devices:42")
    assert raw is not None and " " not in raw
    assert json.loads(raw) == [
        {"fingerprint": "fp-a", "firstAccess": 1714564800000, "lastAccess": 1714564800000, "accessCount": 1}
    ]


def test_put_replaces_whole_roster(store):
    store.put("42", _roster("fp-a", "fp-b"))
    store.put("42", _roster("fp-b"))
    assert store.get("42").fingerprints == ["fp-b"]


def test_corrupt_record_surfaces_as_unavailable(store):
    store.backend.put_raw(store.key_for("42"), "{not json")
    with pytest.raises(StoreUnavailableError):
        store.get("42")
    store.backend.put_raw(store.key_for("43"), json.dumps({"fingerprint": "x"}))
    with pytest.raises(StoreUnavailableError):
        store.get("43")
    store.backend.put_raw(store.key_for("44"), "[1, 2]")
    with pytest.raises(StoreUnavailableError):
        store.get("44")
    store.backend.put_raw(
        store.key_for("45"),
        json.dumps([{"fingerprint": "a", "firstAccess": 1e20, "lastAccess": 1e20, "accessCount": 1}]),
    )
    with pytest.raises(StoreUnavailableError):
        store.get("45")


def test_uids_lists_only_prefixed_keys(store):
    store.put("42", _roster("fp-a"))
    store.put("tag_%1", _roster("fp-b"))
    store.backend.put_raw("other:99", "[]")
    assert sorted(store.uids()) == ["42", "tag_%1"]


def test_custom_prefix_is_honoured():
    backend = MemoryKeyValue()
    store = KeyValueBindingStore(backend, prefix="nfc:")
    store.put("7", _roster("fp-a"))
    assert backend.get_raw("nfc:7") is not None
    assert store.uids() == ["7"]


def test_sqlite_survives_reopen(tmp_path):
    path = tmp_path / "nested" / "bindings.sqlite"
    first = KeyValueBindingStore(SQLiteKeyValue(path))
    first.put("42", _roster("fp-a"))
    first.close()

    second = KeyValueBindingStore(SQLiteKeyValue(path))
    try:
        assert second.get("42").fingerprints == ["fp-a"]
    finally:
        second.close()


def test_sqlite_errors_are_wrapped(tmp_path):
    backend = SQLiteKeyValue(tmp_path / "bindings.sqlite")
    backend.close()
    with pytest.raises(StoreUnavailableError):
        backend.get_raw("devices:42")
    with pytest.raises(StoreUnavailableError):
        backend.put_raw("devices:42", "[]")


def test_reads_records_written_by_the_worker_layout():
    backend = MemoryKeyValue()
    backend.put_raw(
        "nfc_devices:42",
        '[{"fingerprint":"fp-a","firstAccess":1714564800000,"lastAccess":1714564800000,"accessCount":2}]',
    )
    roster = KeyValueBindingStore(backend).get("42")
    assert roster.fingerprints == ["fp-a"]
    assert roster.find("fp-a").access_count == 2
