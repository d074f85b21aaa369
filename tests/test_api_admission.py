from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from guidegate.apps.api.auth import require_maintenance_token
from guidegate.apps.api.server import create_app
from guidegate.config.settings import GuideGateSettings
from guidegate.services.admission import MemoryKeyValue, StoreUnavailableError, build_runtime, generate_code

SECRET = "api-secret"
TOKEN = "maintenance-token"
T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class _Clock:
    def __init__(self) -> None:
        self.now = T0

    def __call__(self) -> datetime:
        return self.now


class _BrokenBackend(MemoryKeyValue):
    def get_raw(self, key: str) -> str | None:
        raise StoreUnavailableError("backend down")


def _settings(**overrides) -> GuideGateSettings:
    values = {"secret": SECRET, "db_path": ":memory:", "maintenance_token": TOKEN}
    values.update(overrides)
    return GuideGateSettings(**values)


@pytest.fixture()
def clock():
    return _Clock()


@pytest.fixture()
def client(clock):
    runtime = build_runtime(_settings(), backend=MemoryKeyValue(), clock=clock)
    return TestClient(create_app(runtime=runtime))


def _validate(client: TestClient, uid: str, fingerprint: str, **extra):
    body = {"uid": uid, "validationCode": generate_code(uid, SECRET), "deviceFingerprint": fingerprint}
    body.update(extra)
    return client.post("/api/nfc/validate", json=body)


def test_ping(client):
    response = client.get("/api/ping")
    assert response.status_code == 200
    assert response.json()["ok"] is True


def test_first_device_is_admitted(client):
    response = _validate(client, "42", "fp-a")
    assert response.status_code == 200
    assert response.json() == {
        "allowed": True,
        "reason": "under_limit",
        "deviceCount": 1,
        "isNewDevice": True,
        "expiresAt": "2024-05-01T20:00:00Z",
    }


def test_existing_device_reason(client):
    _validate(client, "42", "fp-a")
    response = _validate(client, "42", "fp-a")
    assert response.status_code == 200
    assert response.json()["reason"] == "existing_device"
    assert response.json()["isNewDevice"] is False


def test_fourth_device_is_rejected(client):
    for fingerprint in ("fp-a", "fp-b", "fp-c"):
        assert _validate(client, "42", fingerprint).status_code == 200
    response = _validate(client, "42", "fp-d")
    assert response.status_code == 403
    assert response.json() == {
        "allowed": False,
        "reason": "device_limit_exceeded",
        "deviceCount": 3,
        "maxDevices": 3,
    }


def test_max_devices_override(client):
    assert _validate(client, "solo", "fp-a", maxDevices=1).status_code == 200
    response = _validate(client, "solo", "fp-b", maxDevices=1)
    assert response.status_code == 403
    assert response.json()["maxDevices"] == 1


def test_compact_tag_value_is_accepted(client):
    code = generate_code("42", SECRET)
    response = client.post("/api/nfc/validate", json={"s": f"42:{code.lower()}", "deviceFingerprint": "fp-a"})
    assert response.status_code == 200
    assert response.json()["allowed"] is True


def test_invalid_code_is_forbidden(client):
    response = client.post(
        "/api/nfc/validate",
        json={"uid": "42", "vc": "ZZZZ", "deviceFingerprint": "fp-a"},
    )
    assert response.status_code == 403
    assert response.json() == {"allowed": False, "reason": "invalid_code"}


def test_missing_fields_are_reported(client):
    response = client.post("/api/nfc/validate", json={})
    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "missing_field"
    assert body["fields"] == ["uid", "deviceFingerprint", "validationCode"]


def test_malformed_bodies_are_bad_requests(client):
    response = client.post(
        "/api/nfc/validate", content=b"not json", headers={"Content-Type": "application/json"}
    )
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_input"

    response = client.post("/api/nfc/validate", json=["42"])
    assert response.status_code == 400

    response = _validate(client, "42", "fp-a", maxDevices=0)
    assert response.status_code == 400
    assert response.json()["fields"] == ["maxDevices"]


def test_conflicting_encodings_are_bad_requests(client):
    code = generate_code("42", SECRET)
    response = client.post(
        "/api/nfc/validate",
        json={"s": f"43:{code}", "uid": "42", "validationCode": code, "deviceFingerprint": "fp-a"},
    )
    assert response.status_code == 400
    assert response.json()["fields"] == ["s", "uid", "vc"]


def test_store_outage_fails_closed():
    runtime = build_runtime(_settings(), backend=_BrokenBackend())
    client = TestClient(create_app(runtime=runtime))
    response = _validate(client, "42", "fp-a")
    assert response.status_code == 503
    assert response.json() == {"allowed": False, "reason": "store_unavailable"}

    response = client.get("/api/nfc/devices", params={"uid": "42"}, headers={"X-GuideGate-Token": TOKEN})
    assert response.status_code == 503
    assert response.json() == {"error": "store_unavailable"}


def test_devices_requires_token(client):
    _validate(client, "42", "abcdefghijklmnop")
    assert client.get("/api/nfc/devices", params={"uid": "42"}).status_code == 401
    response = client.get(
        "/api/nfc/devices", params={"uid": "42"}, headers={"X-GuideGate-Token": "wrong"}
    )
    assert response.status_code == 401

    response = client.get(
        "/api/nfc/devices", params={"uid": "42"}, headers={"Authorization": f"Bearer {TOKEN}"}
    )
    assert response.status_code == 200
    body = response.json()
    assert body["deviceCount"] == 1
    assert body["devices"][0]["fingerprint"] == "abcdefgh..."
    assert body["devices"][0]["lastAccess"] == 1714564800000


def test_devices_without_uid(client):
    response = client.get("/api/nfc/devices", headers={"X-GuideGate-Token": TOKEN})
    assert response.status_code == 400
    assert response.json()["error"] == "missing_field"


def test_cleanup_prunes_stale_devices(client, clock):
    _validate(client, "42", "fp-old")
    clock.now = T0 + timedelta(days=31)
    _validate(client, "42", "fp-new")

    headers = {"X-GuideGate-Token": TOKEN}
    response = client.post("/api/nfc/cleanup", json={"uid": "42"}, headers=headers)
    assert response.status_code == 200
    assert response.json() == {"cleaned": True, "removedCount": 1, "remainingCount": 1}

    response = client.post("/api/nfc/cleanup", json={"uid": "42", "maxAge": 0}, headers=headers)
    assert response.json() == {"cleaned": False, "removedCount": 0, "remainingCount": 1}

    response = client.post("/api/nfc/cleanup", json={}, headers=headers)
    assert response.status_code == 400


def test_maintenance_disabled_without_configured_token(clock):
    runtime = build_runtime(_settings(maintenance_token=None), backend=MemoryKeyValue(), clock=clock)
    client = TestClient(create_app(runtime=runtime))
    response = client.post("/api/nfc/cleanup", json={"uid": "42"}, headers={"X-GuideGate-Token": "anything"})
    assert response.status_code == 401


def test_maintenance_dependency_can_be_overridden(clock):
    runtime = build_runtime(_settings(maintenance_token=None), backend=MemoryKeyValue(), clock=clock)
    app = create_app(runtime=runtime)
    app.dependency_overrides[require_maintenance_token] = lambda: None
    client = TestClient(app)
    _validate(client, "42", "fp-a")
    response = client.get("/api/nfc/devices", params={"uid": "42"})
    assert response.status_code == 200
    assert response.json()["deviceCount"] == 1


def test_uid_alongside_compact_form(client):
    code = generate_code("42", SECRET)
    response = client.post(
        "/api/nfc/validate", json={"uid": "42", "s": f"42:{code}", "deviceFingerprint": "fp-a"}
    )
    assert response.status_code == 200
    assert response.json()["reason"] == "under_limit"

    response = client.post(
        "/api/nfc/validate", json={"uid": "43", "s": f"42:{code}", "deviceFingerprint": "fp-a"}
    )
    assert response.status_code == 400
    assert response.json()["fields"] == ["s", "uid"]


def test_malformed_stored_roster_is_service_unavailable(clock):
    backend = MemoryKeyValue()
    backend.put_raw("nfc_devices:42", "[1, 2]")
    runtime = build_runtime(_settings(), backend=backend, clock=clock)
    client = TestClient(create_app(runtime=runtime))
    response = _validate(client, "42", "fp-a")
    assert response.status_code == 503
    assert response.json() == {"allowed": False, "reason": "store_unavailable"}
