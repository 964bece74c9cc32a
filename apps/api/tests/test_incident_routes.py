"""Tests for the incident ledger HTTP routes."""

import pytest
from fastapi.testclient import TestClient

from conftest import tamper
from incident_api.ledger.errors import ConflictError, StorageError
from incident_api.ledger.store import AppendResult, LedgerStore
from incident_api.main import app
from incident_api.routes.incidents import get_ledger_store

HEADERS = {"x-tenant-id": "fam-1", "x-user-id": "parent-a"}

PAYLOAD = {
    "title": "Late pickup",
    "description": "Arrived 45 minutes after the agreed time.",
    "severity": "high",
    "occurred_at": "2026-03-14T16:30:00",
    "location": "School gate",
}


class AlwaysConflictingStore(LedgerStore):
    def append_if_tip(self, tenant_id, expected_previous_digest, record):
        return AppendResult(conflict=ConflictError(tenant_id, expected_previous_digest, "busy"))


class UnavailableStore(LedgerStore):
    def tip(self, tenant_id):
        raise StorageError("database unavailable")

    def count(self, tenant_id):
        raise StorageError("database unavailable")


@pytest.fixture
def client(store):
    app.dependency_overrides[get_ledger_store] = lambda: store
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _use_store(store):
    app.dependency_overrides[get_ledger_store] = lambda: store


def test_submit_incident(client):
    response = client.post("/v1/incidents", json=PAYLOAD, headers=HEADERS)

    assert response.status_code == 201
    data = response.json()
    assert data["tenant_id"] == "fam-1"
    assert data["author_id"] == "parent-a"
    assert data["sequence"] == 1
    assert data["previous_digest"] == "0"
    assert len(data["digest"]) == 64
    assert data["severity"] == "high"


def test_submissions_chain_in_order(client):
    first = client.post("/v1/incidents", json=PAYLOAD, headers=HEADERS).json()
    second = client.post("/v1/incidents", json={**PAYLOAD, "title": "Missed call"}, headers=HEADERS).json()

    assert second["sequence"] == 2
    assert second["previous_digest"] == first["digest"]


def test_missing_tenant_headers_are_rejected(client):
    response = client.post("/v1/incidents", json=PAYLOAD)
    assert response.status_code == 401

    response = client.get("/v1/incidents", headers={"x-tenant-id": "fam-1"})
    assert response.status_code == 401


def test_overlong_tenant_id_is_rejected(client):
    response = client.get("/v1/incidents", headers={"x-tenant-id": "f" * 65, "x-user-id": "u"})
    assert response.status_code == 400


@pytest.mark.parametrize(
    "payload",
    [
        {k: v for k, v in PAYLOAD.items() if k != "title"},
        {**PAYLOAD, "title": ""},
        {**PAYLOAD, "severity": "extreme"},
        {**PAYLOAD, "tenant_id": "fam-2"},
    ],
)
def test_invalid_content_is_rejected(client, store, payload):
    response = client.post("/v1/incidents", json=payload, headers=HEADERS)

    assert response.status_code == 422
    assert store.count("fam-1") == 0


def test_list_incidents_is_tenant_scoped(client):
    client.post("/v1/incidents", json=PAYLOAD, headers=HEADERS)
    client.post("/v1/incidents", json=PAYLOAD, headers={"x-tenant-id": "fam-2", "x-user-id": "parent-c"})

    response = client.get("/v1/incidents", headers=HEADERS)

    assert response.status_code == 200
    data = response.json()
    assert data["tenant_id"] == "fam-1"
    assert data["total"] == 1
    assert [i["author_id"] for i in data["incidents"]] == ["parent-a"]


def test_verify_valid_ledger(client):
    client.post("/v1/incidents", json=PAYLOAD, headers=HEADERS)

    response = client.get("/v1/incidents/verify", headers=HEADERS)

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "valid"
    assert data["record_count"] == 1
    assert data["anomalies"] == []


def test_verify_tampered_ledger_is_200_invalid(client, engine):
    client.post("/v1/incidents", json=PAYLOAD, headers=HEADERS)
    tamper(engine, "fam-1", 1, description="Edited later.")

    response = client.get("/v1/incidents/verify", headers=HEADERS)

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "invalid"
    assert data["anomalies"][0]["kind"] == "content_tampered"
    assert data["anomalies"][0]["sequence"] == 1


def test_export_download(client):
    client.post("/v1/incidents", json=PAYLOAD, headers=HEADERS)

    response = client.get(
        "/v1/incidents/export",
        params={"generated_at": "2026-10-01T09:00:00"},
        headers=HEADERS,
    )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert 'filename="incident-log-fam-1-2026-10-01.txt"' in response.headers["content-disposition"]
    assert response.headers["x-ledger-verified"] == "true"
    assert len(response.headers["x-document-sha256"]) == 64
    assert "Generated: 2026-10-01 09:00:00 UTC" in response.text
    assert "Title: Late pickup" in response.text


def test_export_of_tampered_ledger_is_marked(client, engine):
    client.post("/v1/incidents", json=PAYLOAD, headers=HEADERS)
    tamper(engine, "fam-1", 1, title="Edited later")

    response = client.get("/v1/incidents/export", headers=HEADERS)

    assert response.status_code == 200
    assert response.headers["x-ledger-verified"] == "false"
    assert "INTEGRITY VERIFICATION FAILED" in response.text


def test_exhausted_retries_return_409(client, engine):
    _use_store(AlwaysConflictingStore(engine))

    response = client.post("/v1/incidents", json=PAYLOAD, headers=HEADERS)

    assert response.status_code == 409
    data = response.json()
    assert data["kind"] == "too_many_conflicts"
    assert data["retryable"] is True
    assert data["attempts"] >= 1


def test_storage_failure_returns_503(client, engine):
    _use_store(UnavailableStore(engine))

    assert client.post("/v1/incidents", json=PAYLOAD, headers=HEADERS).status_code == 503
    assert client.get("/v1/incidents", headers=HEADERS).status_code == 503


def test_offset_timestamp_round_trips_and_verifies(client):
    response = client.post(
        "/v1/incidents",
        json={**PAYLOAD, "occurred_at": "2026-03-14T18:30:00+02:00"},
        headers=HEADERS,
    )

    assert response.status_code == 201
    assert response.json()["occurred_at"] == "2026-03-14T16:30:00"

    report = client.get("/v1/incidents/verify", headers=HEADERS).json()
    assert report["status"] == "valid"
    assert report["anomalies"] == []
