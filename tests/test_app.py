"""Tests for the HTTP surface.

The app's shared integration is swapped for a fresh one per test through
FastAPI's dependency overrides, so nothing leaks between tests and no
real gateway is contacted (demo patients need no network).
"""

from collections.abc import Iterator
from urllib.parse import parse_qs, urlparse

import pytest
from fastapi.testclient import TestClient

from ehr_connect.app import app
from ehr_connect.cipher import Cipher, generate_key
from ehr_connect.service import EHRIntegration, get_integration
from ehr_connect.store import InMemoryStore

DEMO = {"X-Principal": "demo.doctor@amma.health"}
DOCTOR = {"X-Principal": "dr.house@example.com"}


@pytest.fixture
def integration() -> Iterator[EHRIntegration]:
    integration = EHRIntegration(store=InMemoryStore(), cipher=Cipher(key=generate_key()))
    app.dependency_overrides[get_integration] = lambda: integration
    yield integration
    app.dependency_overrides.clear()


@pytest.fixture
def client(integration: EHRIntegration) -> TestClient:
    return TestClient(app)


def test_health(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_principal_header_is_required(client: TestClient) -> None:
    response = client.get("/epic/status")
    assert response.status_code == 401


class TestConnection:
    def test_demo_connect_and_disconnect(self, client: TestClient) -> None:
        assert client.get("/epic/status", headers=DEMO).json()["connected"] is False

        response = client.post("/epic/connect", headers=DEMO)
        assert response.status_code == 200
        assert response.json() == {"connected": True, "authorization_url": None, "state": None}
        assert client.get("/epic/status", headers=DEMO).json()["connected"] is True

        assert client.delete("/epic/connection", headers=DEMO).json() == {"disconnected": True}
        assert client.get("/epic/status", headers=DEMO).json()["connected"] is False

    def test_connect_returns_authorization_url(self, client: TestClient) -> None:
        response = client.post("/epic/connect", headers=DOCTOR)

        body = response.json()
        assert body["connected"] is False
        params = parse_qs(urlparse(body["authorization_url"]).query)
        assert params["state"] == [body["state"]]
        assert params["response_type"] == ["code"]

    def test_callback_with_forged_state(self, client: TestClient) -> None:
        response = client.get("/epic/callback", params={"code": "abc", "state": "forged"})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "CsrfError"
        assert body["action"] == "reconnect"

    def test_callback_with_error(self, client: TestClient) -> None:
        state = client.post("/epic/connect", headers=DOCTOR).json()["state"]

        response = client.get(
            "/epic/callback",
            params={"state": state, "error": "access_denied", "error_description": "Denied"},
        )

        assert response.status_code == 401
        assert response.json()["error"] == "AuthorizationDeniedError"

    def test_callback_without_code(self, client: TestClient) -> None:
        response = client.get("/epic/callback", params={"state": "s"})
        assert response.status_code == 400


class TestPatients:
    def test_demo_search(self, client: TestClient) -> None:
        response = client.get("/patients/search", params={"q": ""}, headers=DEMO)
        assert response.status_code == 200
        assert len(response.json()) == 5

        response = client.get("/patients/search", params={"q": "chen"}, headers=DEMO)
        assert response.json() == []

    def test_search_without_connection_asks_to_reconnect(self, client: TestClient) -> None:
        response = client.get("/patients/search", params={"q": "smith"}, headers=DOCTOR)

        assert response.status_code == 401
        assert response.json()["action"] == "reconnect"
        assert response.json()["error"] == "NotConnectedError"

    def test_sync_then_snapshot(self, client: TestClient) -> None:
        assert client.get("/patients/demo-patient-2/snapshot", headers=DEMO).status_code == 404

        response = client.post("/patients/demo-patient-2/sync", headers=DEMO)
        assert response.status_code == 200
        assert response.json()["patient"]["name"] == "Keisha Washington"

        snapshot = client.get("/patients/demo-patient-2/snapshot", headers=DEMO).json()
        assert snapshot["patient_name"] == "Keisha Washington"
        assert snapshot["diagnoses"]

    def test_unknown_demo_patient_suggests_retry(self, client: TestClient) -> None:
        response = client.post("/patients/demo-patient-0/sync", headers=DEMO)
        assert response.status_code == 502
        assert response.json()["action"] == "retry"

    def test_summary(self, client: TestClient) -> None:
        response = client.get("/patients/demo-patient-5/summary", headers=DEMO)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        text = response.text
        assert text.startswith("PATIENT INFORMATION\nName: Priya Sharma")
        assert "CURRENT MEDICATIONS" in text
        assert "RECENT LAB RESULTS" in text


def test_retention_sweep(client: TestClient) -> None:
    client.post("/patients/demo-patient-1/sync", headers=DEMO)

    response = client.post("/admin/retention-sweep")

    assert response.status_code == 200
    assert response.json() == {"audit_deleted": 0, "snapshots_deleted": 0}
