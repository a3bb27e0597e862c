"""Tests for FastAPI API endpoints using TestClient."""

import asyncio
import logging
import time

import pytest
from unittest.mock import patch

from fastapi.testclient import TestClient

from carbon_avs.api.main import create_app
from carbon_avs.config import Config
from carbon_avs.registries.models import RegistrySource
from carbon_avs.verification.coordinator import VerificationCoordinator
from carbon_avs.verification.publisher import VerdictPublisher
from tests.fakes import FakeRegistryClient, HeldSink, RecordingSink, RejectingSink, success


def _clients(gate=None):
    return [
        FakeRegistryClient(RegistrySource.verra, success(RegistrySource.verra, 85), gate=gate),
        FakeRegistryClient(RegistrySource.gold_standard, success(RegistrySource.gold_standard, 70), gate=gate),
        FakeRegistryClient(RegistrySource.climate_action, success(RegistrySource.climate_action, 78), gate=gate),
    ]


def _coordinator(sink=None, clients=None):
    publisher = VerdictPublisher(sink or RecordingSink(), max_attempts=1, backoff_seconds=0)
    return VerificationCoordinator(clients or _clients(), publisher)


@pytest.fixture
def coordinator():
    return _coordinator()


@pytest.fixture
def client(coordinator):
    """Test client for the Carbon AVS API with lifespan running."""
    with TestClient(create_app(coordinator)) as test_client:
        yield test_client


@pytest.fixture
def auth_headers():
    return {"Authorization": "Bearer test-api-key"}


def _wait_for_status(client, credit_id, status, attempts=100):
    for _ in range(attempts):
        data = client.get(f"/api/verifications/{credit_id}").json()
        if data["status"] == status:
            return data
        time.sleep(0.01)
    return data


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------
class TestHealthEndpoint:
    def test_health_returns_200(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200

    def test_health_response_structure(self, client):
        data = client.get("/api/health").json()
        assert data["status"] == "healthy"
        assert [r["source"] for r in data["registries"]] == [
            "Verra", "Gold Standard", "Climate Action Reserve",
        ]
        assert data["ledger_backend"] == "memory"
        assert data["active_waves"] == 0

    def test_request_id_header(self, client):
        response = client.get("/api/health")
        assert "X-Request-ID" in response.headers

    def test_caller_request_id_echoed(self, client):
        response = client.get("/api/health", headers={"X-Request-ID": "trace-42"})
        assert response.headers["X-Request-ID"] == "trace-42"

    def test_request_log_names_credit(self, client, caplog):
        with caplog.at_level(logging.INFO, logger="carbon_avs.api.auth"):
            client.get("/api/verifications/7")
            client.get("/api/health")
        lines = [r.getMessage() for r in caplog.records if r.name == "carbon_avs.api.auth"]
        assert any("/api/verifications/7 -> 200 credit=7 " in line for line in lines)
        assert any("/api/health -> 200 credit=- " in line for line in lines)


# ---------------------------------------------------------------------------
# Requesting verification
# ---------------------------------------------------------------------------
class TestRequestVerification:
    def test_wait_returns_final_state(self, client, auth_headers):
        response = client.post(
            "/api/verifications", json={"credit_id": 1, "wait": True}, headers=auth_headers,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["credit_id"] == "1"
        assert data["status"] == "verified"
        assert data["verdict"] == {
            "is_valid": True,
            "quality_score": 78,
            "sources": ["Verra", "Gold Standard", "Climate Action Reserve"],
        }
        assert data["requesters"] == ["api"]

    def test_background_request_accepted(self, client, auth_headers):
        response = client.post("/api/verifications", json={"credit_id": "2", "requester": "desk"},
                               headers=auth_headers)
        assert response.status_code == 202
        assert response.json()["status"] in ("pending", "verified")
        assert _wait_for_status(client, "2", "verified")["status"] == "verified"

    def test_repeat_request_is_noop(self, client, coordinator):
        client.post("/api/verifications", json={"credit_id": "1", "wait": True})
        data = client.post("/api/verifications", json={"credit_id": "1", "wait": True}).json()
        assert data["wave_count"] == 1
        assert all(len(c.calls) == 1 for c in coordinator.clients)

    def test_force_reverifies(self, client):
        client.post("/api/verifications", json={"credit_id": "1", "wait": True})
        data = client.post("/api/verifications", json={"credit_id": "1", "wait": True, "force": True}).json()
        assert data["wave_count"] == 2

    def test_invalid_credit_id(self, client):
        response = client.post("/api/verifications", json={"credit_id": "bad id!"})
        assert response.status_code == 422

    def test_publish_failure_is_502(self):
        with TestClient(create_app(_coordinator(RejectingSink()))) as client:
            response = client.post("/api/verifications", json={"credit_id": "1", "wait": True})
            assert response.status_code == 502
            state = client.get("/api/verifications/1").json()
        assert state["status"] == "publish_failed"
        assert state["verdict"]["quality_score"] == 78


# ---------------------------------------------------------------------------
# Inspecting state
# ---------------------------------------------------------------------------
class TestVerificationState:
    def test_unknown_credit_is_unverified(self, client):
        data = client.get("/api/verifications/999").json()
        assert data["status"] == "unverified"
        assert data["verdict"] is None

    def test_invalid_path_credit_id(self, client):
        assert client.get("/api/verifications/bad$id").status_code == 400

    def test_list_and_filter(self, client):
        client.post("/api/verifications", json={"credit_id": "1", "wait": True})
        client.get("/api/verifications/5")

        everything = client.get("/api/verifications").json()
        verified = client.get("/api/verifications", params={"status": "verified"}).json()

        assert everything["count"] == 1
        assert [c["credit_id"] for c in everything["credits"]] == ["1"]
        assert verified["count"] == 1
        assert verified["credits"][0]["credit_id"] == "1"

    def test_unknown_status_filter(self, client):
        assert client.get("/api/verifications", params={"status": "bogus"}).status_code == 422


# ---------------------------------------------------------------------------
# Republish and cancel
# ---------------------------------------------------------------------------
class TestRepublishAndCancel:
    def test_republish_requires_publish_failed(self, client):
        assert client.post("/api/verifications/1/republish").status_code == 409

    def test_republish_after_ledger_recovers(self):
        coordinator = _coordinator(RejectingSink())
        with TestClient(create_app(coordinator)) as client:
            client.post("/api/verifications", json={"credit_id": "1", "wait": True})
            coordinator._publisher.sink = RecordingSink()
            response = client.post("/api/verifications/1/republish")
        assert response.status_code == 200
        assert response.json()["status"] == "verified"

    def test_republish_failing_again_is_502(self):
        with TestClient(create_app(_coordinator(RejectingSink()))) as client:
            client.post("/api/verifications", json={"credit_id": "1", "wait": True})
            assert client.post("/api/verifications/1/republish").status_code == 502

    def test_cancel_without_wave_is_404(self, client):
        assert client.delete("/api/verifications/1").status_code == 404

    def test_cancel_in_flight_wave(self):
        coordinator = _coordinator(clients=_clients(gate=asyncio.Event()))
        with TestClient(create_app(coordinator)) as client:
            assert client.post("/api/verifications", json={"credit_id": "1"}).status_code == 202
            response = client.delete("/api/verifications/1")
        assert response.status_code == 200
        assert response.json()["status"] == "unverified"
        assert response.json()["last_error"] == "Verification cancelled"

    def test_cancel_while_publishing_is_409(self):
        sink = HeldSink()
        coordinator = _coordinator(sink)
        with TestClient(create_app(coordinator)) as client:
            client.post("/api/verifications", json={"credit_id": "1"})
            assert sink.entered.wait(timeout=5)
            response = client.delete("/api/verifications/1")
            sink.release.set()
            final = _wait_for_status(client, "1", "verified")
        assert response.status_code == 409
        assert final["status"] == "verified"
        assert sink.calls == [("1", True, 78, ["Verra", "Gold Standard", "Climate Action Reserve"])]


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------
class TestAuthentication:
    @pytest.fixture
    def strict_config(self):
        with patch(
            "carbon_avs.api.auth.get_config",
            return_value=Config(demo_mode=False, api_key="test-api-key"),
        ):
            yield

    def test_missing_key_rejected(self, client, strict_config):
        assert client.get("/api/verifications/1").status_code == 401

    def test_wrong_key_rejected(self, client, strict_config):
        response = client.get("/api/verifications/1", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    def test_valid_key_accepted(self, client, strict_config, auth_headers):
        assert client.get("/api/verifications/1", headers=auth_headers).status_code == 200

    def test_health_needs_no_key(self, client, strict_config):
        assert client.get("/api/health").status_code == 200

    def test_unconfigured_key_is_500(self, client):
        with patch(
            "carbon_avs.api.auth.get_config",
            return_value=Config(demo_mode=False, api_key=""),
        ):
            assert client.get("/api/verifications/1").status_code == 500
