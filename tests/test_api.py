"""
Tests for the HTTP API
======================
Health, HMAC generation, webhook relay and the guarded proof routes,
exercised through the application factory.
"""

import json
from typing import List

import httpx
import pytest
from fastapi.testclient import TestClient

from conftest import SECRET
from pageproof_bridge.api import build_services, create_app
from pageproof_bridge.config import BridgeConfig
from pageproof_bridge.internal_auth import create_signed_headers, create_webhook_headers, sign
from pageproof_bridge.powerapps import PowerAppsRelay
from pageproof_bridge.vault import StaticSecretStore

POWERAPPS_URL = "https://flows.example.test/pageproof"

PROOF_BODY = {
    "proof": {"id": "p-42", "status": "approved", "name": "Spring Catalog", "approvedDate": None},
    "trigger": {"email": "reviewer@example.com"},
}
OVERDUE_BODY = {"proof": {"id": "p-7", "status": "overdue", "dueDate": "2024-05-01T00:00:00Z"}}


async def _no_sleep(delay):
    return None


class PowerAppsStub:
    """Records relayed events and answers with scripted status codes."""

    def __init__(self, statuses=(200,)):
        self.statuses = list(statuses)
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status = self.statuses[min(len(self.requests), len(self.statuses)) - 1]
        return httpx.Response(status, json={"ok": status < 400})

    @property
    def bodies(self):
        return [json.loads(r.content) for r in self.requests]


def make_config(tmp_path, **overrides) -> BridgeConfig:
    options = dict(
        environment="test",
        powerapps_endpoint=POWERAPPS_URL,
        session_file=str(tmp_path / "session.json"),
        session_key="session-encryption-key",
    )
    options.update(overrides)
    return BridgeConfig(**options)


def make_client(tmp_path, secrets=None, powerapps=None, **config_overrides) -> TestClient:
    config = make_config(tmp_path, **config_overrides)
    if secrets is None:
        secrets = {config.hmac_secret_name: SECRET, config.webhook_secret_name: SECRET}
    relay = PowerAppsRelay(
        config.powerapps_endpoint,
        client=httpx.AsyncClient(transport=httpx.MockTransport(powerapps or PowerAppsStub())),
        sleep=_no_sleep,
    )
    services = build_services(config, store=StaticSecretStore(secrets), relay=relay, sleep=_no_sleep)
    return TestClient(create_app(services=services), raise_server_exceptions=False)


@pytest.fixture
def powerapps() -> PowerAppsStub:
    return PowerAppsStub()


@pytest.fixture
def client(tmp_path, powerapps):
    with make_client(tmp_path, powerapps=powerapps) as client:
        yield client


def post_webhook(client, path, body, secret=SECRET, signature=None):
    raw = json.dumps(body).encode()
    headers = {"content-type": "application/json"}
    headers.update(create_webhook_headers(secret, raw))
    if signature is not None:
        headers["x-pageproof-signature"] = signature
    return client.post(path, content=raw, headers=headers)


class TestHealthRoutes:
    def test_health(self, client):
        response = client.get("/api/v1/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "pageproof-bridge"
        assert data["environment"] == "test"

    def test_live(self, client):
        assert client.get("/api/v1/health/live").json() == {"status": "alive"}

    def test_ready(self, client):
        response = client.get("/api/v1/health/ready")

        assert response.status_code == 200
        assert response.json() == {"status": "ready"}

    def test_not_ready_without_secret(self, tmp_path):
        with make_client(tmp_path, secrets={}) as client:
            response = client.get("/api/v1/health/ready")

        assert response.status_code == 503
        assert response.json()["reason"] == "hmac_secret_unavailable"

    def test_detailed(self, client):
        response = client.get("/api/v1/health/detailed")

        assert response.status_code == 200
        data = response.json()
        assert data["components"]["hmac"]["status"] == "healthy"
        assert data["components"]["webhook"]["status"] == "healthy"
        assert "hit_rate" in data["cache"]
        assert data["relay"] == {"configured": True}
        assert SECRET not in response.text

    def test_detailed_unhealthy_without_secret(self, tmp_path):
        with make_client(tmp_path, secrets={}) as client:
            response = client.get("/api/v1/health/detailed")

        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"

    def test_cache_status(self, client):
        data = client.get("/api/v1/health/cache").json()

        assert data["running"] is True
        assert set(data["stats"]) >= {"hits", "misses", "key_count", "approx_memory_bytes", "hit_rate"}

    def test_metrics_json_and_prometheus(self, client):
        client.get("/api/v1/proofs/session")

        data = client.get("/api/v1/health/metrics").json()
        assert "counters" in data["metrics"]

        text = client.get("/api/v1/health/metrics", params={"format": "prometheus"}).text
        assert "hmac_verification_outcomes" in text

    def test_request_id_is_echoed(self, client):
        response = client.get("/api/v1/health", headers={"X-Request-ID": "req-abc"})

        assert response.headers["X-Request-ID"] == "req-abc"

    def test_request_id_is_generated(self, client):
        assert client.get("/api/v1/health").headers["X-Request-ID"].startswith("req_")


class TestGenerateHmac:
    def test_issues_signed_timestamp(self, client):
        response = client.get("/api/v1/hmac/generate-hmac", headers={"x-secret-key": SECRET})

        assert response.status_code == 200
        data = response.json()
        assert data["signature"] == sign(SECRET, data["timestamp"])

    @pytest.mark.parametrize("headers", [{}, {"x-secret-key": "short"}, {"x-secret-key": "z" * 32}])
    def test_rejects_bad_key(self, client, headers):
        response = client.get("/api/v1/hmac/generate-hmac", headers=headers)

        assert response.status_code == 401
        assert response.json()["error"] == "Invalid or missing x-secret-key header"

    def test_secret_unavailable(self, tmp_path):
        with make_client(tmp_path, secrets={}) as client:
            response = client.get("/api/v1/hmac/generate-hmac", headers={"x-secret-key": SECRET})

        assert response.status_code == 500
        assert response.json()["error"] == "Failed to generate HMAC signature"

    def test_issued_signature_opens_guarded_routes(self, client):
        issued = client.get("/api/v1/hmac/generate-hmac", headers={"x-secret-key": SECRET}).json()

        response = client.get(
            "/api/v1/proofs/session",
            headers={"x-timestamp": issued["timestamp"], "x-signature": issued["signature"]},
        )

        assert response.status_code == 200
        assert response.json()["authenticated"] is True


class TestProofRoutes:
    def test_requires_hmac_headers(self, client):
        response = client.get("/api/v1/proofs/session")

        assert response.status_code == 400
        assert response.json()["error"] == "Missing required HMAC headers"
        assert response.json()["requestId"].startswith("req_")

    def test_session_status(self, client):
        response = client.get("/api/v1/proofs/session", headers=create_signed_headers(SECRET))

        assert response.json() == {
            "authenticated": True,
            "sessionConfigured": True,
            "sessionUser": None,
        }

    def test_session_user_follows_save_and_clear(self, client):
        session_store = client.app.state.services.session_store

        def session_user():
            response = client.get("/api/v1/proofs/session", headers=create_signed_headers(SECRET))
            return response.json()["sessionUser"]

        client.portal.call(session_store.save, {"token": "t-1"}, "studio@example.com", "pw")
        assert session_user() == "studio@example.com"

        client.portal.call(session_store.clear)
        assert session_user() is None

    def test_session_not_configured(self, tmp_path):
        with make_client(tmp_path, session_key=None) as client:
            response = client.get("/api/v1/proofs/session", headers=create_signed_headers(SECRET))

        assert response.json()["sessionConfigured"] is False


class TestWebhooks:
    """Validate, verify, relay, acknowledge."""

    def test_proof_status_relayed(self, client, powerapps):
        response = post_webhook(client, "/api/v1/webhooks/proof-status", PROOF_BODY)

        assert response.status_code == 200
        data = response.json()
        assert data["statusCode"] == 200
        assert data["proofData"]["id"] == "p-42"
        assert powerapps.bodies == [{
            "event": "proof_status",
            "proof": {"id": "p-42", "status": "approved", "name": "Spring Catalog"},
            "trigger": {"email": "reviewer@example.com"},
        }]

    def test_overdue_relayed(self, client, powerapps):
        response = post_webhook(client, "/api/v1/webhooks/overdue", OVERDUE_BODY)

        assert response.status_code == 200
        assert response.json()["overdueData"] == OVERDUE_BODY["proof"]
        assert powerapps.bodies[0]["event"] == "proof_overdue"
        assert powerapps.bodies[0]["proof"]["dueDate"] == "2024-05-01T00:00:00Z"

    def test_invalid_signature(self, client, powerapps):
        response = post_webhook(client, "/api/v1/webhooks/proof-status", PROOF_BODY, secret="z" * 32)

        assert response.status_code == 403
        assert response.json() == {"statusCode": 403, "error": "Invalid signature"}
        assert powerapps.requests == []

    def test_missing_signature(self, client):
        raw = json.dumps(PROOF_BODY).encode()

        response = client.post(
            "/api/v1/webhooks/proof-status",
            content=raw,
            headers={"content-type": "application/json"},
        )

        assert response.status_code == 403

    @pytest.mark.parametrize("body", [
        {},
        {"proof": {"status": "approved"}},
        {"proof": {"id": "", "status": "approved"}},
        {"proof": {"id": "p-1", "status": "approved"}, "trigger": {"email": "not-an-email"}},
    ])
    def test_invalid_body(self, client, powerapps, body):
        response = post_webhook(client, "/api/v1/webhooks/proof-status", body)

        assert response.status_code == 400
        data = response.json()
        assert data["statusCode"] == 400
        assert data["error"] == "Invalid body"
        assert isinstance(data["details"], list)
        assert powerapps.requests == []

    def test_body_validated_before_signature(self, client):
        response = post_webhook(client, "/api/v1/webhooks/overdue", {"proof": {}}, signature="bad")

        assert response.status_code == 400

    def test_non_json_body(self, client):
        raw = b"not json"
        headers = {"content-type": "application/json"}
        headers.update(create_webhook_headers(SECRET, raw))

        response = client.post("/api/v1/webhooks/overdue", content=raw, headers=headers)

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid body"

    def test_relay_failure_is_502(self, tmp_path):
        powerapps = PowerAppsStub(statuses=(503,))
        with make_client(tmp_path, powerapps=powerapps) as client:
            response = post_webhook(client, "/api/v1/webhooks/proof-status", PROOF_BODY)

        assert response.status_code == 502
        assert response.json()["error"] == "Failed to relay event"
        assert len(powerapps.requests) == 3

    def test_missing_endpoint_skips_relay(self, tmp_path):
        powerapps = PowerAppsStub()
        with make_client(tmp_path, powerapps=powerapps, powerapps_endpoint=None) as client:
            response = post_webhook(client, "/api/v1/webhooks/proof-status", PROOF_BODY)

        assert response.status_code == 200
        assert powerapps.requests == []

    def test_signature_checks_are_counted(self, client):
        post_webhook(client, "/api/v1/webhooks/overdue", OVERDUE_BODY)
        post_webhook(client, "/api/v1/webhooks/overdue", OVERDUE_BODY, secret="z" * 32)

        metrics = client.app.state.services.metrics
        assert metrics.get_counter("webhook_signature_checks", {"result": "valid"}) == 1
        assert metrics.get_counter("webhook_signature_checks", {"result": "invalid"}) == 1
