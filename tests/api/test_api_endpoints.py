"""Integration tests for the network interception API endpoints.

Tests request/response handling, validation, error-code to HTTP status
mapping, and integration with the service layer over a fake driver.
"""

import pytest
from fastapi.testclient import TestClient

import netwatch.api.routes.network as network_module
from netwatch.api.main import app
from netwatch.api.services import InterceptionService
from netwatch.models.interception import AbortedEntry, FailureEntry, FailureKind


class TestNetworkAPI:
    """Test suite for network interception endpoints."""

    @pytest.fixture(autouse=True)
    def interception_service(self, fake_driver, session_settings):
        """Install a service backed by the fake driver for each test."""
        service = InterceptionService(driver=fake_driver, settings=session_settings)
        network_module._interception_service_instance = service

        yield service

        network_module._interception_service_instance = None

    @pytest.fixture
    def client(self):
        """Create a test client for the API."""
        with TestClient(app) as client:
            yield client

    def test_health_check(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "version" in data
        assert "uptime_seconds" in data
        assert data["services"]["interception"] == "healthy"

    def test_root_endpoint(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["message"] == "netwatch API"

    def test_request_id_header(self, client):
        response = client.get("/health")

        assert "X-Request-ID" in response.headers

    def test_unknown_route_uses_error_format(self, client):
        response = client.get("/api/network/nowhere")

        assert response.status_code == 404
        data = response.json()
        assert data["error"] == "http_404"

    def test_wrong_method_uses_error_format(self, client):
        response = client.get("/api/network/clear-logs")

        assert response.status_code == 405
        assert response.json()["error"] == "http_405"

    def test_enable_and_disable(self, client, fake_driver):
        response = client.post("/api/network/enable-interception", json={"url": "https://example.com", "priority": 2})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["state"] == "enabled"
        assert data["context_id"] == "default"
        assert data["priority"] == 2
        assert fake_driver.navigations == [("default", "https://example.com")]

        response = client.post("/api/network/disable-interception", json={})

        assert response.status_code == 200
        assert response.json()["state"] == "disabled"

    def test_disable_without_body(self, client):
        response = client.post("/api/network/disable-interception")

        assert response.status_code == 200
        assert response.json()["success"] is True

    def test_enable_driver_unavailable(self, client, fake_driver):
        fake_driver.fail_subscribe = True

        response = client.post("/api/network/enable-interception", json={})

        assert response.status_code == 503
        data = response.json()
        assert data["success"] is False
        assert data["error_code"] == "driver_unavailable"

    def test_enable_rejects_bad_url(self, client):
        response = client.post("/api/network/enable-interception", json={"url": "example.com"})

        assert response.status_code == 422
        assert response.json()["error"] == "validation_error"

    def test_install_list_and_remove_policy(self, client):
        response = client.post("/api/network/policies", json={
            "kind": "block-by-pattern",
            "params": {"patterns": [".png"]},
            "policy_id": "no-png",
        })

        assert response.status_code == 201
        assert response.json()["policy_id"] == "no-png"
        assert response.json()["total_policies"] == 1

        response = client.get("/api/network/policies")
        assert response.status_code == 200
        assert response.json()["policy_ids"] == ["no-png"]

        response = client.delete("/api/network/policies/no-png")
        assert response.status_code == 200
        assert response.json()["total_policies"] == 0

        response = client.delete("/api/network/policies/no-png")
        assert response.status_code == 404
        assert response.json()["error_code"] == "not_found"

    def test_duplicate_policy_conflict(self, client):
        payload = {"kind": "throttle", "params": {"url_pattern": "/"}, "policy_id": "slow"}

        assert client.post("/api/network/policies", json=payload).status_code == 201
        response = client.post("/api/network/policies", json=payload)

        assert response.status_code == 409
        assert response.json()["error_code"] == "duplicate_id"

    def test_invalid_policy_params(self, client):
        response = client.post("/api/network/policies", json={
            "kind": "mock-response",
            "params": {"url_pattern": "/api", "status": 1000},
        })

        assert response.status_code == 400
        assert response.json()["error_code"] == "invalid_params"

    def test_unknown_policy_kind(self, client):
        response = client.post("/api/network/policies", json={"kind": "teleport", "params": {}})

        assert response.status_code == 422

    def test_policies_are_scoped_by_context(self, client):
        client.post("/api/network/policies", json={
            "context_id": "checkout",
            "kind": "throttle",
            "params": {"url_pattern": "/"},
        })

        assert client.get("/api/network/policies").json()["count"] == 0
        assert client.get("/api/network/policies", params={"context_id": "checkout"}).json()["count"] == 1

    def test_resolution_config(self, client, interception_service):
        response = client.post("/api/network/resolution-config", json={"priority": 7})

        assert response.status_code == 200
        assert response.json()["priority"] == 7
        assert interception_service.get_session("default").priority_tie_break == 7

    def test_logs_and_clear(self, client, interception_service):
        client.post("/api/network/resolution-config", json={"priority": 0})
        audit_log = interception_service.get_session("default").audit_log
        audit_log.aborted.append(AbortedEntry(
            request_id="r1", url="https://example.com/logo.png", method="GET", reason="blocked",
        ))
        audit_log.failures.append(FailureEntry(kind=FailureKind.RESOLUTION_TIMEOUT, message="late"))

        blocked = client.get("/api/network/blocked-requests").json()
        failures = client.get("/api/network/failures").json()

        assert blocked["count"] == 1
        assert blocked["entries"][0]["url"] == "https://example.com/logo.png"
        assert failures["entries"][0]["kind"] == "resolution_timeout"
        assert client.get("/api/network/request-log").json()["count"] == 0
        assert client.get("/api/network/response-log").json()["count"] == 0
        assert client.get("/api/network/modified-requests").json()["count"] == 0

        response = client.post("/api/network/clear-logs", json={})

        assert response.status_code == 200
        assert client.get("/api/network/blocked-requests").json()["count"] == 0
        assert client.get("/api/network/failures").json()["count"] == 0

    def test_status(self, client):
        client.post("/api/network/enable-interception", json={"context_id": "ctx-1"})

        response = client.get("/api/network/status", params={"context_id": "ctx-1"})

        assert response.status_code == 200
        data = response.json()
        assert data["state"] == "enabled"
        assert set(data["logs"]) == {"requests", "responses", "aborted", "modified", "failures"}

    def test_status_unknown_context(self, client):
        response = client.get("/api/network/status", params={"context_id": "ghost"})

        assert response.status_code == 404
        assert response.json()["error_code"] == "session_not_found"

    def test_health_lists_sessions(self, client):
        client.post("/api/network/enable-interception", json={})

        data = client.get("/health").json()

        assert data["sessions"] == {"default": "enabled"}
