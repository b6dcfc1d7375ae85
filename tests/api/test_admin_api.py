"""
Tests for the rollout admin API.

Validates:
- Config read, partial update and manual disable
- Request validation (422) and rollout id errors (400)
- Window inspection and the 404 before any outcome
- Routing decision endpoint
- Prometheus exposition
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from rolloutguard.api import build_admin_router


@pytest.fixture
def client(manager):
    app = FastAPI()
    app.include_router(build_admin_router(manager, prefix="/admin"))
    return TestClient(app)


class TestRolloutConfigEndpoints:
    def test_get_unknown_rollout_is_safe_default(self, client):
        response = client.get("/admin/rollouts/checkout")
        assert response.status_code == 200
        assert response.json() == {
            "rollout_id": "checkout",
            "enabled": False,
            "percentage": 0,
            "stop_loss": {
                "error_rate_threshold": 0.05,
                "p95_latency_threshold_ms": 1000.0,
                "enabled": True,
            },
        }

    def test_patch_updates_config(self, client, manager):
        response = client.patch(
            "/admin/rollouts/checkout",
            json={"enabled": True, "percentage": 25, "error_rate_threshold": 0.1},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["enabled"] is True
        assert data["percentage"] == 25
        assert data["stop_loss"]["error_rate_threshold"] == 0.1
        assert manager.get_config("checkout").percentage == 25

    def test_patch_is_partial(self, client):
        client.patch("/admin/rollouts/checkout", json={"enabled": True, "percentage": 10})
        data = client.patch("/admin/rollouts/checkout", json={"percentage": 30}).json()
        assert data["enabled"] is True
        assert data["percentage"] == 30

    def test_patch_clamps_percentage(self, client):
        assert client.patch("/admin/rollouts/checkout", json={"percentage": 150}).json()["percentage"] == 100
        assert client.patch("/admin/rollouts/checkout", json={"percentage": -3}).json()["percentage"] == 0

    @pytest.mark.parametrize(
        "body",
        [
            {"error_rate_threshold": 1.5},
            {"p95_latency_threshold_ms": 0},
            {"unknown_field": True},
            {"percentage": True},
        ],
    )
    def test_patch_rejects_invalid_body(self, client, body):
        assert client.patch("/admin/rollouts/checkout", json=body).status_code == 422

    def test_blank_rollout_id(self, client):
        response = client.get("/admin/rollouts/%20")
        assert response.status_code == 400
        assert response.json()["error"]["error_code"] == "E101"

    def test_disable(self, client):
        client.patch("/admin/rollouts/checkout", json={"enabled": True, "percentage": 50})
        response = client.post("/admin/rollouts/checkout/disable")
        assert response.status_code == 200
        assert response.json()["enabled"] is False
        assert response.json()["percentage"] == 0


class TestWindowEndpoint:
    def test_no_window_yet(self, client):
        response = client.get("/admin/rollouts/checkout/window")
        assert response.status_code == 404
        assert response.json()["error"]["error_code"] == "E905"

    def test_window_after_outcomes(self, client, manager, fake_clock):
        manager.update_config(
            "checkout", {"enabled": True, "percentage": 100, "error_rate_threshold": 1.0}
        )
        manager.record_outcome("checkout", "user-1", success=True, latency_ms=100)
        manager.record_outcome("checkout", "user-2", success=False, latency_ms=300)

        data = client.get("/admin/rollouts/checkout/window").json()
        assert data["request_count"] == 2
        assert data["error_count"] == 1
        assert data["sample_count"] == 2
        assert data["error_rate"] == 0.5
        assert data["p95_latency_ms"] == 300.0
        assert data["window_start_ms"] == fake_clock.now_ms()


class TestDecisionEndpoint:
    def test_decision(self, client):
        client.patch("/admin/rollouts/checkout", json={"enabled": True, "percentage": 50})

        canary = client.get("/admin/rollouts/checkout/decision", params={"identifier": "user-1"}).json()
        assert canary == {
            "rollout_id": "checkout",
            "identifier": "user-1",
            "bucket": 19,
            "verdict": "canary",
        }
        stable = client.get("/admin/rollouts/checkout/decision", params={"identifier": "user-42"}).json()
        assert stable["bucket"] == 87
        assert stable["verdict"] == "stable"

    def test_identifier_required(self, client):
        assert client.get("/admin/rollouts/checkout/decision").status_code == 422


def test_metrics_endpoint(client, manager):
    manager.use_canary("checkout", "user-1")
    response = client.get("/admin/metrics")
    assert response.status_code == 200
    assert "rolloutguard_routing_decisions_total" in response.text
    assert 'verdict="stable"' in response.text
