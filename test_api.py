"""
API Tests

Drives the FastAPI app over an injected engine (in-memory state, sandbox ERP).
"""

import pytest
from fastapi.testclient import TestClient

from api.server import create_app
from core.models.refs import LogSource

FUDO_CLIENT = {
    "name": "Café Central",
    "pos_type": "fudo",
    "simulation_mode": True,
    "pos_settings": {"api_key": "test-key", "store_id": "42"},
}


@pytest.fixture
def client(engine):
    with TestClient(create_app(engine)) as test_client:
        yield test_client


@pytest.fixture
def registered(client):
    response = client.put("/integrations/c1", json=FUDO_CLIENT)
    assert response.status_code == 200
    return client


class TestHealth:
    """Probes and the engine summary."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["services"]["task_queue"] == "memory"
        assert data["paused_clients"] == 0

    def test_degraded_when_client_paused(self, client, engine):
        for _ in range(3):
            engine.integration_logger.log_error("c1", LogSource.SYSTEM, "sync", "failed")
        data = client.get("/health").json()
        assert data["status"] == "degraded"
        assert data["paused_clients"] == 1

    def test_probes(self, client):
        assert client.get("/ready").json() == {"status": "ready"}
        assert client.get("/live").json() == {"status": "alive"}


class TestClients:
    """Client configuration endpoints."""

    def test_upsert_and_read(self, registered):
        data = registered.get("/integrations/c1").json()
        assert data["client_id"] == "c1"
        assert data["pos_type"] == "fudo"
        assert data["sync_frequency_minutes"] == 60

        listed = registered.get("/integrations").json()
        assert [c["client_id"] for c in listed] == ["c1"]

    def test_invalid_frequency_rejected(self, client):
        response = client.put("/integrations/c1", json={**FUDO_CLIENT, "sync_frequency_minutes": 1})
        assert response.status_code == 422

    def test_unknown_client_404(self, client):
        response = client.get("/integrations/nope")
        assert response.status_code == 404
        assert response.json()["code"] == "CLIENT_NOT_FOUND"

    def test_list_adapters(self, client):
        keys = {a["key"] for a in client.get("/integrations/adapters").json()}
        assert {"fudo", "bistrosoft"} <= keys


class TestSync:
    """Trigger, status and logs."""

    def test_simulation_sync(self, registered, sandbox):
        response = registered.post("/integrations/c1/sync")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["mode"] == "simulation"
        assert data["records_processed"] == 2
        assert sandbox.count("sale.order") == 2

        sales = registered.get("/integrations/c1/sales").json()
        assert {s["id"] for s in sales} == {"fudo_001", "fudo_002"}
        assert all(s["erp_synced"] for s in sales)

    def test_sync_unknown_client(self, client):
        assert client.post("/integrations/nope/sync").status_code == 404

    def test_status(self, registered):
        assert registered.get("/integrations/c1/status").json()["status"] == "pending"

        registered.post("/integrations/c1/sync")
        data = registered.get("/integrations/c1/status").json()

        assert data["status"] == "ok"
        assert data["stored_sales"] == 2
        assert data["unsynced_sales"] == 0
        assert data["circuit_state"]["is_paused"] is False
        assert data["recent_logs"]

    def test_logs_newest_first(self, registered):
        registered.post("/integrations/c1/sync")

        logs = registered.get("/integrations/c1/logs", params={"limit": 3}).json()

        assert len(logs) == 3
        assert logs[0]["status"] == "success"
        assert logs[0]["source"] == "system"
        assert logs[0]["timestamp"] >= logs[1]["timestamp"]

    def test_export_oldest_first(self, registered):
        registered.post("/integrations/c1/sync")

        exported = registered.get("/integrations/c1/logs/export").json()

        assert exported[0]["message"] == "Starting POS sync process"
        assert exported[-1]["message"].startswith("Sync completed successfully")

    def test_unknown_task_404(self, client):
        assert client.get("/integrations/tasks/task_missing").status_code == 404


class TestCircuitBreaker:
    """Paused clients and manual reset."""

    def test_paused_sync_and_reset(self, registered, engine):
        for _ in range(3):
            engine.integration_logger.log_error("c1", LogSource.POS_VENDOR, "fetch", "Timeout")

        refused = registered.post("/integrations/c1/sync").json()
        assert refused["success"] is False
        assert registered.get("/integrations/c1/status").json()["status"] == "error"

        state = registered.post("/integrations/c1/circuit/reset", json={"reason": "Vendor back online"}).json()
        assert state["is_paused"] is False
        assert state["consecutive_failures"] == 0

        assert registered.post("/integrations/c1/sync").json()["success"] is True

    def test_forced_sync(self, registered, engine):
        for _ in range(3):
            engine.integration_logger.log_error("c1", LogSource.POS_VENDOR, "fetch", "Timeout")

        data = registered.post("/integrations/c1/sync", params={"force": "true"}).json()

        assert data["success"] is True

    def test_reset_without_body(self, registered):
        response = registered.post("/integrations/c1/circuit/reset")
        assert response.status_code == 200
        logs = registered.get("/integrations/c1/logs").json()
        assert "Manual reset" in logs[0]["message"]


class TestRetryJobs:
    """Listing and cancelling retry jobs."""

    def test_list_and_cancel(self, registered, engine):
        # Enqueued off the app loop: persisted but not scheduled
        job_id = engine.retry_queue.enqueue_retry("c1", "auth")

        jobs = registered.get("/integrations/c1/retry-jobs").json()
        assert [j["id"] for j in jobs] == [job_id]
        assert jobs[0]["operation"] == "auth"
        assert registered.get("/health").json()["pending_retry_jobs"] == 1

        assert registered.delete(f"/integrations/retry-jobs/{job_id}").json() == {"cancelled": 1}
        assert registered.get("/integrations/c1/retry-jobs").json() == []

    def test_cancel_unknown_job(self, client):
        assert client.delete("/integrations/retry-jobs/retry_missing").status_code == 404

    def test_cancel_client_retries(self, registered):
        data = registered.delete("/integrations/c1/retry-jobs").json()
        assert data == {"cancelled": 0}
