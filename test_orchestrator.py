"""
Sync Orchestrator Tests

End-to-end pipeline runs against fixtures and the sandbox ERP:
1. Simulation sync stores and pushes every sale, then closes the circuit
2. Re-running a sync never duplicates ERP orders
3. Permanent failures pause the client after three attempts and block retries
4. Production syncs are deferred to the task queue and retried on failure
5. Invalid batches store nothing
"""

import json
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest

from conftest import fudo_client
from connectors.odoo.odoo_models import SALE_ORDER
from core.audit.alerts import AlertDispatcher, AlertSeverity
from core.config import Settings
from core.errors import (
    ClientInactive,
    ClientNotFound,
    ErpWriteFailure,
    SyncEngineError,
    VendorAuthFailure,
    VendorFetchFailure,
)
from core.models.refs import (
    ClientConfig,
    IntegrationHealth,
    LogSource,
    LogStatus,
    RetryJob,
    RetryOperation,
    SyncMode,
    TaskStatus,
    utcnow,
)
from core.storage.state_store import InMemoryStateStore
from pos_adapters.fudo import mapper as fudo_mapper
from pos_adapters.fudo.adapter import FudoAdapter
from sync_engine.service import IntegrationService

# Production clients push to a sandbox ERP instead of a live Odoo
SANDBOX_ERP = {"connector_type": "odoo_sandbox"}


def production_client(client_id: str = "c3") -> ClientConfig:
    return fudo_client(client_id, simulation_mode=False, erp_settings=dict(SANDBOX_ERP))


def entries(engine: IntegrationService, client_id: str, source=None, status=None):
    return [
        e for e in engine.get_logs(client_id, limit=None)
        if (source is None or e.source == source) and (status is None or e.status == status)
    ]


class TestSimulationSync:
    """Fudo fixture -> storage -> sandbox Odoo."""

    @pytest.mark.asyncio
    async def test_full_pipeline(self, engine, sandbox):
        engine.register_client(fudo_client("c1"))
        await engine.start()

        result = await engine.trigger_sync("c1")

        assert result.success is True
        assert result.mode == SyncMode.SIMULATION
        assert result.records_processed == 2
        assert result.message == "Simulation sync completed for fudo"
        assert result.erp_result["synced_count"] == 2
        assert sandbox.count(SALE_ORDER) == 2

        stored = engine.get_sales("c1")
        assert {s.id for s in stored} == {"fudo_001", "fudo_002"}
        assert all(s.erp_synced and s.erp_id for s in stored)
        await engine.shutdown()

    @pytest.mark.asyncio
    async def test_log_trail(self, engine):
        engine.register_client(fudo_client("c1"))
        await engine.start()

        await engine.trigger_sync("c1")

        erp_successes = entries(engine, "c1", LogSource.ERP, LogStatus.SUCCESS)
        system_successes = entries(engine, "c1", LogSource.SYSTEM, LogStatus.SUCCESS)
        messages = [e.message for e in engine.get_logs("c1", limit=None)]
        assert len(erp_successes) == 2
        assert len(system_successes) == 1
        assert system_successes[0].message.startswith("Sync completed successfully in")
        assert "Using POS type: fudo, simulation: True" in messages
        assert "Transformed 2 sales records" in messages
        assert "Stored 2 sales records" in messages
        assert entries(engine, "c1", status=LogStatus.ERROR) == []
        await engine.shutdown()

    @pytest.mark.asyncio
    async def test_status_after_success(self, engine):
        engine.register_client(fudo_client("c1"))
        await engine.start()
        await engine.trigger_sync("c1")

        status = await engine.get_integration_status("c1")

        assert status.status == IntegrationHealth.OK
        assert status.circuit_state.is_paused is False
        assert status.stored_sales == 2
        assert status.unsynced_sales == 0
        assert str(status.total_amount) == "7700"
        assert status.last_sync is not None
        assert status.latest_error is None
        await engine.shutdown()

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent(self, engine, sandbox):
        engine.register_client(fudo_client("c1"))
        await engine.start()

        await engine.trigger_sync("c1")
        second = await engine.trigger_sync("c1")

        assert second.success is True
        assert sandbox.count(SALE_ORDER) == 2
        assert len(engine.get_sales("c1")) == 2
        await engine.shutdown()

    @pytest.mark.asyncio
    async def test_bistrosoft_client(self, engine, sandbox):
        engine.register_client(ClientConfig(
            client_id="c5",
            pos_type="bistrosoft",
            pos_settings={"usuario": "api", "password": "secret", "empresa_id": "E7"},
        ))
        await engine.start()

        result = await engine.trigger_sync("c5")

        assert result.success is True
        assert result.records_processed == 2
        assert engine.sales.get_sale("c5", "bs_1001").amount == 8000
        await engine.shutdown()

    @pytest.mark.asyncio
    async def test_status_before_first_sync(self, engine):
        engine.register_client(fudo_client("c1"))
        status = await engine.get_integration_status("c1")
        assert status.status == IntegrationHealth.PENDING
        assert status.recent_logs == []


class TestFailures:
    """Failure boundary: error entries, retry jobs, circuit breaker."""

    @pytest.fixture
    def broken_engine(self, tmp_path, alert_sink):
        """Engine whose fixture directory is empty: every simulation sync fails permanently."""
        empty = tmp_path / "fixtures"
        empty.mkdir()
        settings = Settings(db_path=tmp_path / "pos_sync.db", fixtures_dir=empty)
        engine = IntegrationService.build(
            settings=settings,
            store=InMemoryStateStore(),
            alerts=AlertDispatcher([alert_sink]),
        )
        engine.register_client(fudo_client("c2"))
        return engine

    @pytest.mark.asyncio
    async def test_unknown_client(self, engine):
        with pytest.raises(ClientNotFound):
            await engine.trigger_sync("nope")

    @pytest.mark.asyncio
    async def test_inactive_client_refused(self, engine, sandbox):
        engine.register_client(fudo_client("c1", active=False))
        await engine.start()

        result = await engine.trigger_sync("c1")

        assert result.success is False
        assert result.message == "Integration is inactive for client c1"
        assert engine.integration_logger.get_latest_error("c1").error_code == "CLIENT_INACTIVE"
        assert engine.get_retry_jobs("c1") == []
        assert engine.get_sales("c1") == []
        assert sandbox.count(SALE_ORDER) == 0
        await engine.shutdown()

    @pytest.mark.asyncio
    async def test_missing_fixture_is_permanent(self, broken_engine):
        await broken_engine.start()

        result = await broken_engine.trigger_sync("c2")

        assert result.success is False
        assert "Mock data file not found" in result.message
        error = broken_engine.integration_logger.get_latest_error("c2")
        assert error.error_code == "VENDOR_FETCH_FAILED"
        assert "(permanent)" in error.message
        assert broken_engine.get_retry_jobs("c2") == []
        await broken_engine.shutdown()

    @pytest.mark.asyncio
    async def test_three_failures_pause_client(self, broken_engine, alert_sink):
        await broken_engine.start()

        for _ in range(3):
            await broken_engine.trigger_sync("c2")

        state = broken_engine.integration_logger.get_circuit_state("c2")
        assert state.is_paused is True
        assert len(alert_sink.by_severity(AlertSeverity.CRITICAL)) == 1

        assert broken_engine.retry_queue.enqueue_retry("c2", "sync") is None
        assert broken_engine.get_logs("c2")[0].message == "Retry skipped - circuit breaker is open"

        status = await broken_engine.get_integration_status("c2")
        assert status.status == IntegrationHealth.ERROR
        await broken_engine.shutdown()

    @pytest.mark.asyncio
    async def test_paused_client_refused(self, broken_engine):
        await broken_engine.start()
        for _ in range(3):
            await broken_engine.trigger_sync("c2")

        result = await broken_engine.trigger_sync("c2")

        assert result.success is False
        assert result.message.startswith("Integration paused for client c2")
        assert broken_engine.integration_logger.get_latest_error("c2").error_code == "CIRCUIT_OPEN"
        await broken_engine.shutdown()

    @pytest.mark.asyncio
    async def test_force_bypasses_open_circuit(self, engine):
        engine.register_client(fudo_client("c1"))
        for _ in range(3):
            engine.integration_logger.log_error("c1", LogSource.POS_VENDOR, "fetch", "Timeout")
        await engine.start()

        refused = await engine.trigger_sync("c1")
        forced = await engine.trigger_sync("c1", force=True)

        assert refused.success is False
        assert forced.success is True
        assert not engine.integration_logger.is_paused("c1")
        await engine.shutdown()

    @pytest.mark.asyncio
    async def test_reset_then_sync(self, broken_engine):
        await broken_engine.start()
        for _ in range(3):
            await broken_engine.trigger_sync("c2")

        state = broken_engine.reset_circuit_breaker("c2", "Fixtures restored")

        assert state.is_paused is False
        assert "Fixtures restored" in broken_engine.get_logs("c2")[0].message
        await broken_engine.shutdown()

    @pytest.mark.asyncio
    async def test_unknown_vendor(self, engine):
        engine.register_client(ClientConfig(client_id="c9", pos_type="square"))
        await engine.start()

        result = await engine.trigger_sync("c9")

        assert result.success is False
        assert "Unknown POS vendor: square" in result.message
        assert engine.integration_logger.get_latest_error("c9").error_code == "UNKNOWN_VENDOR"
        assert engine.get_retry_jobs("c9") == []
        await engine.shutdown()

    @pytest.mark.asyncio
    async def test_invalid_batch_stores_nothing(self, tmp_path, fudo_payload):
        fixtures = tmp_path / "fixtures"
        fixtures.mkdir()
        fudo_payload["sales"][1]["total"] = 0
        fudo_payload["sales"][1]["items"][0]["price"] = 0
        (fixtures / "fudo.sample.json").write_text(json.dumps(fudo_payload), encoding="utf-8")
        engine = IntegrationService.build(
            settings=Settings(fixtures_dir=fixtures),
            store=InMemoryStateStore(),
            alerts=AlertDispatcher([]),
        )
        engine.register_client(fudo_client("c1"))
        await engine.start()

        result = await engine.trigger_sync("c1")

        assert result.success is False
        assert "fudo_002" in result.message
        assert engine.get_sales("c1") == []
        assert engine.integration_logger.get_latest_error("c1").error_code == "VALIDATION_FAILED"
        await engine.shutdown()

    @pytest.mark.asyncio
    async def test_partial_erp_failure(self, engine, sandbox):
        def reject_second(method, model, payload):
            if method == "create" and model == SALE_ORDER and payload["client_order_ref"] == "fudo_002":
                return ErpWriteFailure("Odoo error: Missing product", retryable=False)
            return None

        sandbox.fail_on = reject_second
        engine.register_client(fudo_client("c1"))
        await engine.start()

        result = await engine.trigger_sync("c1")

        assert result.success is False
        assert result.message == "Odoo sync partially failed: 1 of 2 sales failed"
        summary = engine.sales.get_sales_summary("c1")
        assert summary["count"] == 2
        assert summary["unsynced"] == 1
        assert engine.sales.get_last_sync("c1") is None
        assert engine.get_retry_jobs("c1") == []
        await engine.shutdown()

    @pytest.mark.asyncio
    async def test_retryable_failure_enqueues_retry(self, engine, sandbox):
        sandbox.reject_credentials = True
        engine.register_client(fudo_client("c1"))

        result = await engine.trigger_sync("c1")

        jobs = engine.get_retry_jobs("c1")
        assert result.success is False
        assert engine.integration_logger.get_latest_error("c1").error_code == "ERP_AUTH_FAILED"
        assert len(jobs) == 1
        assert jobs[0].operation == RetryOperation.SYNC
        assert jobs[0].max_attempts == 3
        assert engine.cancel_client_retries("c1") == 1
        await engine.shutdown()


class TestProductionSync:
    """Deferred syncs through the in-memory task queue."""

    @pytest.mark.asyncio
    async def test_sync_returns_task_id(self, engine, fudo_payload):
        engine.register_client(production_client())
        live_sales = fudo_mapper.map_to_tupa(fudo_payload)
        await engine.start()

        with patch.object(FudoAdapter, "fetch_sales", new=AsyncMock(return_value=live_sales)):
            result = await engine.trigger_sync("c3")
            assert result.success is True
            assert result.mode == SyncMode.PRODUCTION
            assert result.task_id is not None
            assert result.records_processed == 0

            await engine.task_queue.join()

        task = await engine.get_task(result.task_id)
        assert task.status == TaskStatus.COMPLETED
        assert task.attempts == 1
        assert len(engine.get_sales("c3")) == 2
        assert engine.sales.get_unsynced_sales("c3") == []
        assert entries(engine, "c3", LogSource.SYSTEM, LogStatus.SUCCESS)
        await engine.shutdown()

    @pytest.mark.asyncio
    async def test_queued_message(self, engine):
        engine.register_client(production_client())
        await engine.start()

        with patch.object(FudoAdapter, "fetch_sales", new=AsyncMock(return_value=[])):
            result = await engine.trigger_sync("c3")
            assert result.message == "Sync task queued for client c3"
            await engine.task_queue.join()

        assert [t.id for t in await engine.get_tasks("c3")] == [result.task_id]
        await engine.shutdown()

    @pytest.mark.asyncio
    async def test_queued_entry_is_success(self, engine):
        engine.register_client(production_client())
        await engine.start()

        with patch.object(FudoAdapter, "fetch_sales", new=AsyncMock(return_value=[])):
            result = await engine.trigger_sync("c3")
            await engine.task_queue.join()

        queued = [e for e in engine.get_logs("c3", limit=None) if e.message == "Sync task queued for client c3"]
        assert len(queued) == 1
        assert queued[0].status == LogStatus.SUCCESS
        assert queued[0].source == LogSource.SYSTEM
        assert queued[0].details == {"task_id": result.task_id}
        await engine.shutdown()

    @pytest.mark.asyncio
    async def test_failed_task_schedules_retry(self, engine):
        engine.register_client(production_client())
        await engine.start()
        outage = AsyncMock(side_effect=VendorFetchFailure("fudo API error 503: busy", 503))

        with patch.object(FudoAdapter, "fetch_sales", new=outage):
            result = await engine.trigger_sync("c3")
            await engine.task_queue.join()
            await engine.retry_queue.join()

        task = await engine.get_task(result.task_id)
        assert task.status == TaskStatus.FAILED
        assert "fudo API error 503" in task.error_message

        # First retry ran immediately and failed; the next one waits 10s
        jobs = engine.get_retry_jobs("c3")
        assert len(jobs) == 1
        assert jobs[0].attempt == 2
        assert jobs[0].backoff_ms == 10_000
        assert engine.integration_logger.get_circuit_state("c3").consecutive_failures == 2
        await engine.shutdown()


class TestRetryHandlers:
    """Handlers the orchestrator registers on the retry queue."""

    def make_job(self, client_id: str, operation: RetryOperation) -> RetryJob:
        return RetryJob(id=f"retry_{client_id}", client_id=client_id, operation=operation, next_retry_at=utcnow())

    @pytest.mark.asyncio
    async def test_retry_sync_runs_pipeline(self, engine, sandbox):
        engine.register_client(fudo_client("c1"))
        result = await engine.orchestrator.retry_sync(self.make_job("c1", RetryOperation.SYNC))
        assert result.success is True
        assert sandbox.count(SALE_ORDER) == 2

    @pytest.mark.asyncio
    async def test_retry_sync_raises_on_failure(self, engine, sandbox):
        sandbox.reject_credentials = True
        engine.register_client(fudo_client("c1"))
        with pytest.raises(SyncEngineError):
            await engine.orchestrator.retry_sync(self.make_job("c1", RetryOperation.SYNC))
        # Retry executions never schedule further retries themselves
        assert engine.get_retry_jobs("c1") == []

    @pytest.mark.asyncio
    async def test_retry_auth(self, engine):
        engine.register_client(fudo_client("c1"))
        job = self.make_job("c1", RetryOperation.AUTH)

        with patch.object(FudoAdapter, "validate_connection", new=AsyncMock(return_value=True)):
            assert await engine.orchestrator.retry_auth(job) is True
        with patch.object(FudoAdapter, "validate_connection", new=AsyncMock(return_value=False)):
            with pytest.raises(VendorAuthFailure):
                await engine.orchestrator.retry_auth(job)

    @pytest.mark.asyncio
    async def test_retry_fetch_uses_default_window(self, engine, fudo_payload):
        engine.register_client(fudo_client("c1", sync_frequency_minutes=30))
        fetch = AsyncMock(return_value=fudo_mapper.map_to_tupa(fudo_payload))

        with patch.object(FudoAdapter, "fetch_sales", new=fetch):
            sales = await engine.orchestrator.retry_fetch(self.make_job("c1", RetryOperation.FETCH))

        window = fetch.await_args.args[0]
        assert len(sales) == 2
        assert window.end - window.start == timedelta(minutes=30)
        assert engine.get_sales("c1") == []

    @pytest.mark.asyncio
    async def test_handlers_refuse_inactive_client(self, engine):
        engine.register_client(fudo_client("c1", active=False))
        with pytest.raises(ClientInactive):
            await engine.orchestrator.retry_auth(self.make_job("c1", RetryOperation.AUTH))
        with pytest.raises(ClientInactive):
            await engine.orchestrator.retry_fetch(self.make_job("c1", RetryOperation.FETCH))

    def test_default_window_starts_at_last_sync(self, engine):
        config = fudo_client("c1")
        last = utcnow() - timedelta(hours=5)
        engine.sales.set_last_sync("c1", last)

        window = engine.orchestrator.default_window(config)

        assert window.start == last
        assert window.end > last


class TestSeededDatabase:
    """Demo clients on the SQLite store, across engine restarts."""

    @pytest.mark.asyncio
    async def test_seed_then_sync_both_vendors(self, tmp_path):
        from scripts.seed_clients import seed

        db_path = tmp_path / "pos_sync.db"
        assert seed(db_path) == ["c1", "c2"]
        assert seed(db_path) == []

        engine = IntegrationService.build(settings=Settings(db_path=db_path), alerts=AlertDispatcher([]))
        await engine.start()
        results = [await engine.trigger_sync(client_id) for client_id in ("c1", "c2")]
        await engine.shutdown()

        assert [r.success for r in results] == [True, True]
        assert set(engine.integration_logger.get_all_circuit_states()) == {"c1", "c2"}

        reopened = IntegrationService.build(settings=Settings(db_path=db_path), alerts=AlertDispatcher([]))
        assert len(reopened.get_sales("c2")) == 2
        assert reopened.sales.get_last_sync("c1") is not None
        assert reopened.integration_logger.get_all_logs(limit=1)[0].client_id == "c2"
