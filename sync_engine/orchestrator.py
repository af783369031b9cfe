"""Sync orchestrator: the per-client POS -> storage -> ERP pipeline.

Simulation clients run synchronously against the vendor fixture and the
sandbox ERP. Production clients are deferred to the task queue; the task
worker (``process_task``) runs the same pipeline with a live fetch.

Pipeline steps always run in order: fetch -> validate -> store -> ERP push.
Failures stop at this boundary: they become error log entries (which
drive the circuit breaker) and, when retryable, retry jobs.
"""

import time
from datetime import timedelta
from pathlib import Path
from typing import Callable, List, Optional

from connectors.odoo.odoo_service import OdooSyncService
from core.audit.events import IntegrationLogger
from core.errors import (
    CircuitOpen,
    ClientInactive,
    ErpWriteFailure,
    SyncEngineError,
    UnexpectedSyncError,
    VendorAuthFailure,
)
from core.models.canonical import CanonicalSale, ensure_valid_sales
from core.models.refs import (
    ClientConfig,
    DateRange,
    LogOperation,
    LogSource,
    RetryJob,
    RetryOperation,
    SyncMode,
    SyncResult,
    SyncTask,
    TaskType,
    utcnow,
)
from core.observability.logging import get_logger, with_correlation
from core.storage.clients import ClientConfigStore
from core.storage.sales import SalesStore
from pos_adapters import POSAdapter, get_adapter
from pos_adapters.fixtures import load_fixture
from sync_engine.retry_queue import RetryQueue
from sync_engine.task_queue import TaskQueue

logger = get_logger(__name__)


class SyncOrchestrator:
    """Runs client syncs and owns the failure boundary.

    Collaborators are injected so each engine (and each test) has its own
    logger, queues and storage.
    """

    def __init__(
        self,
        clients: ClientConfigStore,
        sales: SalesStore,
        integration_logger: IntegrationLogger,
        retry_queue: RetryQueue,
        task_queue: TaskQueue,
        erp_service_for: Callable[[ClientConfig], OdooSyncService],
        fixtures_dir: Optional[Path] = None,
        retry_max_attempts: int = 3,
    ):
        self.clients = clients
        self.sales = sales
        self.integration_logger = integration_logger
        self.retry_queue = retry_queue
        self.task_queue = task_queue
        self.erp_service_for = erp_service_for
        self.fixtures_dir = fixtures_dir
        self.retry_max_attempts = retry_max_attempts

        task_queue.register_handler(TaskType.SALES_SYNC, self.process_task)
        retry_queue.register_handler(RetryOperation.SYNC, self.retry_sync)
        retry_queue.register_handler(RetryOperation.AUTH, self.retry_auth)
        retry_queue.register_handler(RetryOperation.FETCH, self.retry_fetch)

    # =========================================================================
    # Entry points
    # =========================================================================

    async def sync_client_pos(self, client_id: str, force: bool = False) -> SyncResult:
        """Sync one client.

        Simulation: runs the whole pipeline before returning.
        Production: enqueues a ``sales.sync`` task and returns its id.
        ``force`` bypasses an open circuit breaker.
        """
        return await self._execute(client_id, force=force, defer_production=True, schedule_retry=True)

    async def process_task(self, task: SyncTask) -> SyncResult:
        """Task queue handler. Raises so the task ends up ``failed``."""
        result = await self._execute(
            task.client_id,
            force=False,
            defer_production=False,
            schedule_retry=True,
            task_id=task.id,
        )
        if not result.success:
            raise SyncEngineError(result.message)
        return result

    async def retry_sync(self, job: RetryJob) -> SyncResult:
        """Retry handler for ``sync``. Never schedules further retries itself."""
        result = await self._execute(
            job.client_id,
            force=False,
            defer_production=False,
            schedule_retry=False,
            retry_attempt=job.attempt,
        )
        if not result.success:
            raise SyncEngineError(result.message)
        return result

    async def retry_auth(self, job: RetryJob) -> bool:
        """Retry handler for ``auth``: re-validate vendor credentials."""
        config = self._active_config(job.client_id)
        adapter = get_adapter(config.pos_type, config)
        try:
            if not await adapter.validate_connection():
                raise VendorAuthFailure(f"{config.pos_type} rejected the configured credentials")
        finally:
            await adapter.close()

        self.integration_logger.log_success(
            job.client_id,
            LogSource.POS_VENDOR,
            LogOperation.AUTH.value,
            f"{config.pos_type} credentials validated",
            provider=config.pos_type,
            retry_attempt=job.attempt,
        )
        return True

    async def retry_fetch(self, job: RetryJob) -> List[CanonicalSale]:
        """Retry handler for ``fetch``: re-fetch the default window without storing."""
        config = self._active_config(job.client_id)
        adapter = get_adapter(config.pos_type, config)
        try:
            sales = await adapter.fetch_sales(self.default_window(config))
        finally:
            await adapter.close()

        self.integration_logger.log_success(
            job.client_id,
            LogSource.POS_VENDOR,
            LogOperation.FETCH.value,
            f"Fetched {len(sales)} sales from {config.pos_type}",
            provider=config.pos_type,
            retry_attempt=job.attempt,
        )
        return sales

    def _active_config(self, client_id: str) -> ClientConfig:
        config = self.clients.require(client_id)
        if not config.active:
            raise ClientInactive(client_id)
        return config

    def default_window(self, config: ClientConfig) -> DateRange:
        """[last successful sync or now - sync_frequency, now]."""
        now = utcnow()
        start = self.sales.get_last_sync(config.client_id)
        if start is None or start >= now:
            start = now - timedelta(minutes=config.sync_frequency_minutes)
        return DateRange(start=start, end=now)

    # =========================================================================
    # Pipeline
    # =========================================================================

    async def _execute(
        self,
        client_id: str,
        force: bool,
        defer_production: bool,
        schedule_retry: bool,
        task_id: Optional[str] = None,
        retry_attempt: Optional[int] = None,
    ) -> SyncResult:
        started = time.monotonic()
        mode = SyncMode.SIMULATION

        with with_correlation(client_id=client_id, task_id=task_id, operation="sync"):
            try:
                self._system(client_id, "info", "Starting POS sync process", retry_attempt=retry_attempt)

                circuit = self.integration_logger.get_circuit_state(client_id)
                if circuit.is_paused and not force:
                    raise CircuitOpen(client_id, circuit.pause_reason)

                config = self._active_config(client_id)
                mode = SyncMode.SIMULATION if config.simulation_mode else SyncMode.PRODUCTION
                adapter = get_adapter(config.pos_type, config)

                self.integration_logger.log_info(
                    client_id,
                    LogSource.POS_VENDOR,
                    LogOperation.SYNC.value,
                    f"Using POS type: {config.pos_type}, simulation: {config.simulation_mode}",
                    provider=config.pos_type,
                )

                try:
                    if config.simulation_mode:
                        raw = await self._load_fixture(config, adapter)
                        sales = self._map(config, adapter, raw)
                    elif defer_production:
                        return await self._enqueue(config)
                    else:
                        sales = await self._fetch(config, adapter)
                finally:
                    await adapter.close()

                return await self._ingest(config, sales, mode, started, task_id, retry_attempt)

            except SyncEngineError as e:
                return self._fail(client_id, e, mode, started, task_id, schedule_retry, retry_attempt)
            except Exception as e:
                logger.exception(f"Unexpected error syncing client {client_id}")
                error = UnexpectedSyncError(f"Unexpected sync error: {type(e).__name__}: {e}")
                return self._fail(client_id, error, mode, started, task_id, schedule_retry, retry_attempt)

    async def _load_fixture(self, config: ClientConfig, adapter: POSAdapter):
        self.integration_logger.log_info(
            config.client_id,
            LogSource.POS_VENDOR,
            LogOperation.FETCH.value,
            f"Loading simulation data from {adapter.fixture_name}",
            provider=config.pos_type,
        )
        return await load_fixture(adapter.fixture_name, self.fixtures_dir)

    def _map(self, config: ClientConfig, adapter: POSAdapter, raw) -> List[CanonicalSale]:
        sales = adapter.map_to_tupa(raw)
        self.integration_logger.log_info(
            config.client_id,
            LogSource.POS_VENDOR,
            LogOperation.MAP.value,
            f"Transformed {len(sales)} sales records",
            provider=config.pos_type,
        )
        return sales

    async def _fetch(self, config: ClientConfig, adapter: POSAdapter) -> List[CanonicalSale]:
        window = self.default_window(config)
        sales = await adapter.fetch_sales(window)
        self.integration_logger.log_info(
            config.client_id,
            LogSource.POS_VENDOR,
            LogOperation.FETCH.value,
            f"Fetched {len(sales)} sales from {window.start.isoformat()} to {window.end.isoformat()}",
            provider=config.pos_type,
        )
        return sales

    async def _enqueue(self, config: ClientConfig) -> SyncResult:
        task_id = await self.task_queue.enqueue(config.client_id, TaskType.SALES_SYNC)
        message = f"Sync task queued for client {config.client_id}"
        self._system(config.client_id, "success", message, details={"task_id": task_id})
        return SyncResult(
            success=True,
            message=message,
            client_id=config.client_id,
            mode=SyncMode.PRODUCTION,
            task_id=task_id,
        )

    async def _ingest(
        self,
        config: ClientConfig,
        sales: List[CanonicalSale],
        mode: SyncMode,
        started: float,
        task_id: Optional[str],
        retry_attempt: Optional[int],
    ) -> SyncResult:
        client_id = config.client_id

        # Nothing is stored unless every sale in the batch is valid
        ensure_valid_sales(sales)

        self.sales.store_parsed_sales(client_id, sales)
        self._system(client_id, "info", f"Stored {len(sales)} sales records")

        erp_summary = None
        if sales:
            erp_summary = await self._push_to_erp(config, sales)

        self.sales.set_last_sync(client_id)

        duration_ms = (time.monotonic() - started) * 1000
        self._system(
            client_id,
            "success",
            f"Sync completed successfully in {duration_ms:.0f}ms",
            duration_ms=duration_ms,
            retry_attempt=retry_attempt,
            details={"records": len(sales), "odoo_result": erp_summary},
        )
        return SyncResult(
            success=True,
            message=f"{mode.value.capitalize()} sync completed for {config.pos_type}",
            client_id=client_id,
            mode=mode,
            task_id=task_id,
            records_processed=len(sales),
            erp_result=erp_summary,
        )

    async def _push_to_erp(self, config: ClientConfig, sales: List[CanonicalSale]) -> dict:
        service = self.erp_service_for(config)
        self.integration_logger.log_info(
            config.client_id,
            LogSource.ERP,
            LogOperation.ERP_SYNC.value,
            f"Starting Odoo synchronization of {len(sales)} sales",
            provider=service.provider,
        )

        result = await service.sync_sales_to_odoo(config.client_id, sales)
        if not result.success:
            raise ErpWriteFailure(
                f"Odoo sync partially failed: {result.failed_count} of {len(sales)} sales failed",
                retryable=result.any_retryable,
                details=result.summary(),
            )
        return result.summary()

    def _fail(
        self,
        client_id: str,
        error: SyncEngineError,
        mode: SyncMode,
        started: float,
        task_id: Optional[str],
        schedule_retry: bool,
        retry_attempt: Optional[int],
    ) -> SyncResult:
        duration_ms = (time.monotonic() - started) * 1000
        permanence = "" if error.retryable else " (permanent)"
        self._system(
            client_id,
            "error",
            f"Sync failed after {duration_ms:.0f}ms{permanence}: {error.message}",
            duration_ms=duration_ms,
            retry_attempt=retry_attempt,
            error_code=error.code,
            details=error.to_dict(),
        )

        if error.retryable and schedule_retry:
            self.retry_queue.enqueue_retry(
                client_id,
                RetryOperation.SYNC,
                max_attempts=self.retry_max_attempts,
                initial_error=error.message,
            )

        return SyncResult(
            success=False,
            message=error.message,
            client_id=client_id,
            mode=mode,
            task_id=task_id,
        )

    def _system(self, client_id: str, status: str, message: str, **kwargs) -> None:
        log = getattr(self.integration_logger, f"log_{status}")
        log(client_id, LogSource.SYSTEM, LogOperation.SYNC.value, message, **kwargs)
