"""IntegrationService: the engine facade used by the API, scripts and workers.

Wires one instance of every collaborator (storage, integration logger,
retry queue, task queue, orchestrator) and exposes the narrow operations
collaborators need: trigger a sync, read status, read/export logs and
reset the circuit breaker.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

from connectors.odoo.sandbox import SandboxOdooClient
from core.audit.alerts import AlertDispatcher
from core.audit.events import IntegrationLogger
from core.config import Settings, get_settings
from core.models.refs import (
    CircuitState,
    ClientConfig,
    IntegrationHealth,
    IntegrationLogEntry,
    IntegrationStatus,
    LogStatus,
    RetryJob,
    SyncResult,
    SyncTask,
)
from core.observability.logging import get_logger
from core.storage.clients import ClientConfigStore
from core.storage.sales import SalesStore
from core.storage.state_store import StateStore, create_state_store
from pos_adapters import list_adapters
from sync_engine.erp_services import ErpServiceProvider
from sync_engine.orchestrator import SyncOrchestrator
from sync_engine.retry_queue import RetryQueue
from sync_engine.task_queue import InMemoryTaskQueue, TaskQueue, TemporalTaskQueue

logger = get_logger(__name__)


def create_task_queue(settings: Settings) -> TaskQueue:
    backend = settings.task_queue_backend
    if backend == "temporal":
        return TemporalTaskQueue(settings.temporal, retention_hours=settings.task_retention_hours)
    if backend == "memory":
        return InMemoryTaskQueue(retention_hours=settings.task_retention_hours)
    raise ValueError(f"Unknown task queue backend: {backend}. Available: ['memory', 'temporal']")


class IntegrationService:
    """One engine per process (or per test).

    Usage:
        service = IntegrationService.build()
        await service.start()
        result = await service.trigger_sync("c1")
        status = await service.get_integration_status("c1")
        await service.shutdown()
    """

    def __init__(
        self,
        settings: Settings,
        store: StateStore,
        clients: ClientConfigStore,
        sales: SalesStore,
        integration_logger: IntegrationLogger,
        retry_queue: RetryQueue,
        task_queue: TaskQueue,
        erp_services: ErpServiceProvider,
    ):
        self.settings = settings
        self.store = store
        self.clients = clients
        self.sales = sales
        self.integration_logger = integration_logger
        self.retry_queue = retry_queue
        self.task_queue = task_queue
        self.erp_services = erp_services
        self.orchestrator = SyncOrchestrator(
            clients=clients,
            sales=sales,
            integration_logger=integration_logger,
            retry_queue=retry_queue,
            task_queue=task_queue,
            erp_service_for=erp_services,
            fixtures_dir=settings.fixtures_dir,
            retry_max_attempts=settings.retry_max_attempts,
        )
        self._started = False

    @classmethod
    def build(
        cls,
        settings: Optional[Settings] = None,
        store: Optional[StateStore] = None,
        task_queue: Optional[TaskQueue] = None,
        alerts: Optional[AlertDispatcher] = None,
        sandbox_client: Optional[SandboxOdooClient] = None,
    ) -> "IntegrationService":
        """Assemble an engine from settings; every part can be overridden."""
        settings = settings or get_settings()
        store = store or create_state_store(settings.db_path)

        clients = ClientConfigStore(store)
        sales = SalesStore(store)
        integration_logger = IntegrationLogger(
            store,
            max_entries=settings.log_window,
            failure_threshold=settings.circuit_failure_threshold,
            alerts=alerts,
        )
        retry_queue = RetryQueue(
            integration_logger,
            store,
            retention_hours=settings.retry_retention_hours,
            cleanup_interval_seconds=settings.retry_cleanup_interval_seconds,
        )
        erp_services = ErpServiceProvider(settings.odoo, integration_logger, sales, sandbox_client)

        return cls(
            settings=settings,
            store=store,
            clients=clients,
            sales=sales,
            integration_logger=integration_logger,
            retry_queue=retry_queue,
            task_queue=task_queue or create_task_queue(settings),
            erp_services=erp_services,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        if self._started:
            return
        await self.retry_queue.start()
        self._started = True
        logger.info("Integration service started")

    async def shutdown(self) -> None:
        await self.retry_queue.shutdown()
        await self.task_queue.shutdown()
        await self.erp_services.close()
        self._started = False
        logger.info("Integration service stopped")

    # =========================================================================
    # Client configuration
    # =========================================================================

    def register_client(self, config: ClientConfig) -> ClientConfig:
        return self.clients.save(config)

    def get_client(self, client_id: str) -> ClientConfig:
        """Raises ClientNotFound."""
        return self.clients.require(client_id)

    def list_clients(self, active_only: bool = False) -> List[ClientConfig]:
        return self.clients.list(active_only=active_only)

    # =========================================================================
    # Collaborator operations
    # =========================================================================

    async def trigger_sync(self, client_id: str, force: bool = False) -> SyncResult:
        """Raises ClientNotFound for an unknown client; every other failure is in the result."""
        self.clients.require(client_id)
        return await self.orchestrator.sync_client_pos(client_id, force=force)

    async def get_integration_status(self, client_id: str, recent: int = 10) -> IntegrationStatus:
        config = self.clients.require(client_id)
        circuit = self.integration_logger.get_circuit_state(client_id)
        latest_error = self.integration_logger.get_latest_error(client_id)
        pending_tasks = await self.task_queue.pending_count(client_id)
        summary = self.sales.get_sales_summary(client_id)
        recent_logs = self.integration_logger.get_logs_for_client(client_id, limit=recent)

        if circuit.is_paused or (recent_logs and recent_logs[0].status == LogStatus.ERROR):
            health = IntegrationHealth.ERROR
        elif pending_tasks or not recent_logs:
            health = IntegrationHealth.PENDING
        else:
            health = IntegrationHealth.OK

        return IntegrationStatus(
            client_id=client_id,
            pos_type=config.pos_type,
            simulation_mode=config.simulation_mode,
            last_sync=self.sales.get_last_sync(client_id),
            status=health,
            latest_error=latest_error.message if latest_error else None,
            circuit_state=circuit,
            pending_tasks=pending_tasks,
            retry_jobs=len(self.retry_queue.get_jobs_for_client(client_id)),
            stored_sales=summary["count"],
            unsynced_sales=summary["unsynced"],
            total_amount=summary["total_amount"],
            recent_logs=recent_logs,
        )

    def get_logs(self, client_id: str, limit: int = 50) -> List[IntegrationLogEntry]:
        return self.integration_logger.get_logs_for_client(client_id, limit=limit)

    def export_logs(self, client_id: Optional[str] = None) -> List[Dict[str, Any]]:
        return self.integration_logger.export_logs(client_id)

    def reset_circuit_breaker(self, client_id: str, reason: str = "Manual reset") -> CircuitState:
        return self.integration_logger.reset_circuit_breaker(client_id, reason)

    async def get_tasks(self, client_id: str) -> List[SyncTask]:
        return await self.task_queue.get_client_tasks(client_id)

    async def get_task(self, task_id: str) -> Optional[SyncTask]:
        return await self.task_queue.get_status(task_id)

    def get_retry_jobs(self, client_id: Optional[str] = None) -> List[RetryJob]:
        if client_id is None:
            return self.retry_queue.get_all_jobs()
        return self.retry_queue.get_jobs_for_client(client_id)

    def cancel_retry_job(self, job_id: str) -> bool:
        return self.retry_queue.cancel_job(job_id)

    def cancel_client_retries(self, client_id: str) -> int:
        return self.retry_queue.cancel_all_jobs_for_client(client_id)

    def list_adapters(self) -> List[Dict[str, Any]]:
        return [registration.to_dict() for registration in list_adapters()]

    def get_sales(self, client_id: str, limit: int = 50):
        return self.sales.get_sales_for_client(client_id, limit=limit)


def build_engine(db_path: Optional[Path] = None) -> IntegrationService:
    """Engine from environment settings, optionally on a different database."""
    settings = get_settings()
    store = create_state_store(db_path or settings.db_path)
    return IntegrationService.build(settings=settings, store=store)
