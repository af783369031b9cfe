"""Sales sync activities.

Runs the orchestrator pipeline for a SyncTask inside a Temporal worker.
The worker process owns one IntegrationService; the activity only maps
the workflow input onto a SyncTask and reports the outcome.
"""

from dataclasses import dataclass
from typing import Optional

from temporalio import activity
from temporalio.exceptions import ApplicationError

from core.models.refs import SyncTask, TaskStatus, TaskType
from core.observability.logging import get_logger, with_correlation
from sync_engine.service import IntegrationService

logger = get_logger(__name__)


@dataclass
class RunSalesSyncInput:
    """Input for run_sales_sync activity.

    Attributes:
        task_id: SyncTask id (also the workflow id)
        client_id: Client to sync
        task_type: SyncTask type value, e.g. "sales.sync"
    """
    task_id: str
    client_id: str
    task_type: str = TaskType.SALES_SYNC.value


@dataclass
class RunSalesSyncOutput:
    """Output of run_sales_sync activity."""
    task_id: str
    client_id: str
    success: bool
    message: str
    records_processed: int = 0
    erp_synced: Optional[int] = None


class SyncActivities:
    """Activities bound to the worker's engine instance."""

    def __init__(self, service: IntegrationService):
        self.service = service

    @activity.defn(name="run_sales_sync")
    async def run_sales_sync(self, input: RunSalesSyncInput) -> RunSalesSyncOutput:
        """Run one sales.sync task.

        Failures are already logged (and handed to the retry queue) by the
        orchestrator, so they are raised as non-retryable here.
        """
        task = SyncTask(
            id=input.task_id,
            client_id=input.client_id,
            task_type=TaskType(input.task_type),
            status=TaskStatus.PROCESSING,
            attempts=activity.info().attempt,
        )

        with with_correlation(client_id=task.client_id, task_id=task.id):
            logger.info(f"Running {task.task_type.value} for client {task.client_id}")
            try:
                result = await self.service.orchestrator.process_task(task)
            except Exception as e:
                raise ApplicationError(str(e), type=type(e).__name__, non_retryable=True) from e

        erp_synced = (result.erp_result or {}).get("synced_count")
        return RunSalesSyncOutput(
            task_id=task.id,
            client_id=task.client_id,
            success=result.success,
            message=result.message,
            records_processed=result.records_processed,
            erp_synced=erp_synced,
        )
