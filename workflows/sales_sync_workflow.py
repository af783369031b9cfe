"""Sales Sync Workflow.

Durable counterpart of the in-memory task queue: one workflow execution
per SyncTask, with the workflow id equal to the task id.
"""

from dataclasses import dataclass
from datetime import timedelta

from temporalio import workflow
from temporalio.common import RetryPolicy

with workflow.unsafe.imports_passed_through():
    from activities.sync import RunSalesSyncInput, RunSalesSyncOutput


@dataclass
class SalesSyncInput:
    """Input for SalesSyncWorkflow.

    Attributes:
        task_id: SyncTask id
        client_id: Client to sync
        task_type: SyncTask type value
    """
    task_id: str
    client_id: str
    task_type: str = "sales.sync"


@workflow.defn
class SalesSyncWorkflow:
    """Runs the sales sync pipeline for one task.

    Retries are owned by the engine's retry queue, so the activity runs
    exactly once; a failed activity fails the workflow.
    """

    @workflow.run
    async def run(self, input: SalesSyncInput) -> dict:
        workflow.logger.info(f"Starting sales sync {input.task_id} for client {input.client_id}")

        result: RunSalesSyncOutput = await workflow.execute_activity(
            "run_sales_sync",
            RunSalesSyncInput(
                task_id=input.task_id,
                client_id=input.client_id,
                task_type=input.task_type,
            ),
            start_to_close_timeout=timedelta(minutes=10),
            retry_policy=RetryPolicy(maximum_attempts=1),
            result_type=RunSalesSyncOutput,
        )

        workflow.logger.info(f"Sales sync {input.task_id} finished: {result.message}")
        return {
            "task_id": result.task_id,
            "client_id": result.client_id,
            "success": result.success,
            "message": result.message,
            "records_processed": result.records_processed,
            "erp_synced": result.erp_synced,
        }
