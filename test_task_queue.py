"""
Task Queue Tests

Validates the deferred-sync backends:
1. In-memory: pending -> processing -> completed | failed, attempts counted
2. Handler failures and missing handlers end the task as failed
3. Temporal: one workflow per task, status from the workflow execution
4. The run_sales_sync activity maps the workflow input onto the pipeline
5. Finished tasks are evicted after the retention period; closed workflows are not described again
"""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from temporalio.client import WorkflowExecutionStatus
from temporalio.exceptions import ApplicationError
from temporalio.testing import ActivityEnvironment

from activities.sync import RunSalesSyncInput, SyncActivities
from core.config import Settings, TemporalSettings
from core.models.refs import SyncMode, SyncResult, TaskStatus, TaskType, utcnow
from sync_engine.service import create_task_queue
from sync_engine.task_queue import InMemoryTaskQueue, TemporalTaskQueue
from workflows.sales_sync_workflow import SalesSyncInput


class TestInMemoryTaskQueue:
    """Asyncio-backed queue."""

    @pytest.mark.asyncio
    async def test_enqueue_returns_pending_task(self):
        queue = InMemoryTaskQueue(start_delay=10)
        queue.register_handler(TaskType.SALES_SYNC, AsyncMock())

        task_id = await queue.enqueue("c1")

        task = await queue.get_status(task_id)
        assert task.status == TaskStatus.PENDING
        assert task.attempts == 0
        assert await queue.pending_count("c1") == 1
        await queue.shutdown()

    @pytest.mark.asyncio
    async def test_completed_task(self):
        queue = InMemoryTaskQueue()
        handler = AsyncMock(return_value=None)
        queue.register_handler(TaskType.SALES_SYNC, handler)

        task_id = await queue.enqueue("c1")
        await queue.join()

        task = await queue.get_status(task_id)
        assert task.status == TaskStatus.COMPLETED
        assert task.attempts == 1
        assert task.started_at is not None
        assert task.completed_at >= task.started_at
        assert handler.await_args.args[0].id == task_id
        assert await queue.pending_count("c1") == 0

    @pytest.mark.asyncio
    async def test_processing_while_handler_runs(self):
        queue = InMemoryTaskQueue()
        release = asyncio.Event()

        async def slow_handler(task):
            await release.wait()

        queue.register_handler(TaskType.SALES_SYNC, slow_handler)
        task_id = await queue.enqueue("c1")
        await asyncio.sleep(0)

        assert (await queue.get_status(task_id)).status == TaskStatus.PROCESSING
        release.set()
        await queue.join()
        assert (await queue.get_status(task_id)).status == TaskStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_failed_task_is_terminal(self):
        queue = InMemoryTaskQueue()
        handler = AsyncMock(side_effect=RuntimeError("Odoo is down"))
        queue.register_handler(TaskType.SALES_SYNC, handler)

        task_id = await queue.enqueue("c1")
        await queue.join()

        task = await queue.get_status(task_id)
        assert task.status == TaskStatus.FAILED
        assert task.error_message == "Odoo is down"
        assert task.completed_at is not None
        handler.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_missing_handler(self):
        queue = InMemoryTaskQueue()

        task_id = await queue.enqueue("c1", TaskType.MENU_SYNC)
        await queue.join()

        task = await queue.get_status(task_id)
        assert task.status == TaskStatus.FAILED
        assert "No handler registered" in task.error_message

    @pytest.mark.asyncio
    async def test_tasks_listed_per_client(self):
        queue = InMemoryTaskQueue()
        queue.register_handler(TaskType.SALES_SYNC, AsyncMock())
        await queue.enqueue("c1")
        await queue.enqueue("c1")
        await queue.enqueue("c2")
        await queue.join()

        assert len(await queue.get_client_tasks("c1")) == 2
        assert await queue.get_status("task_missing") is None

    @pytest.mark.asyncio
    async def test_finished_tasks_evicted_after_retention(self):
        queue = InMemoryTaskQueue(retention_hours=1)
        queue.register_handler(TaskType.SALES_SYNC, AsyncMock())
        done_id = await queue.enqueue("c1")
        await queue.join()

        assert queue.evict_expired(now=utcnow() + timedelta(minutes=30)) == 0
        assert queue.evict_expired(now=utcnow() + timedelta(hours=2)) == 1
        assert await queue.get_status(done_id) is None

    @pytest.mark.asyncio
    async def test_pending_tasks_never_evicted(self):
        queue = InMemoryTaskQueue(start_delay=60, retention_hours=1)
        task_id = await queue.enqueue("c1")

        assert queue.evict_expired(now=utcnow() + timedelta(days=7)) == 0
        assert (await queue.get_status(task_id)).status == TaskStatus.PENDING
        await queue.shutdown()

    @pytest.mark.asyncio
    async def test_enqueue_evicts_old_tasks(self):
        queue = InMemoryTaskQueue(retention_hours=1)
        queue.register_handler(TaskType.SALES_SYNC, AsyncMock())
        old_id = await queue.enqueue("c1")
        await queue.join()
        (await queue.get_status(old_id)).completed_at = utcnow() - timedelta(hours=2)

        new_id = await queue.enqueue("c1")
        await queue.join()

        assert [t.id for t in await queue.get_client_tasks("c1")] == [new_id]

    @pytest.mark.asyncio
    async def test_shutdown_cancels_pending(self):
        queue = InMemoryTaskQueue(start_delay=60)
        task_id = await queue.enqueue("c1")
        await asyncio.sleep(0)

        await queue.shutdown()

        # Cancelled before the worker picked it up
        assert (await queue.get_status(task_id)).status == TaskStatus.PENDING
        await queue.join()


class TestBackendSelection:

    def test_memory_backend(self):
        assert isinstance(create_task_queue(Settings(task_queue_backend="memory")), InMemoryTaskQueue)

    def test_temporal_backend(self):
        assert isinstance(create_task_queue(Settings(task_queue_backend="temporal")), TemporalTaskQueue)

    def test_unknown_backend(self):
        with pytest.raises(ValueError, match="Unknown task queue backend"):
            create_task_queue(Settings(task_queue_backend="redis"))


class TestTemporalTaskQueue:
    """Workflow-backed queue with a mocked Temporal client."""

    @pytest.fixture
    def temporal_client(self):
        client = MagicMock()
        client.start_workflow = AsyncMock()
        handle = MagicMock()
        handle.describe = AsyncMock(return_value=MagicMock(
            status=WorkflowExecutionStatus.COMPLETED,
            start_time=datetime(2024, 1, 19, 10, 0, tzinfo=timezone.utc),
            close_time=datetime(2024, 1, 19, 10, 1, tzinfo=timezone.utc),
        ))
        client.get_workflow_handle.return_value = handle
        return client

    @pytest.mark.asyncio
    async def test_enqueue_starts_workflow(self, temporal_client):
        queue = TemporalTaskQueue(TemporalSettings(task_queue="pos-sync-test"), client=temporal_client)

        task_id = await queue.enqueue("c1")

        args, kwargs = temporal_client.start_workflow.await_args
        assert isinstance(args[1], SalesSyncInput)
        assert args[1].client_id == "c1"
        assert args[1].task_id == task_id
        assert kwargs["id"] == task_id
        assert kwargs["task_queue"] == "pos-sync-test"

    @pytest.mark.asyncio
    async def test_status_from_execution(self, temporal_client):
        queue = TemporalTaskQueue(TemporalSettings(), client=temporal_client)
        task_id = await queue.enqueue("c1")

        task = await queue.get_status(task_id)

        temporal_client.get_workflow_handle.assert_called_with(task_id)
        assert task.status == TaskStatus.COMPLETED
        assert task.completed_at is not None

    @pytest.mark.asyncio
    async def test_running_workflow_is_processing(self, temporal_client):
        temporal_client.get_workflow_handle.return_value.describe.return_value.status = (
            WorkflowExecutionStatus.RUNNING
        )
        queue = TemporalTaskQueue(TemporalSettings(), client=temporal_client)
        await queue.enqueue("c1")

        assert await queue.pending_count("c1") == 1

    @pytest.mark.asyncio
    async def test_closed_workflow_described_once(self, temporal_client):
        queue = TemporalTaskQueue(TemporalSettings(), client=temporal_client, retention_hours=24 * 365 * 100)
        task_id = await queue.enqueue("c1")
        describe = temporal_client.get_workflow_handle.return_value.describe

        await queue.get_status(task_id)
        await queue.get_client_tasks("c1")
        await queue.pending_count("c1")

        assert describe.await_count == 1

    @pytest.mark.asyncio
    async def test_closed_workflows_evicted_when_listed(self, temporal_client):
        queue = TemporalTaskQueue(TemporalSettings(), client=temporal_client, retention_hours=24)
        await queue.enqueue("c1")

        # Closed in 2024, long past the retention period
        assert await queue.get_client_tasks("c1") == []

    @pytest.mark.asyncio
    async def test_unknown_task(self, temporal_client):
        queue = TemporalTaskQueue(TemporalSettings(), client=temporal_client)
        assert await queue.get_status("task_nope") is None


class TestSyncActivity:
    """run_sales_sync inside Temporal's activity test environment."""

    @pytest.mark.asyncio
    async def test_success_output(self):
        service = MagicMock()
        service.orchestrator.process_task = AsyncMock(return_value=SyncResult(
            success=True,
            message="Production sync completed for fudo",
            client_id="c1",
            mode=SyncMode.PRODUCTION,
            records_processed=2,
            erp_result={"synced_count": 2},
        ))
        activities = SyncActivities(service)

        output = await ActivityEnvironment().run(
            activities.run_sales_sync,
            RunSalesSyncInput(task_id="task_1", client_id="c1"),
        )

        task = service.orchestrator.process_task.await_args.args[0]
        assert task.id == "task_1"
        assert task.status == TaskStatus.PROCESSING
        assert output.success is True
        assert output.records_processed == 2
        assert output.erp_synced == 2

    @pytest.mark.asyncio
    async def test_failure_is_non_retryable(self):
        service = MagicMock()
        service.orchestrator.process_task = AsyncMock(side_effect=RuntimeError("Sync failed"))
        activities = SyncActivities(service)

        with pytest.raises(ApplicationError) as exc_info:
            await ActivityEnvironment().run(
                activities.run_sales_sync,
                RunSalesSyncInput(task_id="task_2", client_id="c1"),
            )
        assert exc_info.value.non_retryable is True
