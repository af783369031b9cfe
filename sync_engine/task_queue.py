"""Asynchronous sync task queue.

Production-mode syncs are not run inline: the orchestrator enqueues a
SyncTask and returns its id immediately. A worker then moves the task
pending -> processing (attempts += 1) -> completed | failed.

Backends:
- InMemoryTaskQueue: asyncio tasks in the current process
- TemporalTaskQueue: one SalesSyncWorkflow per task on a Temporal worker

Neither backend retries a task; failed is terminal. Retrying is the
retry queue's job. Finished tasks are kept for ``retention_hours`` after
completion and then evicted.
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, List, Optional, Set

from temporalio.client import Client, WorkflowExecutionStatus
from temporalio.service import RPCError

from core.config import TemporalSettings
from core.models.refs import SyncTask, TaskStatus, TaskType, utcnow
from core.observability.logging import get_logger, with_correlation

logger = get_logger(__name__)

TaskHandler = Callable[[SyncTask], Awaitable[object]]


class TaskQueue(ABC):
    """Interface the orchestrator uses to defer production syncs."""

    def __init__(self, retention_hours: float = 24):
        self.retention = timedelta(hours=retention_hours)
        self._tasks: Dict[str, SyncTask] = {}

    @abstractmethod
    async def enqueue(self, client_id: str, task_type: TaskType = TaskType.SALES_SYNC) -> str:
        """Create a pending task and return its id without waiting for it."""
        pass

    @abstractmethod
    async def get_status(self, task_id: str) -> Optional[SyncTask]:
        pass

    @abstractmethod
    async def get_client_tasks(self, client_id: str) -> List[SyncTask]:
        pass

    def register_handler(self, task_type: TaskType, handler: TaskHandler) -> None:
        """Install the coroutine that executes tasks of ``task_type``."""
        pass

    def evict_expired(self, now: Optional[datetime] = None) -> int:
        """Forget finished tasks that completed longer ago than the retention period."""
        cutoff = (now or utcnow()) - self.retention
        expired = [
            task_id for task_id, task in self._tasks.items()
            if task.status.is_terminal and task.completed_at is not None and task.completed_at < cutoff
        ]
        for task_id in expired:
            del self._tasks[task_id]
        if expired:
            logger.debug(f"Evicted {len(expired)} finished tasks")
        return len(expired)

    async def pending_count(self, client_id: str) -> int:
        tasks = await self.get_client_tasks(client_id)
        return sum(1 for t in tasks if not t.status.is_terminal)

    async def shutdown(self) -> None:
        pass


class InMemoryTaskQueue(TaskQueue):
    """Runs each task as an asyncio task in this process.

    ``start_delay`` (seconds) is how long a task stays pending before the
    worker picks it up.
    """

    def __init__(self, start_delay: float = 0.0, retention_hours: float = 24):
        super().__init__(retention_hours)
        self.start_delay = start_delay
        self._handlers: Dict[TaskType, TaskHandler] = {}
        self._running: Set[asyncio.Task] = set()

    def register_handler(self, task_type: TaskType, handler: TaskHandler) -> None:
        self._handlers[task_type] = handler

    async def enqueue(self, client_id: str, task_type: TaskType = TaskType.SALES_SYNC) -> str:
        self.evict_expired()
        task = SyncTask(client_id=client_id, task_type=task_type)
        self._tasks[task.id] = task

        runner = asyncio.get_running_loop().create_task(self._run(task))
        self._running.add(runner)
        runner.add_done_callback(self._running.discard)

        logger.info(f"Enqueued {task_type.value} task {task.id} for client {client_id}")
        return task.id

    async def _run(self, task: SyncTask) -> None:
        if self.start_delay:
            await asyncio.sleep(self.start_delay)

        task.status = TaskStatus.PROCESSING
        task.attempts += 1
        task.started_at = utcnow()

        with with_correlation(client_id=task.client_id, task_id=task.id):
            handler = self._handlers.get(task.task_type)
            try:
                if handler is None:
                    raise LookupError(f"No handler registered for task type {task.task_type.value}")
                await handler(task)
            except asyncio.CancelledError:
                task.status = TaskStatus.FAILED
                task.error_message = "Task cancelled"
                task.completed_at = utcnow()
                raise
            except Exception as e:
                task.status = TaskStatus.FAILED
                task.error_message = str(e)
                logger.warning(f"Task {task.id} failed: {e}")
            else:
                task.status = TaskStatus.COMPLETED
                logger.info(f"Task {task.id} completed")
            task.completed_at = utcnow()

    async def get_status(self, task_id: str) -> Optional[SyncTask]:
        return self._tasks.get(task_id)

    async def get_client_tasks(self, client_id: str) -> List[SyncTask]:
        self.evict_expired()
        return [t for t in self._tasks.values() if t.client_id == client_id]

    async def join(self) -> None:
        """Wait until every started task has finished."""
        while self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)

    async def shutdown(self) -> None:
        for runner in list(self._running):
            runner.cancel()
        await asyncio.gather(*list(self._running), return_exceptions=True)


# =============================================================================
# Temporal backend
# =============================================================================

_EXECUTION_STATUS = {
    WorkflowExecutionStatus.RUNNING: TaskStatus.PROCESSING,
    WorkflowExecutionStatus.COMPLETED: TaskStatus.COMPLETED,
}


class TemporalTaskQueue(TaskQueue):
    """Starts a SalesSyncWorkflow per task; status comes from the workflow execution.

    The workflow id is the task id, so ``get_status`` is a describe call.
    Tasks are listed per client from the ones enqueued through this instance.
    """

    def __init__(self, settings: TemporalSettings, client: Optional[Client] = None, retention_hours: float = 24):
        super().__init__(retention_hours)
        self.settings = settings
        self._client = client

    async def _get_client(self) -> Client:
        if self._client is None:
            from temporal_client import get_temporal_client
            self._client = await get_temporal_client(self.settings)
        return self._client

    async def enqueue(self, client_id: str, task_type: TaskType = TaskType.SALES_SYNC) -> str:
        # Imported here: the workflow module pulls in activities, which build the engine
        from workflows.sales_sync_workflow import SalesSyncInput, SalesSyncWorkflow

        self.evict_expired()
        task = SyncTask(client_id=client_id, task_type=task_type)
        client = await self._get_client()
        await client.start_workflow(
            SalesSyncWorkflow.run,
            SalesSyncInput(task_id=task.id, client_id=client_id, task_type=task_type.value),
            id=task.id,
            task_queue=self.settings.task_queue,
        )
        self._tasks[task.id] = task
        logger.info(f"Started SalesSyncWorkflow {task.id} for client {client_id}")
        return task.id

    async def get_status(self, task_id: str) -> Optional[SyncTask]:
        task = self._tasks.get(task_id)
        if task is None or task.status.is_terminal:
            # Closed workflows never change again
            return task

        client = await self._get_client()
        try:
            description = await client.get_workflow_handle(task_id).describe()
        except RPCError as e:
            logger.warning(f"Could not describe workflow {task_id}: {e}")
            return task

        task.status = _EXECUTION_STATUS.get(description.status, TaskStatus.FAILED)
        task.attempts = 1
        task.started_at = description.start_time
        task.completed_at = description.close_time
        return task

    async def get_client_tasks(self, client_id: str) -> List[SyncTask]:
        for task in [t for t in self._tasks.values() if t.client_id == client_id]:
            await self.get_status(task.id)
        self.evict_expired()
        return [t for t in self._tasks.values() if t.client_id == client_id]
