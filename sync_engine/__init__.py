"""Sync engine - orchestration, task queue and retry subsystem.

The engine is assembled by IntegrationService.build(); collaborators
(API, scripts, Temporal activities) only talk to the IntegrationService.
"""

from sync_engine.task_queue import TaskQueue, InMemoryTaskQueue, TemporalTaskQueue
from sync_engine.retry_queue import RetryQueue, calculate_backoff
from sync_engine.erp_services import ErpServiceProvider
from sync_engine.orchestrator import SyncOrchestrator
from sync_engine.service import IntegrationService, build_engine, create_task_queue

__all__ = [
    "TaskQueue",
    "InMemoryTaskQueue",
    "TemporalTaskQueue",
    "RetryQueue",
    "calculate_backoff",
    "ErpServiceProvider",
    "SyncOrchestrator",
    "IntegrationService",
    "build_engine",
    "create_task_queue",
]
