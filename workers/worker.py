"""Worker for the POS sync engine.

Polls the sync task queue on Temporal and runs SalesSyncWorkflow with the
activities bound to this process's IntegrationService.

Run with --queue <name> to override TEMPORAL_TASK_QUEUE.
"""

import argparse
import asyncio
import sys
from pathlib import Path

from temporalio.worker import Worker

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from activities.sync import SyncActivities
from core.config import get_settings
from core.observability.logging import configure_logging, get_logger
from sync_engine.service import IntegrationService
from sync_engine.task_queue import InMemoryTaskQueue
from temporal_client import get_temporal_client
from workflows.sales_sync_workflow import SalesSyncWorkflow

logger = get_logger(__name__)


async def run_worker(queue: str = None):
    """Start a worker listening on the sync task queue.

    The worker's own engine uses an in-memory task queue: tasks arriving
    from Temporal are executed directly and never re-enqueued.

    Raises:
        Exception: If connection to Temporal fails
    """
    settings = get_settings()
    task_queue = queue or settings.temporal.task_queue

    service = IntegrationService.build(settings=settings, task_queue=InMemoryTaskQueue(retention_hours=settings.task_retention_hours))
    await service.start()
    activities = SyncActivities(service)

    client = None
    try:
        client = await get_temporal_client(settings.temporal)
        logger.info(f"Connected to Temporal: {client.namespace}")

        worker = Worker(
            client,
            task_queue=task_queue,
            workflows=[SalesSyncWorkflow],
            activities=[activities.run_sales_sync],
        )
        logger.info(f"Worker created for queue '{task_queue}'")
        logger.info("Worker running... (Ctrl+C to stop)")
        await worker.run()

    except KeyboardInterrupt:
        logger.info("Worker interrupted by user")
    except Exception as e:
        logger.error(f"Worker error: {e}", exc_info=True)
        raise
    finally:
        await service.shutdown()
        logger.info("Engine stopped")


def main():
    """Entry point for worker with CLI args."""
    settings = get_settings()
    parser = argparse.ArgumentParser(description="POS Sync Temporal Worker")
    parser.add_argument(
        "--queue", "-q",
        default=settings.temporal.task_queue,
        help=f"Task queue to poll (default: {settings.temporal.task_queue})",
    )
    parser.add_argument(
        "--log-level",
        default=settings.log_level,
        help="Logging level (default: POS_SYNC_LOG_LEVEL or INFO)",
    )
    args = parser.parse_args()

    configure_logging(level=args.log_level, json_format=settings.json_logs, include_temporal=True)
    asyncio.run(run_worker(queue=args.queue))


if __name__ == "__main__":
    main()
