"""Retry subsystem: persisted retry jobs with exponential backoff.

Backoff per attempt (ms): 0, 10s, 30s, 90s, 270s, then capped at 5 minutes.

Each job is stored under its own key and every mutation is an atomic
read-modify-write, so an API server and a worker sharing one database see
the same jobs. Timers are local to the process that scheduled them; before
running an attempt a process claims the job, so an attempt runs once even
when several processes have it scheduled. ``start()`` reschedules persisted
jobs after a restart. Enqueueing is refused while the client's circuit
breaker is open.
"""

import asyncio
import time
import uuid
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union

from core.audit.events import IntegrationLogger
from core.errors import SyncEngineError
from core.models.refs import LogOperation, LogSource, RetryJob, RetryOperation, utcnow
from core.observability.logging import get_logger, with_correlation
from core.storage.state_store import InMemoryStateStore, StateStore

logger = get_logger(__name__)

JOB_PREFIX = "retry:job:"

BASE_BACKOFF_MS = 10_000
MAX_BACKOFF_MS = 300_000

# A claim older than this is treated as abandoned (process died mid-attempt)
CLAIM_LEASE = timedelta(minutes=10)

RetryHandler = Callable[[RetryJob], Awaitable[object]]


def calculate_backoff(attempt: int) -> int:
    """Delay in milliseconds before running ``attempt``."""
    if attempt <= 1:
        return 0
    return min(BASE_BACKOFF_MS * 3 ** (attempt - 2), MAX_BACKOFF_MS)


class RetryQueue:
    """Schedules re-attempts of failed operations on the running event loop.

    Handlers are registered per operation and signal failure by raising.

    Usage:
        queue = RetryQueue(integration_logger, store)
        queue.register_handler(RetryOperation.SYNC, orchestrator.retry_sync)
        await queue.start()
        queue.enqueue_retry("c1", "sync", initial_error="timeout")
    """

    def __init__(
        self,
        integration_logger: IntegrationLogger,
        store: Optional[StateStore] = None,
        retention_hours: int = 24,
        cleanup_interval_seconds: float = 60,
    ):
        self.integration_logger = integration_logger
        self.store = store or InMemoryStateStore()
        self.retention = timedelta(hours=retention_hours)
        self.cleanup_interval_seconds = cleanup_interval_seconds

        self._handlers: Dict[RetryOperation, RetryHandler] = {}
        self._timers: Dict[str, asyncio.TimerHandle] = {}
        self._inflight: Set[asyncio.Task] = set()
        self._cleanup_task: Optional[asyncio.Task] = None

    # =========================================================================
    # Persistence
    # =========================================================================

    @staticmethod
    def _job_key(job_id: str) -> str:
        return f"{JOB_PREFIX}{job_id}"

    def _save(self, job: RetryJob) -> None:
        self.store.save(self._job_key(job.id), job.model_dump(mode="json"))

    def _claim(self, job_id: str, attempt: Optional[int] = None) -> Optional[RetryJob]:
        """Mark a job as running here. None if it is gone, moved on, or claimed elsewhere."""
        now = utcnow()
        claimed: List[RetryJob] = []

        def apply(raw: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
            if raw is None:
                return None
            job = RetryJob.model_validate(raw)
            if attempt is not None and job.attempt != attempt:
                return raw
            if job.claimed_at is not None and now - job.claimed_at < CLAIM_LEASE:
                return raw
            job.claimed_at = now
            claimed.append(job)
            return job.model_dump(mode="json")

        self.store.update(self._job_key(job_id), apply)
        return claimed[0] if claimed else None

    # =========================================================================
    # Scheduling
    # =========================================================================

    def register_handler(self, operation: Union[RetryOperation, str], handler: RetryHandler) -> None:
        self._handlers[RetryOperation(operation)] = handler

    def enqueue_retry(
        self,
        client_id: str,
        operation: Union[RetryOperation, str],
        max_attempts: int = 3,
        initial_error: Optional[str] = None,
    ) -> Optional[str]:
        """Create and schedule a retry job.

        Returns:
            The job id, or None when the circuit breaker is open
        """
        operation = RetryOperation(operation)

        if self.integration_logger.is_paused(client_id):
            self.integration_logger.log_warning(
                client_id,
                LogSource.SYSTEM,
                LogOperation.RETRY.value,
                "Retry skipped - circuit breaker is open",
                details={"operation": operation.value},
            )
            return None

        backoff_ms = calculate_backoff(1)
        now = utcnow()
        job = RetryJob(
            id=f"retry_{client_id}_{operation.value}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:6]}",
            client_id=client_id,
            operation=operation,
            attempt=1,
            max_attempts=max_attempts,
            next_retry_at=now + timedelta(milliseconds=backoff_ms),
            created_at=now,
            backoff_ms=backoff_ms,
            last_error=initial_error,
        )
        self._save(job)
        self._schedule(job)

        self.integration_logger.log_info(
            client_id,
            LogSource.SYSTEM,
            LogOperation.RETRY.value,
            f"Retry job enqueued: {job.id}, next attempt in {backoff_ms}ms",
            details={"job_id": job.id, "operation": operation.value},
        )
        return job.id

    def _schedule(self, job: RetryJob) -> None:
        previous = self._timers.pop(job.id, None)
        if previous is not None:
            previous.cancel()

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop yet: the job stays persisted and start() schedules it
            return

        delay = (job.next_retry_at - utcnow()).total_seconds()
        if delay <= 0:
            self._spawn(job.id, job.attempt)
        else:
            self._timers[job.id] = loop.call_later(delay, self._spawn, job.id, job.attempt)

    def _spawn(self, job_id: str, attempt: Optional[int] = None) -> None:
        self._timers.pop(job_id, None)
        task = asyncio.get_running_loop().create_task(self.execute_job(job_id, attempt))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def execute_job(self, job_id: str, attempt: Optional[int] = None) -> bool:
        """Run one attempt of a job now. Returns True if the attempt succeeded.

        With ``attempt`` given, nothing runs unless the job is still at that
        attempt (a timer armed for an earlier attempt is stale).
        """
        job = self._claim(job_id, attempt)
        if job is None:
            return False

        with with_correlation(client_id=job.client_id, retry_job_id=job.id, operation=job.operation.value):
            self.integration_logger.log_info(
                job.client_id,
                LogSource.SYSTEM,
                LogOperation.RETRY.value,
                f"Executing retry attempt {job.attempt}/{job.max_attempts} for {job.operation.value}",
                retry_attempt=job.attempt,
            )

            handler = self._handlers.get(job.operation)
            try:
                if handler is None:
                    raise SyncEngineError(f"No handler registered for retry operation {job.operation.value}")
                await handler(job)
            except SyncEngineError as e:
                job.last_error = e.message
            except Exception as e:
                logger.exception(f"Retry handler for {job.operation.value} raised")
                job.last_error = str(e) or type(e).__name__
            else:
                self._remove(job.id)
                self.integration_logger.log_success(
                    job.client_id,
                    LogSource.SYSTEM,
                    LogOperation.RETRY.value,
                    f"Retry successful for {job.operation.value} after {job.attempt} attempts",
                    retry_attempt=job.attempt,
                )
                return True

            self._handle_failed_attempt(job)
            return False

    def _handle_failed_attempt(self, job: RetryJob) -> None:
        next_attempt = job.attempt + 1

        if next_attempt > job.max_attempts:
            if self._remove(job.id) is None:
                # Cancelled while the attempt was in flight
                return
            self.integration_logger.log_error(
                job.client_id,
                LogSource.SYSTEM,
                LogOperation.RETRY.value,
                f"Retry failed permanently after {job.max_attempts} attempts: {job.last_error}",
                retry_attempt=job.max_attempts,
                error_code="RETRY_EXHAUSTED",
            )
            return

        backoff_ms = calculate_backoff(next_attempt)
        rescheduled: List[RetryJob] = []

        def apply(raw: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
            if raw is None:
                return None
            current = RetryJob.model_validate(raw)
            current.attempt = next_attempt
            current.backoff_ms = backoff_ms
            current.next_retry_at = utcnow() + timedelta(milliseconds=backoff_ms)
            current.last_error = job.last_error
            current.claimed_at = None
            rescheduled.append(current)
            return current.model_dump(mode="json")

        self.store.update(self._job_key(job.id), apply)
        if not rescheduled:
            return
        job = rescheduled[0]

        self.integration_logger.log_warning(
            job.client_id,
            LogSource.SYSTEM,
            LogOperation.RETRY.value,
            f"Retry attempt {job.attempt - 1} failed, scheduling next attempt in {job.backoff_ms}ms: {job.last_error}",
            retry_attempt=job.attempt - 1,
        )
        self._schedule(job)

    def _remove(self, job_id: str) -> Optional[RetryJob]:
        removed: List[RetryJob] = []

        def apply(raw: Optional[Dict[str, Any]]) -> None:
            if raw is not None:
                removed.append(RetryJob.model_validate(raw))
            return None

        self.store.update(self._job_key(job_id), apply)
        timer = self._timers.pop(job_id, None)
        if timer is not None:
            timer.cancel()
        return removed[0] if removed else None

    # =========================================================================
    # Queries and cancellation
    # =========================================================================

    def get_job(self, job_id: str) -> Optional[RetryJob]:
        raw = self.store.load(self._job_key(job_id))
        return RetryJob.model_validate(raw) if raw is not None else None

    def get_jobs_for_client(self, client_id: str) -> List[RetryJob]:
        return [job for job in self.get_all_jobs() if job.client_id == client_id]

    def get_all_jobs(self) -> List[RetryJob]:
        jobs = [RetryJob.model_validate(raw) for raw in self.store.load_prefix(JOB_PREFIX).values()]
        return sorted(jobs, key=lambda job: job.created_at)

    def is_scheduled(self, job_id: str) -> bool:
        return job_id in self._timers

    def cancel_job(self, job_id: str) -> bool:
        """Remove a job and its pending timer. An attempt already running is not interrupted."""
        job = self._remove(job_id)
        if job is None:
            return False
        self.integration_logger.log_info(
            job.client_id,
            LogSource.SYSTEM,
            LogOperation.RETRY.value,
            f"Retry job cancelled: {job_id}",
        )
        return True

    def cancel_all_jobs_for_client(self, client_id: str) -> int:
        removed = sum(1 for job in self.get_jobs_for_client(client_id) if self._remove(job.id) is not None)
        self.integration_logger.log_info(
            client_id,
            LogSource.SYSTEM,
            LogOperation.RETRY.value,
            f"Cancelled {removed} retry jobs for client",
        )
        return removed

    def cleanup_expired_jobs(self, now: Optional[datetime] = None) -> int:
        """Drop jobs created longer ago than the retention period."""
        cutoff = (now or utcnow()) - self.retention
        expired = [job.id for job in self.get_all_jobs() if job.created_at < cutoff]
        removed = sum(1 for job_id in expired if self._remove(job_id) is not None)
        if removed:
            logger.info(f"Removed {removed} expired retry jobs")
        return removed

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Reschedule persisted jobs and start the periodic cleanup loop."""
        jobs = self.get_all_jobs()
        for job in jobs:
            if job.id not in self._timers:
                self._schedule(job)

        if self._cleanup_task is None:
            self._cleanup_task = asyncio.get_running_loop().create_task(self._cleanup_loop())
        logger.info(f"Retry queue started with {len(jobs)} pending jobs")

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval_seconds)
            self.cleanup_expired_jobs()

    async def join(self) -> None:
        """Wait for attempts that are currently running."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    async def shutdown(self) -> None:
        """Stop timers and the cleanup loop. Jobs stay persisted for the next start."""
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()

        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            await asyncio.gather(self._cleanup_task, return_exceptions=True)
            self._cleanup_task = None

        await self.join()
