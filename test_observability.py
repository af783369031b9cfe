"""
Observability Tests

Validates the process-logging stack:
1. Correlation ids nest and unwind, and stay isolated between asyncio tasks
2. Records keep the context active when they were emitted
3. JSON and human-readable formatters include correlation ids and extra fields
"""

import asyncio
import json
import logging

import pytest

from core.observability.logging import (
    CorrelationContext,
    HumanReadableFormatter,
    StructuredFormatter,
    get_correlation_context,
    get_logger,
    with_correlation,
)


class ListHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


@pytest.fixture
def captured():
    """Attach a capturing handler to a dedicated logger."""
    handler = ListHandler()
    base = logging.getLogger("sync_engine.test_observability")
    base.addHandler(handler)
    base.setLevel(logging.DEBUG)
    yield get_logger("sync_engine.test_observability"), handler
    base.removeHandler(handler)


class TestCorrelationContext:
    """ContextVar-backed correlation ids."""

    def test_nesting(self):
        assert get_correlation_context().to_dict() == {}

        with with_correlation(client_id="c1", pos_provider="fudo"):
            with with_correlation(task_id="task_1") as ctx:
                assert ctx.to_dict() == {"client_id": "c1", "pos_provider": "fudo", "task_id": "task_1"}
            assert get_correlation_context().task_id is None

        assert get_correlation_context().client_id is None

    def test_none_does_not_clear(self):
        with with_correlation(client_id="c1"):
            with with_correlation(client_id=None, operation="sync") as ctx:
                assert ctx.client_id == "c1"
                assert ctx.operation == "sync"

    def test_label(self):
        assert CorrelationContext().label() == "-"
        ctx = CorrelationContext(client_id="c1", pos_provider="fudo", retry_job_id="r1")
        assert ctx.label() == "c1/fudo/retry:r1"

    @pytest.mark.asyncio
    async def test_isolated_between_tasks(self):
        async def run(client_id):
            with with_correlation(client_id=client_id):
                await asyncio.sleep(0)
                return get_correlation_context().client_id

        assert await asyncio.gather(run("c1"), run("c2")) == ["c1", "c2"]


class TestCorrelatedLogger:
    """Records carry the context and extra fields."""

    def test_record_stamped(self, captured):
        logger, handler = captured
        with with_correlation(client_id="c1", task_id="task_1"):
            logger.info("Sync task queued", extra_fields={"records": 2})

        record = handler.records[0]
        assert record.correlation.client_id == "c1"
        assert record.extra_fields == {"records": 2}

    def test_exception_keeps_traceback(self, captured):
        logger, handler = captured
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            logger.exception("Unexpected error syncing client c1")

        record = handler.records[0]
        assert record.levelno == logging.ERROR
        assert record.exc_info[0] is RuntimeError

    def test_cached_per_name(self):
        assert get_logger("sync_engine.a") is get_logger("sync_engine.a")


class TestFormatters:
    """Output shapes."""

    def make_record(self, logger, handler, **extra_fields):
        with with_correlation(client_id="c1", pos_provider="fudo", task_id="task_ab12"):
            logger.warning("Retry skipped", extra_fields=extra_fields)
        return handler.records[-1]

    def test_json(self, captured):
        record = self.make_record(*captured, job="retry_1")

        data = json.loads(StructuredFormatter().format(record))

        assert data["level"] == "WARNING"
        assert data["message"] == "Retry skipped"
        assert data["client_id"] == "c1"
        assert data["task_id"] == "task_ab12"
        assert data["job"] == "retry_1"
        assert data["timestamp"].endswith("Z")

    def test_human_readable(self, captured):
        record = self.make_record(*captured, job="retry_1")

        line = HumanReadableFormatter().format(record)

        assert "[WARNING]" in line
        assert "[c1/fudo/task_ab12]: Retry skipped job=retry_1" in line
