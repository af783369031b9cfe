"""
Process logging for the sync engine.

Every record carries the correlation fields active when it was emitted:
- client_id: tenant whose integration is running
- task_id: queued sync task (or Temporal workflow id)
- retry_job_id: retry attempt being executed
- pos_provider: vendor adapter in use
- operation: sync / fetch / auth / erp_sync / retry

Business events that collaborators read back (status, log export, circuit
breaker) are not written here; they go through core.audit.IntegrationLogger.

Usage:
    from core.observability.logging import get_logger, with_correlation

    logger = get_logger(__name__)

    with with_correlation(client_id="c1", pos_provider="fudo"):
        logger.info("Fetching sales", extra_fields={"window_minutes": 60})
"""

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import asdict, dataclass, fields, replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional, Union


# Loggers owned by this codebase; configure_logging() applies the level to each
ENGINE_LOGGERS = ("core", "pos_adapters", "connectors", "sync_engine", "activities", "workflows", "workers", "api", "scripts")

# Third-party loggers kept at WARNING unless debugging
NOISY_LOGGERS = ("aiohttp", "httpx", "uvicorn.access")


# =============================================================================
# Correlation Context
# =============================================================================

@dataclass(frozen=True)
class CorrelationContext:
    """Identifiers of the sync execution currently running on this task."""
    client_id: Optional[str] = None
    task_id: Optional[str] = None
    retry_job_id: Optional[str] = None
    pos_provider: Optional[str] = None
    operation: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}

    def merge(self, **kwargs) -> "CorrelationContext":
        """Copy with the given non-None values applied. Unknown keys are ignored."""
        known = {f.name for f in fields(self)}
        updates = {k: v for k, v in kwargs.items() if k in known and v is not None}
        return replace(self, **updates)

    def label(self) -> str:
        """Short ``client/provider/task`` tag for human-readable output."""
        parts = [self.client_id, self.pos_provider, self.task_id]
        if self.retry_job_id:
            parts.append(f"retry:{self.retry_job_id}")
        return "/".join(p for p in parts if p) or "-"


_correlation: ContextVar[CorrelationContext] = ContextVar("sync_correlation", default=CorrelationContext())


def get_correlation_context() -> CorrelationContext:
    return _correlation.get()


@contextmanager
def with_correlation(**kwargs) -> Iterator[CorrelationContext]:
    """Layer correlation ids on top of the current context for the enclosed block.

    Safe across asyncio tasks: each task sees the context it was created in.
    """
    token = _correlation.set(get_correlation_context().merge(**kwargs))
    try:
        yield _correlation.get()
    finally:
        _correlation.reset(token)


# =============================================================================
# Formatters
# =============================================================================

def _record_context(record: logging.LogRecord) -> CorrelationContext:
    # Captured when the record was created; falls back for foreign loggers
    return getattr(record, "correlation", None) or get_correlation_context()


def _utc_time(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, tz=timezone.utc)


class StructuredFormatter(logging.Formatter):
    """
    One JSON object per line:

    {"timestamp": "2024-01-19T10:30:00.123456Z", "level": "INFO",
     "logger": "sync_engine.orchestrator", "message": "Sync task queued",
     "client_id": "c1", "task_id": "task_ab12", "records": 2}
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": _utc_time(record).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_record_context(record).to_dict())
        payload.update(getattr(record, "extra_fields", None) or {})
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    2024-01-19 10:30:00 [INFO ] sync_engine.orchestrator [c1/fudo/task_ab12]: Sync task queued records=2
    """

    def format(self, record: logging.LogRecord) -> str:
        line = (
            f"{_utc_time(record):%Y-%m-%d %H:%M:%S} [{record.levelname:5}] {record.name} "
            f"[{_record_context(record).label()}]: {record.getMessage()}"
        )
        extra = getattr(record, "extra_fields", None)
        if extra:
            line += " " + " ".join(f"{k}={v}" for k, v in extra.items())
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


# =============================================================================
# Correlated Logger
# =============================================================================

class CorrelatedLogger(logging.LoggerAdapter):
    """Stdlib logger adapter that stamps records with the correlation context.

    Accepts ``extra_fields={...}`` on any call for per-record structured data.
    """

    def __init__(self, logger: logging.Logger):
        super().__init__(logger, {})

    @property
    def name(self) -> str:
        return self.logger.name

    def process(self, msg: Any, kwargs: Dict[str, Any]):
        extra = dict(kwargs.get("extra") or {})
        extra["extra_fields"] = kwargs.pop("extra_fields", None) or {}
        extra["correlation"] = get_correlation_context()
        kwargs["extra"] = extra
        return msg, kwargs


# =============================================================================
# Setup
# =============================================================================

_loggers: Dict[str, CorrelatedLogger] = {}
_handler: Optional[logging.Handler] = None


def configure_logging(
    level: Union[int, str] = logging.INFO,
    json_format: bool = False,
    include_temporal: bool = True,
) -> None:
    """
    Install one stdout handler on the root logger. Later calls only adjust levels.

    Args:
        level: Level number or name ("DEBUG", "INFO", ...)
        json_format: JSON lines instead of human-readable output
        include_temporal: Let Temporal SDK INFO logs through (workers); otherwise WARNING
    """
    global _handler

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    root = logging.getLogger()
    if _handler is None:
        _handler = logging.StreamHandler(sys.stdout)
        root.addHandler(_handler)
    _handler.setFormatter(StructuredFormatter() if json_format else HumanReadableFormatter())
    _handler.setLevel(level)
    root.setLevel(level)

    for name in ENGINE_LOGGERS:
        logging.getLogger(name).setLevel(level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("temporalio").setLevel(logging.INFO if include_temporal else logging.WARNING)


def get_logger(name: str) -> CorrelatedLogger:
    """Correlated logger for ``name`` (usually ``__name__``); cached per name."""
    logger = _loggers.get(name)
    if logger is None:
        logger = _loggers[name] = CorrelatedLogger(logging.getLogger(name))
    return logger
