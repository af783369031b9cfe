"""Engine state models: client configuration, tasks, retry jobs, log entries.

These are the records the engine persists and hands to collaborators.
All of them are keyed by ``client_id``.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from core.models.canonical import CanonicalSale


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


# =============================================================================
# Client Configuration
# =============================================================================

class ClientConfig(BaseModel):
    """Per-tenant integration settings.

    Owned by configuration storage; the engine only reads it.
    ``pos_settings`` holds vendor credentials and endpoints,
    ``erp_settings`` holds per-client ERP overrides.
    """
    client_id: str = Field(..., min_length=1)
    name: Optional[str] = None
    pos_type: str = Field(..., description="Registered POS vendor key, e.g. 'fudo'")
    simulation_mode: bool = Field(default=True)
    sync_frequency_minutes: int = Field(default=60, ge=5, le=1440)
    active: bool = Field(default=True)
    pos_settings: Dict[str, Any] = Field(default_factory=dict)
    erp_settings: Dict[str, Any] = Field(default_factory=dict)


class DateRange(BaseModel):
    """Half-open window [start, end) used to fetch vendor sales."""
    start: datetime
    end: datetime

    @classmethod
    def last_minutes(cls, minutes: int, now: Optional[datetime] = None) -> "DateRange":
        end = now or utcnow()
        return cls(start=end - timedelta(minutes=minutes), end=end)


# =============================================================================
# Sync Tasks
# =============================================================================

class TaskType(str, Enum):
    SALES_SYNC = "sales.sync"
    INVENTORY_SYNC = "inventory.sync"
    MENU_SYNC = "menu.sync"


class TaskStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED)


class SyncTask(BaseModel):
    """Unit of deferred work owned by the task queue."""
    id: str = Field(default_factory=lambda: new_id("task"))
    client_id: str
    task_type: TaskType = TaskType.SALES_SYNC
    status: TaskStatus = TaskStatus.PENDING
    attempts: int = 0
    max_attempts: int = 1
    created_at: datetime = Field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None


# =============================================================================
# Retry Jobs
# =============================================================================

class RetryOperation(str, Enum):
    SYNC = "sync"
    AUTH = "auth"
    FETCH = "fetch"


class RetryJob(BaseModel):
    """A scheduled re-attempt of a failed operation."""
    id: str
    client_id: str
    operation: RetryOperation
    attempt: int = 1
    max_attempts: int = 3
    next_retry_at: datetime
    created_at: datetime = Field(default_factory=utcnow)
    backoff_ms: int = 0
    last_error: Optional[str] = None
    # Set while a process runs the current attempt
    claimed_at: Optional[datetime] = None


# =============================================================================
# Integration Log
# =============================================================================

class LogSource(str, Enum):
    POS_VENDOR = "pos_vendor"
    ERP = "erp"
    SYSTEM = "system"


class LogStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class LogOperation(str, Enum):
    """Well-known operation names. Free-form strings are also accepted."""
    FETCH = "fetch"
    MAP = "map"
    SYNC = "sync"
    AUTH = "auth"
    RETRY = "retry"
    CIRCUIT_BREAK = "circuit_break"
    ERP_SYNC = "erp_sync"


class IntegrationLogEntry(BaseModel):
    """Immutable audit record of one integration event."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: new_id("log"))
    client_id: str
    source: LogSource
    provider: Optional[str] = None
    operation: str
    status: LogStatus
    message: str
    timestamp: datetime = Field(default_factory=utcnow)
    duration_ms: Optional[float] = None
    retry_attempt: Optional[int] = None
    error_code: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)


class CircuitState(BaseModel):
    """Circuit breaker state for one client, derived from the log."""
    client_id: str
    consecutive_failures: int = 0
    is_paused: bool = False
    pause_reason: Optional[str] = None
    last_failure_at: Optional[datetime] = None
    last_success_at: Optional[datetime] = None


# =============================================================================
# Sales Storage and Results
# =============================================================================

class StoredSale(CanonicalSale):
    """A canonical sale as persisted for a client, with sync flags."""
    client_id: str
    stored_at: datetime = Field(default_factory=utcnow)
    processed: bool = True
    erp_synced: bool = False
    erp_id: Optional[int] = None
    erp_synced_at: Optional[datetime] = None


class SyncMode(str, Enum):
    SIMULATION = "simulation"
    PRODUCTION = "production"


class SyncResult(BaseModel):
    """Outcome of a sync request as seen by the caller."""
    success: bool
    message: str
    client_id: str
    mode: SyncMode
    task_id: Optional[str] = None
    records_processed: int = 0
    erp_result: Optional[Dict[str, Any]] = None
    timestamp: datetime = Field(default_factory=utcnow)


class IntegrationHealth(str, Enum):
    OK = "ok"
    ERROR = "error"
    PENDING = "pending"


class IntegrationStatus(BaseModel):
    """Per-client status shown on the admin surface."""
    client_id: str
    pos_type: Optional[str] = None
    simulation_mode: Optional[bool] = None
    last_sync: Optional[datetime] = None
    status: IntegrationHealth
    latest_error: Optional[str] = None
    circuit_state: CircuitState
    pending_tasks: int = 0
    retry_jobs: int = 0
    stored_sales: int = 0
    unsynced_sales: int = 0
    total_amount: Decimal = Decimal("0")
    recent_logs: List[IntegrationLogEntry] = Field(default_factory=list)
