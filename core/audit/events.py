"""Integration event log and per-client circuit breaker.

Every sync, fetch, auth and ERP event is recorded here as an
IntegrationLogEntry. Circuit state is derived from the stream of entries:

- a ``success`` entry closes the circuit and resets the failure count
- an ``error`` entry increments the failure count; reaching the threshold
  pauses the client's integration (the only way the circuit opens)
- ``warning`` and ``info`` entries leave the circuit alone

Entries are appended as stream items and each client's circuit lives under
its own key, updated in one store transaction. Nothing is cached in the
process: an API server and a worker sharing one database read and write
the same log window and circuit state.
"""

from typing import Any, Dict, List, Optional

from core.audit.alerts import Alert, AlertDispatcher, AlertSeverity
from core.models.refs import (
    CircuitState,
    IntegrationLogEntry,
    LogOperation,
    LogSource,
    LogStatus,
)
from core.observability.logging import get_logger
from core.storage.state_store import InMemoryStateStore, StateStore

logger = get_logger(__name__)

DEFAULT_MAX_ENTRIES = 1000
DEFAULT_FAILURE_THRESHOLD = 3


class IntegrationLogger:
    """Append-only integration log with derived circuit breaker state.

    Usage:
        integration_log = IntegrationLogger(store)
        integration_log.log_error("c1", LogSource.POS_VENDOR, "fetch", "Timeout", provider="fudo")
        if integration_log.is_paused("c1"):
            ...
    """

    LOGS_STREAM = "integration:logs"
    CIRCUIT_PREFIX = "integration:circuit:"

    def __init__(
        self,
        store: Optional[StateStore] = None,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        alerts: Optional[AlertDispatcher] = None,
    ):
        self._store = store or InMemoryStateStore()
        self.max_entries = max_entries
        self.failure_threshold = failure_threshold
        self.alerts = alerts or AlertDispatcher()

    def _circuit_key(self, client_id: str) -> str:
        return f"{self.CIRCUIT_PREFIX}{client_id}"

    # =========================================================================
    # Writing
    # =========================================================================

    def log(
        self,
        client_id: str,
        source: LogSource,
        operation: str,
        status: LogStatus,
        message: str,
        provider: Optional[str] = None,
        duration_ms: Optional[float] = None,
        details: Optional[Dict[str, Any]] = None,
        retry_attempt: Optional[int] = None,
        error_code: Optional[str] = None,
    ) -> IntegrationLogEntry:
        """Record an event and update the client's circuit state."""
        entry = IntegrationLogEntry(
            client_id=client_id,
            source=LogSource(source),
            provider=provider,
            operation=str(operation.value if isinstance(operation, LogOperation) else operation),
            status=LogStatus(status),
            message=message,
            duration_ms=duration_ms,
            details=details or {},
            retry_attempt=retry_attempt,
            error_code=error_code,
        )
        self._append(entry)
        self._update_circuit(entry)

        if entry.status == LogStatus.ERROR:
            self.alerts.dispatch(Alert(
                client_id=client_id,
                severity=AlertSeverity.ERROR,
                title=f"Integration error ({entry.source.value}/{entry.operation})",
                message=message,
                details={"error_code": error_code, "provider": provider},
            ))

        return entry

    def log_success(self, client_id: str, source: LogSource, operation: str, message: str, **kwargs) -> IntegrationLogEntry:
        return self.log(client_id, source, operation, LogStatus.SUCCESS, message, **kwargs)

    def log_error(self, client_id: str, source: LogSource, operation: str, message: str, **kwargs) -> IntegrationLogEntry:
        return self.log(client_id, source, operation, LogStatus.ERROR, message, **kwargs)

    def log_warning(self, client_id: str, source: LogSource, operation: str, message: str, **kwargs) -> IntegrationLogEntry:
        return self.log(client_id, source, operation, LogStatus.WARNING, message, **kwargs)

    def log_info(self, client_id: str, source: LogSource, operation: str, message: str, **kwargs) -> IntegrationLogEntry:
        return self.log(client_id, source, operation, LogStatus.INFO, message, **kwargs)

    def _append(self, entry: IntegrationLogEntry) -> None:
        self._store.append(
            self.LOGS_STREAM,
            entry.model_dump(mode="json"),
            tag=entry.client_id,
            max_items=self.max_entries,
        )

        level = {
            LogStatus.ERROR: logger.error,
            LogStatus.WARNING: logger.warning,
        }.get(entry.status, logger.info)
        level(
            f"[{entry.source.value}] {entry.operation}: {entry.message}",
            extra_fields={
                "client_id": entry.client_id,
                "status": entry.status.value,
                "provider": entry.provider,
                "duration_ms": entry.duration_ms,
            },
        )

    def _update_circuit(self, entry: IntegrationLogEntry) -> None:
        if entry.status not in (LogStatus.SUCCESS, LogStatus.ERROR):
            return

        opened: List[CircuitState] = []

        def apply(raw: Optional[Dict[str, Any]]) -> Dict[str, Any]:
            state = CircuitState.model_validate(raw) if raw else CircuitState(client_id=entry.client_id)
            if entry.status == LogStatus.SUCCESS:
                state.consecutive_failures = 0
                state.last_success_at = entry.timestamp
                state.is_paused = False
                state.pause_reason = None
            else:
                state.consecutive_failures += 1
                state.last_failure_at = entry.timestamp
                if state.consecutive_failures >= self.failure_threshold and not state.is_paused:
                    state.is_paused = True
                    state.pause_reason = f"{state.consecutive_failures} consecutive failures"
                    opened.append(state)
            return state.model_dump(mode="json")

        self._store.update(self._circuit_key(entry.client_id), apply)

        # Only the writer that flipped the circuit reports it
        for state in opened:
            message = (
                f"Circuit breaker activated for client {entry.client_id}. "
                f"Integration paused after {state.consecutive_failures} consecutive failures."
            )
            self._append(IntegrationLogEntry(
                client_id=entry.client_id,
                source=LogSource.SYSTEM,
                provider=entry.provider,
                operation=LogOperation.CIRCUIT_BREAK.value,
                status=LogStatus.WARNING,
                message=message,
                details={"consecutive_failures": state.consecutive_failures},
            ))
            self.alerts.dispatch(Alert(
                client_id=entry.client_id,
                severity=AlertSeverity.CRITICAL,
                title="Circuit breaker opened",
                message=message,
                details={"consecutive_failures": state.consecutive_failures},
            ))

    # =========================================================================
    # Circuit Breaker
    # =========================================================================

    def get_circuit_state(self, client_id: str) -> CircuitState:
        """Current circuit state (a closed, zeroed state if nothing was logged yet)."""
        raw = self._store.load(self._circuit_key(client_id))
        if raw is None:
            return CircuitState(client_id=client_id)
        return CircuitState.model_validate(raw)

    def get_all_circuit_states(self) -> Dict[str, CircuitState]:
        states = [CircuitState.model_validate(raw) for raw in self._store.load_prefix(self.CIRCUIT_PREFIX).values()]
        return {state.client_id: state for state in states}

    def is_paused(self, client_id: str) -> bool:
        return self.get_circuit_state(client_id).is_paused

    def reset_circuit_breaker(self, client_id: str, reason: str = "Manual reset") -> CircuitState:
        """Close the circuit for a client and log the reset."""

        def apply(raw: Optional[Dict[str, Any]]) -> Dict[str, Any]:
            state = CircuitState.model_validate(raw) if raw else CircuitState(client_id=client_id)
            state.consecutive_failures = 0
            state.is_paused = False
            state.pause_reason = None
            return state.model_dump(mode="json")

        state = CircuitState.model_validate(self._store.update(self._circuit_key(client_id), apply))

        self._append(IntegrationLogEntry(
            client_id=client_id,
            source=LogSource.SYSTEM,
            operation=LogOperation.CIRCUIT_BREAK.value,
            status=LogStatus.INFO,
            message=f"Circuit breaker reset for client {client_id}. Reason: {reason}",
            details={"reason": reason},
        ))
        return state

    # =========================================================================
    # Reading
    # =========================================================================

    def _entries(self, client_id: Optional[str] = None, limit: Optional[int] = None) -> List[IntegrationLogEntry]:
        """Retained entries oldest first."""
        return [
            IntegrationLogEntry.model_validate(item)
            for item in self._store.read_stream(self.LOGS_STREAM, tag=client_id, limit=limit)
        ]

    def get_logs_for_client(self, client_id: str, limit: Optional[int] = 50) -> List[IntegrationLogEntry]:
        """Most recent entries for a client, newest first."""
        return list(reversed(self._entries(client_id, limit)))

    def get_all_logs(self, limit: Optional[int] = 100) -> List[IntegrationLogEntry]:
        return list(reversed(self._entries(limit=limit)))

    def get_latest_error(self, client_id: str) -> Optional[IntegrationLogEntry]:
        for entry in reversed(self._entries(client_id)):
            if entry.status == LogStatus.ERROR:
                return entry
        return None

    def export_logs(self, client_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """JSON-ready dump of the retained window, oldest first."""
        return [e.model_dump(mode="json") for e in self._entries(client_id)]

    def clear_logs(self, client_id: Optional[str] = None) -> int:
        """Drop retained entries (for one client or all). Circuit state is kept."""
        return self._store.clear_stream(self.LOGS_STREAM, tag=client_id)

    def __len__(self) -> int:
        return len(self._store.read_stream(self.LOGS_STREAM))
