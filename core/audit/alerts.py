"""Alert side-channel for integration failures.

Alerts are fire-and-forget notifications; they carry no state of their
own. The integration logger raises one at ``error`` severity for every
error entry and one at ``critical`` severity when a client's circuit opens.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from core.models.refs import utcnow
from core.observability.logging import get_logger

logger = get_logger(__name__)


class AlertSeverity(str, Enum):
    ERROR = "error"
    CRITICAL = "critical"


class Alert(BaseModel):
    client_id: str
    severity: AlertSeverity
    title: str
    message: str
    timestamp: datetime = Field(default_factory=utcnow)
    details: Dict[str, Any] = Field(default_factory=dict)


class AlertSink(ABC):
    """Destination for alerts (pager, chat webhook, log...)."""

    @abstractmethod
    def send(self, alert: Alert) -> None:
        pass


class LoggingAlertSink(AlertSink):
    """Writes alerts to the process log."""

    def send(self, alert: Alert) -> None:
        log = logger.critical if alert.severity == AlertSeverity.CRITICAL else logger.error
        log(
            f"ALERT [{alert.severity.value}] {alert.title}: {alert.message}",
            extra_fields={"client_id": alert.client_id, **alert.details},
        )


class InMemoryAlertSink(AlertSink):
    """Keeps alerts in a list (for testing)."""

    def __init__(self):
        self.alerts: List[Alert] = []

    def send(self, alert: Alert) -> None:
        self.alerts.append(alert)

    def by_severity(self, severity: AlertSeverity) -> List[Alert]:
        return [a for a in self.alerts if a.severity == severity]


class AlertDispatcher:
    """Fans alerts out to every registered sink."""

    def __init__(self, sinks: Optional[List[AlertSink]] = None):
        self._sinks: List[AlertSink] = list(sinks) if sinks is not None else [LoggingAlertSink()]

    def dispatch(self, alert: Alert) -> None:
        for sink in self._sinks:
            try:
                sink.send(alert)
            except Exception:
                # Sink failures are logged, never raised
                logger.exception(f"Alert sink {type(sink).__name__} failed")
