"""Core audit module - integration event log, circuit breaker and alerts."""

from core.audit.events import IntegrationLogger
from core.audit.alerts import (
    Alert,
    AlertSeverity,
    AlertSink,
    AlertDispatcher,
    LoggingAlertSink,
    InMemoryAlertSink,
)

__all__ = [
    "IntegrationLogger",
    "Alert",
    "AlertSeverity",
    "AlertSink",
    "AlertDispatcher",
    "LoggingAlertSink",
    "InMemoryAlertSink",
]
