"""Core data models - canonical sales and engine state.

This package contains the vendor-neutral sale model and the records the
engine persists (client config, tasks, retry jobs, log entries).
"""

from core.models.canonical import (
    # Base
    CanonicalBase,
    DecimalValue,
    TimestampValue,

    # Sales
    PaymentMethod,
    SaleModifier,
    CanonicalSaleItem,
    SaleCustomer,
    CanonicalSale,
    UNCATEGORIZED,
    validate_sale,
    ensure_valid_sales,
)

from core.models.refs import (
    utcnow,
    ClientConfig,
    DateRange,
    TaskType,
    TaskStatus,
    SyncTask,
    RetryOperation,
    RetryJob,
    LogSource,
    LogStatus,
    LogOperation,
    IntegrationLogEntry,
    CircuitState,
    StoredSale,
    SyncMode,
    SyncResult,
    IntegrationHealth,
    IntegrationStatus,
)

__all__ = [
    # Base
    "CanonicalBase",
    "DecimalValue",
    "TimestampValue",

    # Sales
    "PaymentMethod",
    "SaleModifier",
    "CanonicalSaleItem",
    "SaleCustomer",
    "CanonicalSale",
    "UNCATEGORIZED",
    "validate_sale",
    "ensure_valid_sales",

    # Engine state
    "utcnow",
    "ClientConfig",
    "DateRange",
    "TaskType",
    "TaskStatus",
    "SyncTask",
    "RetryOperation",
    "RetryJob",
    "LogSource",
    "LogStatus",
    "LogOperation",
    "IntegrationLogEntry",
    "CircuitState",
    "StoredSale",
    "SyncMode",
    "SyncResult",
    "IntegrationHealth",
    "IntegrationStatus",
]
