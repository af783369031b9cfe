"""Error taxonomy for the POS synchronization engine.

Every failure that crosses a component boundary is one of these types.
The ``retryable`` flag tells the orchestrator whether to hand the failure
to the retry queue or log it as a permanent failure.
"""

from typing import Any, Dict, List, Optional


class SyncEngineError(Exception):
    """Base exception for all engine errors."""
    code: str = "SYNC_ENGINE_ERROR"
    retryable: bool = False

    def __init__(
        self,
        message: str,
        retryable: Optional[bool] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if retryable is not None:
            self.retryable = retryable
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }


class ClientNotFound(SyncEngineError):
    """No configuration stored for the requested client."""
    code = "CLIENT_NOT_FOUND"

    def __init__(self, client_id: str):
        super().__init__(f"Client not found: {client_id}")
        self.client_id = client_id


class ClientInactive(SyncEngineError):
    """Client exists but its integration is switched off."""
    code = "CLIENT_INACTIVE"

    def __init__(self, client_id: str):
        super().__init__(f"Integration is inactive for client {client_id}")
        self.client_id = client_id


class UnknownVendor(SyncEngineError):
    """POS vendor key is not registered."""
    code = "UNKNOWN_VENDOR"

    def __init__(self, vendor_key: str, available: Optional[List[str]] = None):
        available = available or []
        super().__init__(
            f"Unknown POS vendor: {vendor_key}. Available: {available}",
            details={"available": available},
        )
        self.vendor_key = vendor_key


class CircuitOpen(SyncEngineError):
    """Client integration is paused by the circuit breaker."""
    code = "CIRCUIT_OPEN"

    def __init__(self, client_id: str, reason: Optional[str] = None):
        message = f"Integration paused for client {client_id}"
        if reason:
            message += f": {reason}"
        super().__init__(message)
        self.client_id = client_id
        self.reason = reason


class VendorAuthFailure(SyncEngineError):
    """POS vendor rejected our credentials (401/403 or failed login)."""
    code = "VENDOR_AUTH_FAILED"
    retryable = True

    def __init__(
        self,
        message: str,
        status_code: int = 0,
        response_body: str = "",
        retryable: Optional[bool] = None,
    ):
        super().__init__(message, retryable=retryable)
        self.status_code = status_code
        self.response_body = response_body


class VendorFetchFailure(SyncEngineError):
    """Transport or HTTP error while talking to a POS vendor."""
    code = "VENDOR_FETCH_FAILED"
    retryable = True

    def __init__(
        self,
        message: str,
        status_code: int = 0,
        response_body: str = "",
        retryable: Optional[bool] = None,
    ):
        super().__init__(message, retryable=retryable)
        self.status_code = status_code
        self.response_body = response_body


class ValidationFailure(SyncEngineError):
    """Malformed vendor payload or a sale that breaks the canonical invariants.

    Never retried: it points at a mapping bug or corrupt vendor data.
    """
    code = "VALIDATION_FAILED"

    def __init__(
        self,
        message: str,
        record_id: Optional[str] = None,
        index: Optional[int] = None,
        errors: Optional[List[str]] = None,
    ):
        super().__init__(
            message,
            details={"record_id": record_id, "index": index, "errors": errors or []},
        )
        self.record_id = record_id
        self.index = index
        self.errors = errors or []


class ErpAuthFailure(SyncEngineError):
    """ERP session could not be established."""
    code = "ERP_AUTH_FAILED"
    retryable = True


class ErpWriteFailure(SyncEngineError):
    """ERP rejected or failed a write."""
    code = "ERP_WRITE_FAILED"
    retryable = True

    def __init__(
        self,
        message: str,
        sale_id: Optional[str] = None,
        retryable: Optional[bool] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, retryable=retryable, details=details)
        self.sale_id = sale_id


class UnexpectedSyncError(SyncEngineError):
    """Wraps an unexpected exception caught at the orchestrator boundary."""
    code = "UNEXPECTED_ERROR"
    retryable = True
