"""Abstract ERP Connector Interface.

This module defines the low-level RPC contract ERP connectors implement and
the normalized result types the sync service returns. It is intentionally
ERP-agnostic: Odoo specifics live in the odoo/ subpackage.

Connectors implement this interface to:
1. Authenticate with their ERP (session or bearer credential)
2. Create, search, read and write records by model name

Key Design Principles:
- The sync service and orchestrator see ONLY SaleOrderResult / ERPSyncResult
- The ERP's record id is the join key stored next to the canonical sale
- Connectors are registered by key and built from ERPConfig
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field


# =============================================================================
# Configuration
# =============================================================================

@dataclass
class ERPConfig:
    """Configuration for an ERP connector.

    Generic configuration that can be extended by specific connectors.
    """
    connector_type: str                     # "odoo", "odoo_sandbox"
    base_url: Optional[str] = None          # ERP endpoint
    database: Optional[str] = None          # Odoo database name
    username: Optional[str] = None
    password: Optional[str] = None
    timeout_seconds: int = 30               # Per-request timeout

    # Context sent with every call
    lang: str = "es_AR"
    tz: str = "America/Argentina/Buenos_Aires"

    # ERP-specific settings
    custom_settings: Dict[str, Any] = field(default_factory=dict)

    def with_overrides(self, overrides: Dict[str, Any]) -> "ERPConfig":
        """Copy with per-client overrides (ClientConfig.erp_settings) applied."""
        data = {k: v for k, v in self.__dict__.items()}
        for key, value in (overrides or {}).items():
            if key in data and value is not None:
                data[key] = value
            else:
                data["custom_settings"] = {**data["custom_settings"], key: value}
        return ERPConfig(**data)


# =============================================================================
# Results
# =============================================================================

class SaleOrderResult(BaseModel):
    """Outcome of pushing one canonical sale to the ERP.

    Never raised: failures are reported with ``success=False``.
    """
    sale_id: str
    success: bool
    erp_id: Optional[int] = Field(default=None, description="ERP sale order id")
    error: Optional[str] = None
    error_code: Optional[str] = None
    retryable: bool = False
    duplicate: bool = Field(default=False, description="Order already existed for this transaction")
    partner_id: Optional[int] = None
    warnings: List[str] = Field(default_factory=list)


class ERPSyncResult(BaseModel):
    """Aggregate outcome of a batch push. ``success`` only if every sale succeeded."""
    success: bool
    synced_count: int = 0
    failed_count: int = 0
    errors: List[str] = Field(default_factory=list)
    results: List[SaleOrderResult] = Field(default_factory=list)

    @property
    def any_retryable(self) -> bool:
        return any(r.retryable for r in self.results if not r.success)

    def summary(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "synced_count": self.synced_count,
            "failed_count": self.failed_count,
            "errors": list(self.errors),
        }


# =============================================================================
# RPC Interface
# =============================================================================

class ERPRpcClient(ABC):
    """Record-level RPC access to an ERP.

    Domains follow the Odoo convention: a list of ``(field, operator, value)``
    triples that are AND-ed together.
    """

    def __init__(self, config: ERPConfig):
        self.config = config

    @abstractmethod
    async def authenticate(self) -> int:
        """Open a session. Returns the ERP user id.

        Raises:
            ErpAuthFailure: Credentials rejected or ERP unreachable
        """
        pass

    @abstractmethod
    async def create(self, model: str, values: Dict[str, Any]) -> int:
        """Create a record and return its id."""
        pass

    @abstractmethod
    async def write(self, model: str, ids: Sequence[int], values: Dict[str, Any]) -> bool:
        """Update records."""
        pass

    @abstractmethod
    async def search(
        self,
        model: str,
        domain: List[Sequence[Any]],
        limit: Optional[int] = None,
    ) -> List[int]:
        """Return ids of records matching ``domain``."""
        pass

    @abstractmethod
    async def read(
        self,
        model: str,
        ids: Sequence[int],
        fields: Optional[List[str]] = None,
    ) -> List[Dict[str, Any]]:
        """Read records by id."""
        pass

    async def close(self) -> None:
        """Release transport resources."""
        pass

    def get_connector_name(self) -> str:
        return self.config.connector_type


# =============================================================================
# Connector Factory
# =============================================================================

_connector_registry: Dict[str, type] = {}


def register_connector(connector_type: str):
    """Decorator to register a connector implementation."""
    def decorator(cls):
        _connector_registry[connector_type] = cls
        return cls
    return decorator


def create_connector(config: ERPConfig) -> ERPRpcClient:
    """Create a connector instance from configuration.

    Args:
        config: ERPConfig with connector_type specified

    Returns:
        Configured connector instance

    Raises:
        ValueError: If connector_type is not registered
    """
    connector_type = config.connector_type.lower()

    if connector_type not in _connector_registry:
        available = list(_connector_registry.keys())
        raise ValueError(
            f"Unknown connector type: {connector_type}. "
            f"Available: {available}"
        )

    connector_class = _connector_registry[connector_type]
    return connector_class(config)


def list_available_connectors() -> List[str]:
    """List all registered connector types."""
    return list(_connector_registry.keys())
