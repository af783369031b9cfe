"""ERP Connectors - Pluggable ERP system integrations.

This package contains the abstract ERP RPC interface and the Odoo
implementation (live JSON-RPC client, in-memory sandbox, mapper and the
sale sync service).

Key Design Principle:
- The orchestrator depends ONLY on OdooSyncService results
  (SaleOrderResult / ERPSyncResult)
- No Odoo-specific payloads leak into the canonical sale model

To add a new ERP:
1. Create a new folder (e.g., sap/)
2. Implement ERPRpcClient
3. Register using @register_connector decorator
"""

from connectors.erp_base import (
    # Core interface
    ERPRpcClient,
    ERPConfig,

    # Results
    SaleOrderResult,
    ERPSyncResult,

    # Factory functions
    create_connector,
    register_connector,
    list_available_connectors,
)

# Register bundled connectors
from connectors import odoo  # noqa: E402,F401

__all__ = [
    "ERPRpcClient",
    "ERPConfig",
    "SaleOrderResult",
    "ERPSyncResult",
    "create_connector",
    "register_connector",
    "list_available_connectors",
]
