"""Odoo ERP connector (JSON-RPC client, sandbox, mapper, sync service)."""

from connectors.odoo.odoo_client import OdooClient
from connectors.odoo.sandbox import SandboxOdooClient
from connectors.odoo.odoo_service import OdooSyncService

__all__ = ["OdooClient", "SandboxOdooClient", "OdooSyncService"]
