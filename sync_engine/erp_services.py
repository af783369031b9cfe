"""Resolves the ERP sync service for a client.

Simulation clients share one sandbox-backed service. Production clients
get an Odoo JSON-RPC client built from the global Odoo settings with the
client's ``erp_settings`` applied on top; clients pointing at the same
Odoo database share a service (and therefore its session and customer cache).
"""

from typing import Dict, Optional, Tuple

from connectors.erp_base import ERPConfig, create_connector
from connectors.odoo.odoo_service import OdooSyncService
from connectors.odoo.sandbox import SandboxOdooClient
from core.audit.events import IntegrationLogger
from core.config import OdooSettings
from core.models.refs import ClientConfig
from core.observability.logging import get_logger
from core.storage.sales import SalesStore

logger = get_logger(__name__)


def _flag(erp_config: ERPConfig, name: str, default: bool) -> bool:
    value = erp_config.custom_settings.get(name)
    return default if value is None else bool(value)


class ErpServiceProvider:
    """Callable ``ClientConfig -> OdooSyncService`` used by the orchestrator."""

    def __init__(
        self,
        odoo_settings: OdooSettings,
        integration_logger: Optional[IntegrationLogger],
        sales_store: Optional[SalesStore],
        sandbox_client: Optional[SandboxOdooClient] = None,
    ):
        self.odoo_settings = odoo_settings
        self.integration_logger = integration_logger
        self.sales_store = sales_store
        self.sandbox = OdooSyncService(
            sandbox_client or SandboxOdooClient(),
            integration_logger,
            sales_store,
            create_stock_moves=odoo_settings.create_stock_moves,
            create_invoices=odoo_settings.create_invoices,
        )
        self._services: Dict[Tuple[str, str, str], OdooSyncService] = {}

    def base_config(self) -> ERPConfig:
        s = self.odoo_settings
        return ERPConfig(
            connector_type="odoo",
            base_url=s.url,
            database=s.database,
            username=s.username,
            password=s.password,
            timeout_seconds=s.timeout_seconds,
            lang=s.lang,
            tz=s.tz,
        )

    def __call__(self, config: ClientConfig) -> OdooSyncService:
        if config.simulation_mode:
            return self.sandbox

        erp_config = self.base_config().with_overrides(config.erp_settings)
        key = (erp_config.base_url or "", erp_config.database or "", erp_config.username or "")
        service = self._services.get(key)
        if service is None:
            service = OdooSyncService(
                create_connector(erp_config),
                self.integration_logger,
                self.sales_store,
                create_stock_moves=_flag(erp_config, "create_stock_moves", self.odoo_settings.create_stock_moves),
                create_invoices=_flag(erp_config, "create_invoices", self.odoo_settings.create_invoices),
            )
            self._services[key] = service
            logger.info(f"Created Odoo sync service for {erp_config.base_url} ({erp_config.database})")
        return service

    async def close(self) -> None:
        for service in self._services.values():
            await service.client.close()
        self._services.clear()
