"""Odoo sale synchronization service.

Pushes canonical sales into Odoo:
1. Validate the sale (canonical invariants + ERP fields)
2. Resolve the customer (cache -> search by email, else name -> create)
3. Skip sales whose order already exists (origin = POS-<pos_transaction_id>)
4. Create the sale order, then optional stock moves and invoice

``create_sale_order`` never raises, so one bad sale cannot abort a batch.
``sync_sales_to_odoo`` fans out over a client's batch and aggregates.
"""

import time
from typing import Any, Dict, List, Optional

from connectors.erp_base import ERPRpcClient, ERPSyncResult, SaleOrderResult
from connectors.odoo import odoo_mapper
from connectors.odoo.odoo_models import INVOICE, PARTNER, SALE_ORDER, STOCK_MOVE
from core.audit.events import IntegrationLogger
from core.errors import SyncEngineError
from core.models.canonical import CanonicalSale, SaleCustomer
from core.models.refs import LogOperation, LogSource
from core.observability.logging import get_logger
from core.storage.sales import SalesStore

logger = get_logger(__name__)


class OdooSyncService:
    """Creates Odoo records for canonical sales.

    Usage:
        service = OdooSyncService(OdooClient(config), integration_logger, sales_store)
        result = await service.sync_sales_to_odoo("c1", sales)
        if not result.success:
            ...
    """

    provider = "odoo"

    def __init__(
        self,
        client: ERPRpcClient,
        integration_logger: Optional[IntegrationLogger] = None,
        sales_store: Optional[SalesStore] = None,
        create_stock_moves: bool = False,
        create_invoices: bool = False,
    ):
        self.client = client
        self.integration_logger = integration_logger
        self.sales_store = sales_store
        self.create_stock_moves = create_stock_moves
        self.create_invoices = create_invoices
        self._customer_cache: Dict[str, int] = {}

    # =========================================================================
    # Customers
    # =========================================================================

    @staticmethod
    def _customer_cache_key(customer: SaleCustomer) -> Optional[str]:
        if customer.email:
            return f"email:{customer.email.strip().lower()}"
        if customer.name:
            return f"name:{customer.name.strip()}"
        return None

    async def ensure_customer_exists(self, customer: Optional[SaleCustomer]) -> int:
        """Return the Odoo partner id for a POS customer, creating it if needed.

        Lookup order: cache, then search by email, else by exact name.
        Sales without an identifiable customer go to the default customer.
        """
        if customer is None:
            return odoo_mapper.DEFAULT_CUSTOMER_ID

        cache_key = self._customer_cache_key(customer)
        if cache_key is None:
            return odoo_mapper.DEFAULT_CUSTOMER_ID
        if cache_key in self._customer_cache:
            return self._customer_cache[cache_key]

        if customer.email:
            domain = [("email", "=", customer.email)]
        else:
            domain = [("name", "=", customer.name)]

        existing = await self.client.search(PARTNER, domain, limit=1)
        if existing:
            partner_id = existing[0]
        else:
            partner = odoo_mapper.map_customer(customer)
            partner_id = await self.client.create(PARTNER, partner.to_values())
            logger.info(f"Created Odoo partner {partner_id} for {partner.name}")

        self._customer_cache[cache_key] = partner_id
        return partner_id

    def clear_customer_cache(self) -> None:
        self._customer_cache.clear()

    # =========================================================================
    # Documents
    # =========================================================================

    async def find_existing_sale_order(self, sale: CanonicalSale) -> Optional[int]:
        ids = await self.client.search(
            SALE_ORDER,
            [("origin", "=", odoo_mapper.sale_origin(sale))],
            limit=1,
        )
        return ids[0] if ids else None

    async def create_sale_order(self, sale: CanonicalSale) -> SaleOrderResult:
        """Create (or find) the Odoo sale order for one sale. Never raises."""
        errors = odoo_mapper.validate_sale_data(sale)
        if errors:
            return SaleOrderResult(
                sale_id=sale.id,
                success=False,
                error=f"Validation failed: {'; '.join(errors)}",
                error_code="VALIDATION_FAILED",
                retryable=False,
            )

        try:
            partner_id = await self.ensure_customer_exists(sale.customer)

            existing_id = await self.find_existing_sale_order(sale)
            if existing_id is not None:
                return SaleOrderResult(
                    sale_id=sale.id,
                    success=True,
                    erp_id=existing_id,
                    duplicate=True,
                    partner_id=partner_id,
                )

            order = odoo_mapper.map_sale_order(sale, partner_id)
            order_id = await self.client.create(SALE_ORDER, order.to_values())
            result = SaleOrderResult(
                sale_id=sale.id,
                success=True,
                erp_id=order_id,
                partner_id=partner_id,
            )

        except SyncEngineError as e:
            return SaleOrderResult(
                sale_id=sale.id,
                success=False,
                error=e.message,
                error_code=e.code,
                retryable=e.retryable,
            )
        except Exception as e:
            logger.exception(f"Unexpected error creating sale order for {sale.id}")
            return SaleOrderResult(
                sale_id=sale.id,
                success=False,
                error=f"{type(e).__name__}: {e}",
                error_code="UNEXPECTED",
                retryable=True,
            )

        # Follow-up documents: the order already exists, so failures here are warnings
        if self.create_stock_moves:
            try:
                await self.create_stock_movement(sale)
            except SyncEngineError as e:
                result.warnings.append(f"Stock movement failed: {e.message}")
        if self.create_invoices:
            try:
                await self.create_invoice(sale, partner_id)
            except SyncEngineError as e:
                result.warnings.append(f"Invoice failed: {e.message}")

        return result

    async def create_stock_movement(self, sale: CanonicalSale) -> List[int]:
        """One outgoing stock.move per sale item."""
        move_ids = []
        for move in odoo_mapper.map_stock_moves(sale):
            move_ids.append(await self.client.create(STOCK_MOVE, move.to_values()))
        return move_ids

    async def create_invoice(self, sale: CanonicalSale, partner_id: int) -> int:
        """Customer invoice (account.move, out_invoice) for the sale."""
        invoice = odoo_mapper.map_invoice(sale, partner_id)
        return await self.client.create(INVOICE, invoice.to_values())

    async def get_sale_order_by_id(self, order_id: int) -> Optional[Dict[str, Any]]:
        rows = await self.client.read(SALE_ORDER, [order_id])
        return rows[0] if rows else None

    async def test_connection(self) -> bool:
        try:
            await self.client.authenticate()
            return True
        except SyncEngineError as e:
            logger.warning(f"Odoo connection test failed: {e.message}")
            return False

    # =========================================================================
    # Batch
    # =========================================================================

    async def sync_sales_to_odoo(self, client_id: str, sales: List[CanonicalSale]) -> ERPSyncResult:
        """Push every sale for a client; keeps going past individual failures.

        Raises:
            ErpAuthFailure: The ERP session could not be opened (nothing was pushed)
        """
        await self.client.authenticate()

        results: List[SaleOrderResult] = []
        errors: List[str] = []
        synced: Dict[str, Optional[int]] = {}

        for sale in sales:
            started = time.monotonic()
            result = await self.create_sale_order(sale)
            duration_ms = (time.monotonic() - started) * 1000
            results.append(result)

            if result.success:
                synced[sale.id] = result.erp_id
                verb = "already exists" if result.duplicate else "created"
                self._log(
                    "log_success",
                    client_id,
                    f"Sale order {result.erp_id} {verb} in Odoo for sale {sale.id}",
                    duration_ms=duration_ms,
                    details={"sale_id": sale.id, "erp_id": result.erp_id, "duplicate": result.duplicate},
                )
                for warning in result.warnings:
                    self._log("log_warning", client_id, f"Sale {sale.id}: {warning}")
            else:
                errors.append(f"{sale.id}: {result.error}")
                # Per-sale failures are warnings; the caller logs the batch outcome
                self._log(
                    "log_warning",
                    client_id,
                    f"Sale {sale.id} was not synced to Odoo: {result.error}",
                    duration_ms=duration_ms,
                    error_code=result.error_code,
                    details={"sale_id": sale.id, "retryable": result.retryable},
                )

        if self.sales_store is not None and synced:
            self.sales_store.mark_sales_as_synced(client_id, synced)

        failed_count = sum(1 for r in results if not r.success)
        return ERPSyncResult(
            success=failed_count == 0,
            synced_count=len(results) - failed_count,
            failed_count=failed_count,
            errors=errors,
            results=results,
        )

    def _log(self, method: str, client_id: str, message: str, **kwargs) -> None:
        if self.integration_logger is None:
            return
        getattr(self.integration_logger, method)(
            client_id,
            LogSource.ERP,
            LogOperation.ERP_SYNC.value,
            message,
            provider=self.provider,
            **kwargs,
        )
