"""Canonical sale -> Odoo payload mapping."""

from datetime import timezone
from typing import List, Optional

from connectors.odoo.odoo_models import (
    ODOO_DATE_FORMAT,
    ODOO_DATETIME_FORMAT,
    OdooInvoice,
    OdooInvoiceLine,
    OdooOrderLine,
    OdooPartner,
    OdooSaleOrder,
    OdooStockMove,
)
from core.models.canonical import CanonicalSale, CanonicalSaleItem, SaleCustomer, validate_sale

DEFAULT_CUSTOMER_ID = 1  # Odoo's default customer
DEFAULT_PRODUCT_ID = 1  # Default product for unmapped items
DEFAULT_WAREHOUSE_LOCATION_ID = 1
CUSTOMER_LOCATION_ID = 5  # Partners/Customers location in a standard install


def sale_origin(sale: CanonicalSale) -> str:
    """Idempotency key stored on every ERP document created for a sale."""
    return f"POS-{sale.pos_transaction_id}"


def _odoo_datetime(sale: CanonicalSale) -> str:
    return sale.timestamp.astimezone(timezone.utc).strftime(ODOO_DATETIME_FORMAT)


def _line_name(item: CanonicalSaleItem) -> str:
    if not item.modifiers:
        return item.name
    return f"{item.name} ({', '.join(m.name for m in item.modifiers)})"


def map_customer(customer: SaleCustomer) -> OdooPartner:
    return OdooPartner(
        name=customer.name or customer.email,
        email=customer.email,
        phone=customer.phone,
        vat=customer.document,
    )


def map_sale_order(
    sale: CanonicalSale,
    partner_id: Optional[int] = None,
    product_id: int = DEFAULT_PRODUCT_ID,
) -> OdooSaleOrder:
    provider = sale.pos_provider or "POS"
    return OdooSaleOrder(
        partner_id=partner_id or DEFAULT_CUSTOMER_ID,
        date_order=_odoo_datetime(sale),
        origin=sale_origin(sale),
        client_order_ref=sale.id,
        note=f"Imported from {provider} - Payment: {sale.payment_method.value}",
        order_line=[
            OdooOrderLine(
                name=_line_name(item),
                product_id=product_id,
                product_uom_qty=float(item.quantity),
                price_unit=float(item.unit_price),
            )
            for item in sale.items
        ],
    )


def map_stock_moves(
    sale: CanonicalSale,
    warehouse_location_id: int = DEFAULT_WAREHOUSE_LOCATION_ID,
    product_id: int = DEFAULT_PRODUCT_ID,
) -> List[OdooStockMove]:
    return [
        OdooStockMove(
            name=f"Sale: {item.name}",
            product_id=product_id,
            product_uom_qty=float(item.quantity),
            location_id=warehouse_location_id,
            location_dest_id=CUSTOMER_LOCATION_ID,
            origin=sale_origin(sale),
            date=_odoo_datetime(sale),
        )
        for item in sale.items
    ]


def map_invoice(sale: CanonicalSale, partner_id: int, product_id: int = DEFAULT_PRODUCT_ID) -> OdooInvoice:
    return OdooInvoice(
        partner_id=partner_id,
        invoice_date=sale.timestamp.astimezone(timezone.utc).strftime(ODOO_DATE_FORMAT),
        invoice_origin=sale_origin(sale),
        ref=sale.id,
        invoice_line_ids=[
            OdooInvoiceLine(
                name=_line_name(item),
                product_id=product_id,
                quantity=float(item.quantity),
                price_unit=float(item.unit_price),
            )
            for item in sale.items
        ],
    )


def validate_sale_data(sale: CanonicalSale) -> List[str]:
    """Canonical invariants plus the fields Odoo needs on a sale order."""
    errors = validate_sale(sale)
    if sale.timestamp is not None and sale.timestamp.tzinfo is None:
        errors.append("Sale timestamp must be timezone-aware")
    return errors
