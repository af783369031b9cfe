"""Odoo record payloads built from canonical sales."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

SALE_ORDER = "sale.order"
PARTNER = "res.partner"
STOCK_MOVE = "stock.move"
INVOICE = "account.move"

# Odoo date/datetime string formats
ODOO_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"
ODOO_DATE_FORMAT = "%Y-%m-%d"


class OdooRecord(BaseModel):
    """Base for payloads sent to ``create``."""

    def to_values(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class OdooPartner(OdooRecord):
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    vat: Optional[str] = None
    is_company: bool = False
    customer_rank: int = 1
    supplier_rank: int = 0


class OdooOrderLine(BaseModel):
    name: str
    product_id: int
    product_uom_qty: float
    price_unit: float


class OdooSaleOrder(OdooRecord):
    partner_id: int
    date_order: str
    origin: str = Field(..., description="POS-<pos_transaction_id>; idempotency key")
    client_order_ref: str
    note: Optional[str] = None
    order_line: List[OdooOrderLine] = Field(default_factory=list)

    def to_values(self) -> Dict[str, Any]:
        values = super().to_values()
        # One2many create commands: (0, 0, values)
        values["order_line"] = [[0, 0, line.model_dump(mode="json")] for line in self.order_line]
        return values


class OdooStockMove(OdooRecord):
    name: str
    product_id: int
    product_uom_qty: float
    location_id: int
    location_dest_id: int
    origin: str
    date: str


class OdooInvoiceLine(BaseModel):
    name: str
    product_id: int
    quantity: float
    price_unit: float


class OdooInvoice(OdooRecord):
    move_type: str = "out_invoice"
    partner_id: int
    invoice_date: str
    invoice_origin: str
    ref: Optional[str] = None
    invoice_line_ids: List[OdooInvoiceLine] = Field(default_factory=list)

    def to_values(self) -> Dict[str, Any]:
        values = super().to_values()
        values["invoice_line_ids"] = [[0, 0, line.model_dump(mode="json")] for line in self.invoice_line_ids]
        return values
