"""Canonical sales model - vendor-neutral POS data.

Every POS adapter maps its raw payload into these models. Nothing
downstream (storage, ERP sync) ever sees a vendor-specific shape.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ConfigDict
from pydantic.functional_validators import BeforeValidator
from typing_extensions import Annotated

from core.errors import ValidationFailure


# =============================================================================
# Value Parsers (handle the number/date formats POS vendors send)
# =============================================================================

def _parse_decimal(value):
    """Parse decimal from ints, floats or strings with $ and thousands separators."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if isinstance(value, str):
        s = value.strip()
        if s == "":
            return None
        s = s.replace("$", "").replace(",", "")
        return Decimal(s)
    return value


def parse_timestamp(value):
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if value is None:
        return None
    if isinstance(value, str):
        s = value.strip()
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        value = datetime.fromisoformat(s)
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


DecimalValue = Annotated[Decimal, BeforeValidator(_parse_decimal)]
TimestampValue = Annotated[datetime, BeforeValidator(parse_timestamp)]


# =============================================================================
# Base Model
# =============================================================================

class CanonicalBase(BaseModel):
    """Base model for all canonical data structures."""
    model_config = ConfigDict(populate_by_name=True)


class PaymentMethod(str, Enum):
    """Normalized payment methods."""
    CASH = "cash"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    BANK_TRANSFER = "bank_transfer"
    DIGITAL_WALLET = "digital_wallet"
    CHECK = "check"
    OTHER = "other"


UNCATEGORIZED = "uncategorized"


# =============================================================================
# Sale
# =============================================================================

class SaleModifier(CanonicalBase):
    """Add-on applied to a sale item (extra shot, oat milk, ...)."""
    name: str
    price: DecimalValue = Field(default=Decimal("0"), ge=0)


class CanonicalSaleItem(CanonicalBase):
    """A single line on a sale."""
    name: str = Field(..., min_length=1)
    quantity: DecimalValue = Field(..., gt=0)
    unit_price: DecimalValue = Field(..., ge=0)
    category: str = UNCATEGORIZED
    modifiers: List[SaleModifier] = Field(default_factory=list)
    sku: Optional[str] = None
    notes: Optional[str] = None

    @property
    def line_total(self) -> Decimal:
        return self.quantity * self.unit_price


class SaleCustomer(CanonicalBase):
    """Customer attached to a sale, as known by the POS."""
    id: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    document: Optional[str] = None


class CanonicalSale(CanonicalBase):
    """Normalized sale record produced by every POS adapter.

    Attributes:
        id: Sale identifier, unique within the source POS
        timestamp: When the sale happened (timezone-aware)
        amount: Total charged, after discounts
        items: Ordered sale lines, never empty
        customer: Optional customer data
        payment_method: Normalized payment method
        pos_transaction_id: Idempotency key used by the ERP sync
        metadata: Free-form vendor attributes; always carries ``pos_provider``
    """
    id: str = Field(..., min_length=1)
    timestamp: TimestampValue
    amount: DecimalValue = Field(..., ge=0)
    items: List[CanonicalSaleItem] = Field(..., min_length=1)
    customer: Optional[SaleCustomer] = None
    payment_method: PaymentMethod = PaymentMethod.OTHER
    pos_transaction_id: str = Field(..., min_length=1)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def pos_provider(self) -> Optional[str]:
        return self.metadata.get("pos_provider")


# =============================================================================
# Validation
# =============================================================================

def validate_sale(sale: CanonicalSale) -> List[str]:
    """Check a sale against the invariants required before storage or ERP push.

    Pydantic already enforces the field constraints at construction time;
    this repeats them for sales built with ``model_construct`` or mutated
    afterwards, and adds the strict ``amount > 0`` rule.

    Returns:
        List of error messages (empty if valid)
    """
    errors: List[str] = []
    if not sale.id:
        errors.append("Sale ID is required")
    if not sale.timestamp:
        errors.append("Sale timestamp is required")
    if sale.amount is None or sale.amount <= 0:
        errors.append("Sale amount must be positive")
    if not sale.items:
        errors.append("Sale must have at least one item")
    if not sale.pos_transaction_id:
        errors.append("POS transaction ID is required")

    for index, item in enumerate(sale.items or []):
        if not item.name:
            errors.append(f"Item {index + 1}: name is required")
        if item.quantity is None or item.quantity <= 0:
            errors.append(f"Item {index + 1}: quantity must be positive")
        if item.unit_price is None or item.unit_price < 0:
            errors.append(f"Item {index + 1}: price cannot be negative")

    return errors


def ensure_valid_sales(sales: List[CanonicalSale]) -> None:
    """Raise ValidationFailure for the first invalid sale in the batch."""
    for index, sale in enumerate(sales):
        errors = validate_sale(sale)
        if errors:
            raise ValidationFailure(
                f"Sale {sale.id or index} is invalid: {'; '.join(errors)}",
                record_id=sale.id,
                index=index,
                errors=errors,
            )
