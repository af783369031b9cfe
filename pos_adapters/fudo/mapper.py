"""Fudo -> canonical sale mapping. Pure functions, no I/O."""

from typing import Any, Dict, List

from core.errors import ValidationFailure
from core.models.canonical import (
    CanonicalSale,
    CanonicalSaleItem,
    PaymentMethod,
    SaleCustomer,
    SaleModifier,
    UNCATEGORIZED,
)
from pos_adapters import vocab
from pos_adapters.fudo.models import FudoRawSale

PROVIDER = "fudo"

PAYMENT_METHOD_MAP = {
    "cash": PaymentMethod.CASH.value,
    "credit_card": PaymentMethod.CREDIT_CARD.value,
    "debit_card": PaymentMethod.DEBIT_CARD.value,
    "transfer": PaymentMethod.BANK_TRANSFER.value,
    "qr": PaymentMethod.DIGITAL_WALLET.value,
    "mercadopago": PaymentMethod.DIGITAL_WALLET.value,
}

CATEGORY_MAP = {
    "cafe": vocab.COFFEE,
    "coffee": vocab.COFFEE,
    "panaderia": vocab.BAKERY,
    "bakery": vocab.BAKERY,
    "pasteleria": vocab.PASTRY,
    "bebidas": vocab.BEVERAGES,
    "drinks": vocab.BEVERAGES,
    "comida": vocab.FOOD,
    "food": vocab.FOOD,
    "postres": vocab.DESSERTS,
    "merchandising": vocab.RETAIL,
}


def normalize_payment_method(value: str) -> PaymentMethod:
    return PaymentMethod(vocab.normalize_term(value, PAYMENT_METHOD_MAP, PaymentMethod.OTHER.value))


def normalize_category(value: str) -> str:
    return vocab.normalize_term(value, CATEGORY_MAP, UNCATEGORIZED)


def extract_records(payload: Any) -> List[Any]:
    """Accept either ``{"sales": [...]}`` or a bare list of sales."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get("sales"), list):
        return payload["sales"]
    raise ValidationFailure("Invalid Fudo data format: expected a 'sales' list")


def map_sale(record: Dict[str, Any]) -> CanonicalSale:
    raw = FudoRawSale.model_validate(record)
    customer = None
    if raw.customer is not None:
        customer = SaleCustomer(
            id=raw.customer.id,
            name=raw.customer.name,
            email=raw.customer.email,
            phone=raw.customer.phone,
        )

    return CanonicalSale(
        id=raw.id,
        timestamp=raw.created_at,
        amount=raw.total,
        items=[
            CanonicalSaleItem(
                name=item.name,
                quantity=item.quantity,
                unit_price=item.price,
                category=normalize_category(item.category),
                modifiers=[SaleModifier(name=m.name, price=m.price) for m in item.modifiers],
                sku=item.id,
            )
            for item in raw.items
        ],
        customer=customer,
        payment_method=normalize_payment_method(raw.payment_method),
        pos_transaction_id=raw.transaction_id,
        metadata={
            "table_number": raw.table_number,
            "waiter_id": raw.waiter_id,
            "pos_provider": PROVIDER,
        },
    )


def map_to_tupa(payload: Any) -> List[CanonicalSale]:
    """Map a Fudo sales payload to canonical sales, one per record."""
    return vocab.map_records(PROVIDER, extract_records(payload), "id", map_sale)
