"""Bistrosoft -> canonical sale mapping. Pure functions, no I/O."""

from decimal import Decimal
from typing import Any, Dict, List

from core.errors import ValidationFailure
from core.models.canonical import (
    CanonicalSale,
    CanonicalSaleItem,
    PaymentMethod,
    SaleCustomer,
    UNCATEGORIZED,
)
from pos_adapters import vocab
from pos_adapters.bistrosoft.models import BistrosoftRawSale

PROVIDER = "bistrosoft"

PAYMENT_METHOD_MAP = {
    "efectivo": PaymentMethod.CASH.value,
    "tarjeta_credito": PaymentMethod.CREDIT_CARD.value,
    "tarjeta_debito": PaymentMethod.DEBIT_CARD.value,
    "transferencia": PaymentMethod.BANK_TRANSFER.value,
    "mercadopago": PaymentMethod.DIGITAL_WALLET.value,
    "billetera_digital": PaymentMethod.DIGITAL_WALLET.value,
    "cheque": PaymentMethod.CHECK.value,
}

CATEGORY_MAP = {
    "cafe": vocab.COFFEE,
    "cafeteria": vocab.COFFEE,
    "panaderia": vocab.BAKERY,
    "pasteleria": vocab.PASTRY,
    "bebidas": vocab.BEVERAGES,
    "cocina": vocab.FOOD,
    "minutas": vocab.FOOD,
    "postres": vocab.DESSERTS,
    "almacen": vocab.RETAIL,
}


def normalize_payment_method(value: str) -> PaymentMethod:
    return PaymentMethod(vocab.normalize_term(value, PAYMENT_METHOD_MAP, PaymentMethod.OTHER.value))


def normalize_category(value: str) -> str:
    return vocab.normalize_term(value, CATEGORY_MAP, UNCATEGORIZED)


def extract_records(payload: Any) -> List[Any]:
    """Accept the API envelope ``{"data": {"ventas": [...]}}``, ``{"ventas": [...]}`` or a list."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        data = payload.get("data")
        if isinstance(data, dict) and isinstance(data.get("ventas"), list):
            return data["ventas"]
        if isinstance(payload.get("ventas"), list):
            return payload["ventas"]
    raise ValidationFailure("Invalid Bistrosoft data format: expected a 'ventas' list")


def map_sale(record: Dict[str, Any]) -> CanonicalSale:
    raw = BistrosoftRawSale.model_validate(record)
    discount = raw.descuentos or Decimal("0")

    customer = None
    if raw.cliente is not None:
        customer = SaleCustomer(
            id=raw.cliente.cliente_id,
            name=raw.cliente.nombre,
            email=raw.cliente.email,
            phone=raw.cliente.telefono,
            document=raw.cliente.documento,
        )

    return CanonicalSale(
        id=raw.venta_id,
        timestamp=raw.fecha_hora,
        amount=raw.total_venta - discount,
        items=[
            CanonicalSaleItem(
                name=producto.nombre,
                quantity=producto.cantidad,
                unit_price=producto.precio_unitario,
                category=normalize_category(producto.categoria),
                sku=producto.codigo,
                notes=producto.observaciones,
            )
            for producto in raw.productos
        ],
        customer=customer,
        payment_method=normalize_payment_method(raw.forma_pago),
        pos_transaction_id=raw.numero_ticket,
        metadata={
            "mesa": raw.mesa,
            "mozo": raw.mozo,
            "descuentos": str(raw.descuentos) if raw.descuentos is not None else None,
            "pos_provider": PROVIDER,
        },
    )


def map_to_tupa(payload: Any) -> List[CanonicalSale]:
    """Map a Bistrosoft ventas payload to canonical sales, one per record."""
    return vocab.map_records(PROVIDER, extract_records(payload), "venta_id", map_sale)
