"""Bistrosoft raw payload models and client configuration.

Bistrosoft speaks Spanish on the wire (venta, productos, forma_pago...);
field names are kept as-is here and translated in the mapper.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from core.errors import VendorAuthFailure
from core.models.canonical import DecimalValue

BISTROSOFT_DEFAULT_BASE_URL = "https://api.bistrosoft.com/v1"


class BistrosoftRawBase(BaseModel):
    model_config = ConfigDict(extra="allow")


class BistrosoftRawProduct(BistrosoftRawBase):
    codigo: Optional[str] = None
    nombre: str
    cantidad: DecimalValue
    precio_unitario: DecimalValue
    categoria: Optional[str] = None
    observaciones: Optional[str] = None


class BistrosoftRawCustomer(BistrosoftRawBase):
    cliente_id: Optional[str] = None
    nombre: Optional[str] = None
    telefono: Optional[str] = None
    email: Optional[str] = None
    documento: Optional[str] = None


class BistrosoftRawSale(BistrosoftRawBase):
    venta_id: str
    fecha_hora: str
    total_venta: DecimalValue
    productos: List[BistrosoftRawProduct]
    cliente: Optional[BistrosoftRawCustomer] = None
    forma_pago: str = ""
    numero_ticket: str
    mesa: Optional[Union[int, str]] = None
    mozo: Optional[str] = None
    descuentos: Optional[DecimalValue] = None


class BistrosoftLoginResponse(BistrosoftRawBase):
    token: str
    expires_in: int = Field(default=3600, description="Token lifetime in seconds")


@dataclass
class BistrosoftConfig:
    """Connection settings read from ClientConfig.pos_settings."""
    usuario: str
    password: str
    empresa_id: str
    base_url: str = BISTROSOFT_DEFAULT_BASE_URL
    timeout_seconds: int = 30

    @classmethod
    def from_settings(cls, settings: Dict[str, Any]) -> "BistrosoftConfig":
        usuario = settings.get("usuario") or settings.get("username")
        password = settings.get("password")
        empresa_id = settings.get("empresa_id") or settings.get("company_id")
        if not usuario or not password or not empresa_id:
            raise VendorAuthFailure(
                "Bistrosoft settings require 'usuario', 'password' and 'empresa_id'",
                retryable=False,
            )
        return cls(
            usuario=usuario,
            password=password,
            empresa_id=str(empresa_id),
            base_url=settings.get("base_url") or BISTROSOFT_DEFAULT_BASE_URL,
            timeout_seconds=int(settings.get("timeout_seconds", 30)),
        )
