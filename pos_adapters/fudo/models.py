"""Fudo raw payload models and client configuration."""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from core.errors import VendorAuthFailure
from core.models.canonical import DecimalValue

FUDO_DEFAULT_BASE_URL = "https://api.fudo.com.ar/v1"


class FudoRawBase(BaseModel):
    model_config = ConfigDict(extra="allow")


class FudoRawModifier(FudoRawBase):
    name: str
    price: DecimalValue = Field(default=0)


class FudoRawItem(FudoRawBase):
    id: Optional[str] = None
    name: str
    quantity: DecimalValue
    price: DecimalValue
    category: Optional[str] = None
    modifiers: List[FudoRawModifier] = Field(default_factory=list)


class FudoRawCustomer(FudoRawBase):
    id: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class FudoRawSale(FudoRawBase):
    id: str
    created_at: str
    total: DecimalValue
    items: List[FudoRawItem]
    customer: Optional[FudoRawCustomer] = None
    payment_method: str = ""
    transaction_id: str
    table_number: Optional[Union[int, str]] = None
    waiter_id: Optional[str] = None


@dataclass
class FudoConfig:
    """Connection settings read from ClientConfig.pos_settings."""
    api_key: str
    store_id: str
    base_url: str = FUDO_DEFAULT_BASE_URL
    timeout_seconds: int = 30

    @classmethod
    def from_settings(cls, settings: Dict[str, Any]) -> "FudoConfig":
        api_key = settings.get("api_key")
        store_id = settings.get("store_id")
        if not api_key or not store_id:
            raise VendorAuthFailure(
                "Fudo settings require 'api_key' and 'store_id'",
                retryable=False,
            )
        return cls(
            api_key=api_key,
            store_id=str(store_id),
            base_url=settings.get("base_url") or FUDO_DEFAULT_BASE_URL,
            timeout_seconds=int(settings.get("timeout_seconds", 30)),
        )
