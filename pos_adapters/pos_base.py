"""Abstract POS Adapter Interface.

This module defines the contract every POS vendor adapter implements and
the static registry that maps a vendor key ("fudo", "bistrosoft", ...) to
an adapter factory plus its capability metadata.

Adapters:
1. Authenticate against the vendor API using ClientConfig.pos_settings
2. Fetch raw sales for a date range (or a batch of ticket ids)
3. Map raw vendor payloads to CanonicalSale - purely, one sale per record

The orchestrator depends ONLY on this interface. Vendor specifics live in
the vendor subpackages.

To add a new POS vendor:
1. Create a new folder (e.g., simphony/)
2. Implement POSAdapter
3. Register it with the @register_adapter decorator
4. Import the package from pos_adapters/__init__.py
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from core.errors import UnknownVendor
from core.models.canonical import CanonicalSale
from core.models.refs import ClientConfig, DateRange


class POSAdapter(ABC):
    """Base class for POS vendor adapters."""

    vendor_key: str = ""

    def __init__(self, config: ClientConfig):
        self.config = config

    @property
    def client_id(self) -> str:
        return self.config.client_id

    @property
    def fixture_name(self) -> str:
        """Sample payload used in simulation mode."""
        return f"{self.vendor_key}.sample.json"

    @abstractmethod
    async def fetch_sales(self, date_range: DateRange) -> List[CanonicalSale]:
        """Fetch and map the vendor's sales inside ``date_range``.

        Raises:
            VendorAuthFailure: Credentials rejected
            VendorFetchFailure: Transport or HTTP error
            ValidationFailure: Vendor payload could not be mapped
        """
        pass

    async def fetch_sales_by_ids(self, ids: List[str]) -> List[CanonicalSale]:
        """Fetch and map a batch of sales by external ticket/transaction id."""
        raise NotImplementedError(
            f"{self.vendor_key} does not support fetching sales by id"
        )

    @abstractmethod
    def map_to_tupa(self, raw_payload: Any) -> List[CanonicalSale]:
        """Map a raw vendor payload to canonical sales.

        Total: returns exactly one CanonicalSale per raw record, or raises
        ValidationFailure naming the offending record.
        """
        pass

    @abstractmethod
    async def validate_connection(self) -> bool:
        """Check that the configured credentials are accepted."""
        pass

    @abstractmethod
    async def get_last_sync(self) -> Optional[datetime]:
        """Vendor-side timestamp of the last synchronized sale, if known."""
        pass

    def get_supported_features(self) -> List[str]:
        registration = _adapter_registry.get(self.vendor_key)
        return list(registration.features) if registration else []

    async def close(self) -> None:
        """Release HTTP resources."""
        pass


# =============================================================================
# Adapter Registry
# =============================================================================

@dataclass
class AdapterRegistration:
    """Registry entry: factory plus capability metadata for one vendor."""
    key: str
    name: str
    version: str
    factory: Callable[[ClientConfig], POSAdapter]
    features: List[str] = field(default_factory=list)
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "name": self.name,
            "version": self.version,
            "features": list(self.features),
            "description": self.description,
        }


_adapter_registry: Dict[str, AdapterRegistration] = {}


def register_adapter(
    vendor_key: str,
    name: str,
    version: str,
    features: Optional[List[str]] = None,
    description: str = "",
):
    """Decorator to register a POS adapter implementation."""
    def decorator(cls):
        key = vendor_key.lower()
        cls.vendor_key = key
        _adapter_registry[key] = AdapterRegistration(
            key=key,
            name=name,
            version=version,
            factory=cls,
            features=list(features or []),
            description=description,
        )
        return cls
    return decorator


def get_adapter(vendor_key: str, config: ClientConfig) -> POSAdapter:
    """Create the adapter registered for ``vendor_key``.

    Raises:
        UnknownVendor: If no adapter is registered under the key
    """
    registration = _adapter_registry.get((vendor_key or "").lower())
    if registration is None:
        raise UnknownVendor(vendor_key, list_available_adapters())
    return registration.factory(config)


def get_registration(vendor_key: str) -> Optional[AdapterRegistration]:
    return _adapter_registry.get((vendor_key or "").lower())


def list_available_adapters() -> List[str]:
    """List all registered vendor keys."""
    return list(_adapter_registry.keys())


def list_adapters() -> List[AdapterRegistration]:
    return list(_adapter_registry.values())
