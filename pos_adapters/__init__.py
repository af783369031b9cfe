"""POS Adapters - Pluggable point-of-sale vendor integrations.

This package contains the abstract adapter contract, the vendor registry
and concrete adapters for specific POS vendors (Fudo, Bistrosoft, ...).

Importing the package registers every bundled adapter.
"""

from pos_adapters.pos_base import (
    POSAdapter,
    AdapterRegistration,
    register_adapter,
    get_adapter,
    get_registration,
    list_adapters,
    list_available_adapters,
)

# Register bundled vendors
from pos_adapters import fudo, bistrosoft  # noqa: E402,F401

__all__ = [
    "POSAdapter",
    "AdapterRegistration",
    "register_adapter",
    "get_adapter",
    "get_registration",
    "list_adapters",
    "list_available_adapters",
]
