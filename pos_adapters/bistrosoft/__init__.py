"""Bistrosoft POS integration."""

from pos_adapters.bistrosoft.adapter import BistrosoftAdapter
from pos_adapters.bistrosoft.client import BistrosoftClient
from pos_adapters.bistrosoft.models import BistrosoftConfig

__all__ = ["BistrosoftAdapter", "BistrosoftClient", "BistrosoftConfig"]
