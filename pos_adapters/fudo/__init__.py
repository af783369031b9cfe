"""Fudo POS integration."""

from pos_adapters.fudo.adapter import FudoAdapter
from pos_adapters.fudo.client import FudoClient
from pos_adapters.fudo.models import FudoConfig

__all__ = ["FudoAdapter", "FudoClient", "FudoConfig"]
