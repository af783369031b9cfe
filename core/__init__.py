"""Core module - vendor-neutral models, storage, audit log and configuration.

Nothing in here knows about a specific POS vendor or ERP.
POS specifics live in /pos_adapters/, ERP specifics in /connectors/.
"""

__version__ = "1.0.0"
