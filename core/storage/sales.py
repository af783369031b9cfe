"""Sales storage - canonical sales per client with sync flags."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional

from core.models.canonical import CanonicalSale
from core.models.refs import StoredSale, utcnow
from core.storage.state_store import StateStore


class SalesStore:
    """Persists canonical sales and the ERP join key for each one.

    Each sale lives under its own ``sales:<client_id>:<sale_id>`` key, so a
    write touches one sale no matter how large the client's history grows.
    Storing the same sale again refreshes its data but keeps the ERP sync
    flags, so a re-run never forgets that a sale was already pushed.
    """

    def __init__(self, store: StateStore):
        self._store = store

    @staticmethod
    def _client_prefix(client_id: str) -> str:
        return f"sales:{client_id}:"

    @classmethod
    def _sale_key(cls, client_id: str, sale_id: str) -> str:
        return f"{cls._client_prefix(client_id)}{sale_id}"

    @staticmethod
    def _last_sync_key(client_id: str) -> str:
        return f"last_sync:{client_id}"

    def _load(self, client_id: str) -> Dict[str, StoredSale]:
        sales = [StoredSale.model_validate(raw) for raw in self._store.load_prefix(self._client_prefix(client_id)).values()]
        # Prefix also matches clients named "<client_id>:..."
        return {sale.id: sale for sale in sales if sale.client_id == client_id}

    def store_parsed_sales(self, client_id: str, sales: Iterable[CanonicalSale]) -> List[StoredSale]:
        """Upsert a batch of validated sales for a client."""
        now = utcnow()
        stored: List[StoredSale] = []

        for sale in sales:
            fields = sale.model_dump(include=set(CanonicalSale.model_fields))

            def apply(raw: Optional[Dict[str, Any]]) -> Dict[str, Any]:
                previous = StoredSale.model_validate(raw) if raw else None
                record = StoredSale(
                    **fields,
                    client_id=client_id,
                    stored_at=now,
                    processed=True,
                    erp_synced=previous.erp_synced if previous else False,
                    erp_id=previous.erp_id if previous else None,
                    erp_synced_at=previous.erp_synced_at if previous else None,
                )
                return record.model_dump(mode="json")

            stored.append(StoredSale.model_validate(self._store.update(self._sale_key(client_id, sale.id), apply)))

        return stored

    def get_sales_for_client(self, client_id: str, limit: Optional[int] = 50) -> List[StoredSale]:
        """Newest sales first."""
        sales = sorted(self._load(client_id).values(), key=lambda s: s.timestamp, reverse=True)
        return sales[:limit] if limit else sales

    def get_sale(self, client_id: str, sale_id: str) -> Optional[StoredSale]:
        raw = self._store.load(self._sale_key(client_id, sale_id))
        return StoredSale.model_validate(raw) if raw is not None else None

    def get_unsynced_sales(self, client_id: str) -> List[StoredSale]:
        return [s for s in self._load(client_id).values() if not s.erp_synced]

    def mark_sales_as_synced(self, client_id: str, erp_ids: Mapping[str, Optional[int]]) -> int:
        """Flag sales as pushed to the ERP, recording each one's ERP record id.

        Args:
            erp_ids: sale id -> ERP record id (None when the ERP returned none)

        Returns:
            Number of stored sales that were flagged
        """
        now = utcnow()
        count = 0

        for sale_id, erp_id in erp_ids.items():

            def apply(raw: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
                if raw is None:
                    return None
                sale = StoredSale.model_validate(raw)
                sale.erp_synced = True
                sale.erp_id = erp_id
                sale.erp_synced_at = now
                return sale.model_dump(mode="json")

            if self._store.update(self._sale_key(client_id, sale_id), apply) is not None:
                count += 1

        return count

    def get_sales_summary(self, client_id: str) -> Dict[str, object]:
        sales = list(self._load(client_id).values())
        return {
            "count": len(sales),
            "unsynced": sum(1 for s in sales if not s.erp_synced),
            "total_amount": sum((s.amount for s in sales), Decimal("0")),
        }

    # -------------------------------------------------------------------------
    # Last successful sync
    # -------------------------------------------------------------------------

    def get_last_sync(self, client_id: str) -> Optional[datetime]:
        raw = self._store.load(self._last_sync_key(client_id))
        return datetime.fromisoformat(raw) if raw else None

    def set_last_sync(self, client_id: str, when: Optional[datetime] = None) -> datetime:
        when = when or utcnow()
        self._store.save(self._last_sync_key(client_id), when.isoformat())
        return when
