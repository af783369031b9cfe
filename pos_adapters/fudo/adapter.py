"""Fudo POS adapter."""

from datetime import datetime
from typing import Any, List, Optional

from core.models.canonical import CanonicalSale, parse_timestamp
from core.models.refs import ClientConfig, DateRange
from pos_adapters.fudo import mapper
from pos_adapters.fudo.client import FudoClient
from pos_adapters.fudo.models import FudoConfig
from pos_adapters.pos_base import POSAdapter, register_adapter


@register_adapter(
    "fudo",
    name="Fudo POS",
    version="v1.0.0",
    features=[
        "sales_sync",
        "real_time_updates",
        "customer_data",
        "item_modifiers",
        "table_service",
    ],
    description="Fudo cloud POS (API key + store id)",
)
class FudoAdapter(POSAdapter):
    """Adapter for Fudo; the HTTP client is built on first use."""

    def __init__(self, config: ClientConfig, client: Optional[FudoClient] = None):
        super().__init__(config)
        self._client = client

    @property
    def client(self) -> FudoClient:
        if self._client is None:
            self._client = FudoClient(FudoConfig.from_settings(self.config.pos_settings))
        return self._client

    async def fetch_sales(self, date_range: DateRange) -> List[CanonicalSale]:
        raw_sales = await self.client.get_sales(date_range.start, date_range.end)
        return mapper.map_to_tupa(raw_sales)

    async def fetch_sales_by_ids(self, ids: List[str]) -> List[CanonicalSale]:
        raw_sales = await self.client.get_sales_by_ids(ids)
        return mapper.map_to_tupa(raw_sales)

    def map_to_tupa(self, raw_payload: Any) -> List[CanonicalSale]:
        return mapper.map_to_tupa(raw_payload)

    async def validate_connection(self) -> bool:
        return await self.client.validate_credentials()

    async def get_last_sync(self) -> Optional[datetime]:
        timestamp = await self.client.get_last_sync_timestamp()
        return parse_timestamp(timestamp) if timestamp else None

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
