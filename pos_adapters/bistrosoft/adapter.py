"""Bistrosoft POS adapter."""

from datetime import datetime
from typing import Any, List, Optional

from core.models.canonical import CanonicalSale, parse_timestamp
from core.models.refs import ClientConfig, DateRange
from pos_adapters.bistrosoft import mapper
from pos_adapters.bistrosoft.client import BistrosoftClient
from pos_adapters.bistrosoft.models import BistrosoftConfig
from pos_adapters.pos_base import POSAdapter, register_adapter


@register_adapter(
    "bistrosoft",
    name="Bistrosoft",
    version="v1.0.0",
    features=[
        "sales_sync",
        "customer_data",
        "table_service",
        "discount_handling",
        "waiter_tracking",
    ],
    description="Bistrosoft restaurant POS (login token + empresa id)",
)
class BistrosoftAdapter(POSAdapter):

    def __init__(self, config: ClientConfig, client: Optional[BistrosoftClient] = None):
        super().__init__(config)
        self._client = client

    @property
    def client(self) -> BistrosoftClient:
        if self._client is None:
            self._client = BistrosoftClient(BistrosoftConfig.from_settings(self.config.pos_settings))
        return self._client

    async def fetch_sales(self, date_range: DateRange) -> List[CanonicalSale]:
        ventas = await self.client.get_sales(date_range.start, date_range.end)
        return mapper.map_to_tupa(ventas)

    async def fetch_sales_by_ids(self, ids: List[str]) -> List[CanonicalSale]:
        ventas = await self.client.get_sales_by_tickets(ids)
        return mapper.map_to_tupa(ventas)

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
