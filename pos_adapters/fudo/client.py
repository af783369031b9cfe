"""Fudo HTTP client (API key + store header)."""

from datetime import datetime
from typing import Any, Dict, List, Optional

import aiohttp

from core.errors import ValidationFailure, VendorAuthFailure
from core.observability.logging import get_logger
from pos_adapters.fudo.models import FudoConfig
from pos_adapters.http_client import VendorHttpClient, VendorRetryConfig

logger = get_logger(__name__)


class FudoClient(VendorHttpClient):
    """Authenticated client for the Fudo REST API.

    Usage:
        client = FudoClient(FudoConfig(api_key="...", store_id="42"))
        raw_sales = await client.get_sales(start, end)
        await client.close()
    """

    provider = "fudo"

    def __init__(
        self,
        config: FudoConfig,
        session: Optional[aiohttp.ClientSession] = None,
        retry_config: Optional[VendorRetryConfig] = None,
    ):
        super().__init__(
            config.base_url,
            timeout_seconds=config.timeout_seconds,
            retry_config=retry_config,
            session=session,
        )
        self.config = config

    async def _auth_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "X-Store-ID": self.config.store_id,
        }

    async def validate_credentials(self) -> bool:
        """POST /auth/validate; False when the API key is rejected."""
        try:
            await self.request("POST", "/auth/validate")
            return True
        except VendorAuthFailure as e:
            logger.warning(f"Fudo credentials rejected: {e}")
            return False

    async def get_sales(self, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        data = await self.request(
            "GET",
            "/sales",
            params={
                "from": start.isoformat(),
                "to": end.isoformat(),
                "store_id": self.config.store_id,
            },
        )
        return _sales_list(data)

    async def get_sales_by_ids(self, sale_ids: List[str]) -> List[Dict[str, Any]]:
        data = await self.request("POST", "/sales/batch", json_body={"sale_ids": list(sale_ids)})
        return _sales_list(data)

    async def get_last_sync_timestamp(self) -> Optional[str]:
        data = await self.request("GET", "/sync/last-timestamp")
        if isinstance(data, dict):
            return data.get("timestamp")
        return None


def _sales_list(data: Any) -> List[Dict[str, Any]]:
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        sales = data.get("sales", [])
        if isinstance(sales, list):
            return sales
    raise ValidationFailure("Fudo sales response is missing the 'sales' list")
