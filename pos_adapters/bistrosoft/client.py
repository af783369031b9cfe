"""Bistrosoft HTTP client (login token + company header)."""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import aiohttp
from pydantic import ValidationError

from core.errors import ValidationFailure, VendorAuthFailure, VendorFetchFailure
from core.models.refs import utcnow
from core.observability.logging import get_logger
from pos_adapters.bistrosoft.models import BistrosoftConfig, BistrosoftLoginResponse
from pos_adapters.http_client import VendorHttpClient, VendorRetryConfig

logger = get_logger(__name__)

# Refresh the token slightly before it actually expires
TOKEN_EXPIRY_BUFFER = timedelta(seconds=30)


class BistrosoftClient(VendorHttpClient):
    """Authenticated client for the Bistrosoft API.

    Logs in with usuario/password/empresa_id, caches the bearer token until
    it expires and logs in again once on a 401/403.
    """

    provider = "bistrosoft"

    def __init__(
        self,
        config: BistrosoftConfig,
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
        self._token: Optional[str] = None
        self._token_expiry: Optional[datetime] = None

    def _token_valid(self) -> bool:
        if not self._token:
            return False
        if self._token_expiry is None:
            return True
        return utcnow() < self._token_expiry - TOKEN_EXPIRY_BUFFER

    async def login(self) -> str:
        """POST /login and cache the returned token."""
        data = await super().request(
            "POST",
            "/login",
            json_body={
                "usuario": self.config.usuario,
                "password": self.config.password,
                "empresa_id": self.config.empresa_id,
            },
            authenticated=False,
        )
        try:
            login = BistrosoftLoginResponse.model_validate(data)
        except ValidationError as e:
            raise VendorAuthFailure(f"Bistrosoft login response is malformed: {e}") from e

        self._token = login.token
        self._token_expiry = utcnow() + timedelta(seconds=login.expires_in)
        logger.debug(f"Bistrosoft token acquired, expires in {login.expires_in}s")
        return login.token

    async def _auth_headers(self) -> Dict[str, str]:
        if not self._token_valid():
            await self.login()
        return {
            "Authorization": f"Bearer {self._token}",
            "X-Empresa-ID": self.config.empresa_id,
        }

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
        authenticated: bool = True,
    ) -> Any:
        had_token = self._token_valid()
        try:
            return await super().request(method, path, params, json_body, authenticated)
        except VendorAuthFailure:
            if not authenticated or not had_token:
                raise
            logger.warning("Bistrosoft returned 401/403, attempting token refresh...")
            self._token = None
            return await super().request(method, path, params, json_body, authenticated)

    async def validate_credentials(self) -> bool:
        try:
            await self.login()
            return True
        except VendorAuthFailure as e:
            logger.warning(f"Bistrosoft credentials rejected: {e}")
            return False

    async def get_sales(self, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        data = await self.request(
            "GET",
            "/ventas",
            params={
                "fecha_desde": start.isoformat(),
                "fecha_hasta": end.isoformat(),
                "empresa_id": self.config.empresa_id,
            },
        )
        return _ventas_list(data)

    async def get_sales_by_tickets(self, tickets: List[str]) -> List[Dict[str, Any]]:
        data = await self.request("POST", "/ventas/por-tickets", json_body={"tickets": list(tickets)})
        return _ventas_list(data)

    async def get_last_sync_timestamp(self) -> Optional[str]:
        data = await self.request("GET", "/sync/ultima-sincronizacion")
        if isinstance(data, dict) and isinstance(data.get("data"), dict):
            return data["data"].get("fecha_hora")
        return None


def _ventas_list(data: Any) -> List[Dict[str, Any]]:
    if not isinstance(data, dict):
        raise ValidationFailure("Bistrosoft response is not an object")
    if data.get("success") is False:
        raise VendorFetchFailure(f"Bistrosoft error: {data.get('mensaje') or 'unknown error'}")
    payload = data.get("data")
    if isinstance(payload, dict) and isinstance(payload.get("ventas"), list):
        return payload["ventas"]
    raise ValidationFailure("Bistrosoft response is missing data.ventas")
