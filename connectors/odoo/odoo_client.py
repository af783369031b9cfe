"""Odoo JSON-RPC Client.

Low-level HTTP client for the Odoo web JSON-RPC endpoints.
Handles session authentication, the call_kw envelope, timeouts and error
mapping:

- session/authenticate rejected, 401/403, "Session expired"  -> ErpAuthFailure
- transport errors, timeouts, 5xx                            -> ErpWriteFailure (retryable)
- server-side validation/user/access errors                  -> ErpWriteFailure (not retryable)
"""

import asyncio
import itertools
import json
from typing import Any, Dict, List, Optional, Sequence

import aiohttp

from connectors.erp_base import ERPConfig, ERPRpcClient, register_connector
from core.errors import ErpAuthFailure, ErpWriteFailure
from core.observability.logging import get_logger

logger = get_logger(__name__)

# Odoo exception types that will fail the same way on every retry
NON_RETRYABLE_ERRORS = (
    "odoo.exceptions.ValidationError",
    "odoo.exceptions.UserError",
    "odoo.exceptions.AccessError",
    "odoo.exceptions.MissingError",
)


@register_connector("odoo")
class OdooClient(ERPRpcClient):
    """JSON-RPC client for an Odoo instance.

    Usage:
        client = OdooClient(ERPConfig(connector_type="odoo", base_url=..., database=...,
                                      username=..., password=...))
        await client.authenticate()
        order_id = await client.create("sale.order", {...})
        await client.close()
    """

    def __init__(self, config: ERPConfig, session: Optional[aiohttp.ClientSession] = None):
        super().__init__(config)
        if not config.base_url:
            raise ValueError("Odoo connector requires base_url")
        self.base_url = config.base_url.rstrip("/")
        self._session = session
        self._owns_session = session is None
        self._session_id: Optional[str] = None
        self.uid: Optional[int] = None
        self._request_ids = itertools.count(1)

    @property
    def is_authenticated(self) -> bool:
        return self.uid is not None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    async def _rpc(self, path: str, params: Dict[str, Any]) -> Any:
        """POST a JSON-RPC 2.0 envelope and return ``result``."""
        session = await self._get_session()
        body = {
            "jsonrpc": "2.0",
            "method": "call",
            "params": params,
            "id": next(self._request_ids),
        }
        headers = {"Content-Type": "application/json"}
        if self._session_id:
            headers["Cookie"] = f"session_id={self._session_id}"

        timeout = aiohttp.ClientTimeout(total=self.config.timeout_seconds)
        try:
            async with session.post(
                f"{self.base_url}{path}",
                json=body,
                headers=headers,
                timeout=timeout,
            ) as response:
                response_text = await response.text()

                if response.status in (401, 403):
                    raise ErpAuthFailure(f"Odoo rejected the session ({response.status})")
                if response.status >= 400:
                    raise ErpWriteFailure(
                        f"Odoo HTTP error {response.status}: {response_text[:200]}",
                        retryable=response.status >= 500 or response.status == 429,
                    )

                cookie = response.cookies.get("session_id") if response.cookies else None
                if cookie is not None and cookie.value:
                    self._session_id = cookie.value

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ErpWriteFailure(
                f"Odoo request to {path} failed: {type(e).__name__}: {e}",
                retryable=True,
            ) from e

        try:
            data = json.loads(response_text) if response_text else {}
        except json.JSONDecodeError as e:
            raise ErpWriteFailure(f"Odoo returned malformed JSON: {e}", retryable=True) from e

        if data.get("error"):
            self._raise_rpc_error(data["error"])
        return data.get("result")

    def _raise_rpc_error(self, error: Dict[str, Any]) -> None:
        err_data = error.get("data") or {}
        name = err_data.get("name", "")
        message = err_data.get("message") or error.get("message") or "Unknown Odoo error"

        if error.get("code") == 100 or "SessionExpired" in name or "AccessDenied" in name:
            self.uid = None
            self._session_id = None
            raise ErpAuthFailure(f"Odoo session error: {message}")

        raise ErpWriteFailure(
            f"Odoo error: {message}",
            retryable=name not in NON_RETRYABLE_ERRORS,
            details={"odoo_error": name},
        )

    async def authenticate(self) -> int:
        """POST /web/session/authenticate and keep the session cookie."""
        try:
            result = await self._rpc(
                "/web/session/authenticate",
                {
                    "db": self.config.database,
                    "login": self.config.username,
                    "password": self.config.password,
                },
            )
        except ErpWriteFailure as e:
            raise ErpAuthFailure(f"Odoo authentication failed: {e.message}") from e

        uid = result.get("uid") if isinstance(result, dict) else None
        if not uid:
            raise ErpAuthFailure("Odoo authentication failed: invalid credentials")

        if not self._session_id and result.get("session_id"):
            self._session_id = result["session_id"]
        self.uid = uid
        logger.info(f"Authenticated with Odoo as uid {uid}", extra_fields={"database": self.config.database})
        return uid

    async def call(
        self,
        model: str,
        method: str,
        args: List[Any],
        kwargs: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Invoke ``model.method(*args, **kwargs)`` through /web/dataset/call_kw."""
        if not self.is_authenticated:
            await self.authenticate()

        call_kwargs = dict(kwargs or {})
        call_kwargs["context"] = {
            "lang": self.config.lang,
            "tz": self.config.tz,
            **call_kwargs.get("context", {}),
        }
        return await self._rpc(
            "/web/dataset/call_kw",
            {
                "model": model,
                "method": method,
                "args": args,
                "kwargs": call_kwargs,
            },
        )

    async def create(self, model: str, values: Dict[str, Any]) -> int:
        return await self.call(model, "create", [values])

    async def write(self, model: str, ids: Sequence[int], values: Dict[str, Any]) -> bool:
        return await self.call(model, "write", [list(ids), values])

    async def search(
        self,
        model: str,
        domain: List[Sequence[Any]],
        limit: Optional[int] = None,
    ) -> List[int]:
        kwargs = {"limit": limit} if limit else {}
        return await self.call(model, "search", [[list(term) for term in domain]], kwargs)

    async def read(
        self,
        model: str,
        ids: Sequence[int],
        fields: Optional[List[str]] = None,
    ) -> List[Dict[str, Any]]:
        kwargs = {"fields": fields} if fields else {}
        return await self.call(model, "read", [list(ids)], kwargs)
