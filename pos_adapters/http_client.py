"""Shared HTTP client for POS vendor APIs.

Low-level aiohttp wrapper used by every vendor client.
Handles session lifecycle, timeouts, transient retries and the mapping of
HTTP failures onto the engine's error taxonomy:

- 401/403               -> VendorAuthFailure
- 429/5xx after retries -> VendorFetchFailure
- other 4xx             -> VendorFetchFailure
- transport / timeout   -> VendorFetchFailure
- unparseable JSON      -> ValidationFailure
"""

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import aiohttp

from core.errors import ValidationFailure, VendorAuthFailure, VendorFetchFailure
from core.observability.logging import get_logger

logger = get_logger(__name__)


@dataclass
class VendorRetryConfig:
    """Transport-level retries for transient vendor errors.

    These are short, in-request retries. Retries across minutes are the
    job of the retry queue.
    """
    max_retries: int = 2
    base_delay: float = 0.5  # seconds
    max_delay: float = 5.0  # seconds
    exponential_base: float = 2.0
    retry_on_status: Tuple[int, ...] = (429, 500, 502, 503, 504)

    def get_delay(self, attempt: int) -> float:
        """Calculate delay for retry attempt (exponential backoff)."""
        delay = self.base_delay * (self.exponential_base ** attempt)
        return min(delay, self.max_delay)


class VendorHttpClient:
    """Base HTTP client for a POS vendor.

    Subclasses set ``provider`` and implement ``_auth_headers``.
    A session can be injected (tests, connection sharing); otherwise one is
    created lazily and closed by ``close()``.
    """

    provider: str = "pos"

    def __init__(
        self,
        base_url: str,
        timeout_seconds: int = 30,
        retry_config: Optional[VendorRetryConfig] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.retry_config = retry_config or VendorRetryConfig()
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    async def _auth_headers(self) -> Dict[str, str]:
        """Vendor-specific authentication headers."""
        return {}

    def _build_url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
        authenticated: bool = True,
    ) -> Any:
        """Make a request with automatic retries on transient failures.

        Returns:
            Parsed JSON body ({} for empty responses)

        Raises:
            VendorAuthFailure: 401/403
            VendorFetchFailure: Other HTTP or transport failures
            ValidationFailure: Response body is not JSON
        """
        url = self._build_url(path)
        session = await self._get_session()
        retry_config = self.retry_config
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)

        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if authenticated:
            headers.update(await self._auth_headers())

        for attempt in range(retry_config.max_retries + 1):
            try:
                async with session.request(
                    method,
                    url,
                    headers=headers,
                    params=params,
                    json=json_body,
                    timeout=timeout,
                ) as response:
                    response_text = await response.text()
                    status = response.status

                    if status < 400:
                        if status == 204 or not response_text:
                            return {}
                        try:
                            return json.loads(response_text)
                        except json.JSONDecodeError as e:
                            raise ValidationFailure(
                                f"{self.provider} returned malformed JSON from {path}: {e}"
                            )

                    if status in (401, 403):
                        raise VendorAuthFailure(
                            f"{self.provider} authentication failed ({status})",
                            status,
                            response_text,
                        )

                    if status in retry_config.retry_on_status and attempt < retry_config.max_retries:
                        delay = retry_config.get_delay(attempt)
                        if status == 429 and "Retry-After" in response.headers:
                            delay = min(float(response.headers["Retry-After"]), retry_config.max_delay)
                        logger.warning(
                            f"{self.provider} request failed with {status}, "
                            f"retrying in {delay:.1f}s (attempt {attempt + 1}/{retry_config.max_retries})"
                        )
                        await asyncio.sleep(delay)
                        continue

                    raise VendorFetchFailure(
                        f"{self.provider} API error {status}: {response_text[:200]}",
                        status,
                        response_text,
                    )

            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                if attempt < retry_config.max_retries:
                    delay = retry_config.get_delay(attempt)
                    logger.warning(
                        f"{self.provider} request failed with {type(e).__name__}: {e}, "
                        f"retrying in {delay:.1f}s"
                    )
                    await asyncio.sleep(delay)
                    continue
                raise VendorFetchFailure(
                    f"{self.provider} request to {path} failed after "
                    f"{retry_config.max_retries} retries: {type(e).__name__}: {e}"
                ) from e

        raise VendorFetchFailure(f"{self.provider} request to {path} failed")
