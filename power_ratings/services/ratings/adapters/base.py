"""
Base HTTP adapter for the external ratings feeds.

Provides:
- A lazily created, reusable httpx.AsyncClient (or an injected one)
- Retry with exponential backoff on network errors, 429 and 5xx
- Translation of exhausted retries into ProviderError
"""
from typing import Any, Dict, Optional

import httpx
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from power_ratings.core.logging import get_logger
from power_ratings.services.ratings.exceptions import ProviderError

logger = get_logger(__name__)


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return False


class BaseHttpAdapter:
    """
    Shared plumbing for feed adapters.

    Subclasses set `provider` and call `_get()`; tests inject a client
    built on httpx.MockTransport.
    """

    provider = "http"

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: float = 30.0):
        self._client = client
        self._owns_client = client is None
        self.timeout = timeout

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
                headers={"Accept": "application/json"}
            )
        return self._client

    async def close(self):
        """Close the HTTP client if this adapter created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    @retry(
        retry=retry_if_exception(_is_retryable),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True
    )
    async def _request(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None
    ) -> httpx.Response:
        client = await self._get_client()
        response = await client.get(url, params=params, headers=headers)
        response.raise_for_status()
        return response

    async def _get(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None
    ) -> httpx.Response:
        """
        GET with retries.

        Raises:
            ProviderError: Request failed after retries or with a non-retryable status
        """
        try:
            return await self._request(url, params=params, headers=headers)
        except httpx.HTTPStatusError as e:
            raise ProviderError(self.provider, f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise ProviderError(self.provider, f"{type(e).__name__}: {e}") from e
