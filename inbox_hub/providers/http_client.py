"""
HTTP infrastructure layer for provider adapters.

Provides:
- ProviderHTTPClient: Async JSON client that maps transport failures and
  HTTP status codes onto the ProviderError taxonomy
- basic_auth_value: Base64 ``user:pass`` helper for Basic-style headers

Retries are NOT done here. Every fetch already runs through the
aggregator's RetryPolicy, and retrying at both layers would multiply the
worst-case poll latency.
"""

import base64
import logging
from typing import Any

import httpx

from inbox_hub.providers.errors import (
    AuthenticationError,
    TransientProviderError,
)

logger = logging.getLogger(__name__)

# Status codes that mean the credentials are wrong, not the network
AUTH_STATUS_CODES = frozenset({401, 403})


def basic_auth_value(username: str, password: str) -> str:
    """Encode ``username:password`` as base64 (no ``Basic`` prefix)."""
    raw = f"{username}:{password}".encode("utf-8")
    return base64.b64encode(raw).decode("ascii")


class ProviderHTTPClient:
    """
    Async HTTP client that raises ProviderError subclasses.

    - 401/403 -> AuthenticationError (terminal, never retried)
    - any other status >= 400 -> TransientProviderError
    - timeouts and connection errors -> TransientProviderError

    Example:
        async with ProviderHTTPClient("Chatwork", timeout=15.0) as client:
            rooms = await client.get_json(
                "https://api.chatwork.com/v2/rooms",
                headers={"X-ChatWorkToken": token},
            )
    """

    def __init__(
        self,
        service_label: str,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize HTTP client.

        Args:
            service_label: Provider name used in error messages
            timeout: Request timeout in seconds
            transport: Optional transport (httpx.MockTransport in tests)
        """
        self.service_label = service_label
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "ProviderHTTPClient":
        """Enter async context manager, create client."""
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit async context manager, close client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get_json(
        self,
        url: str,
        params: dict[str, Any] | list[tuple[str, str]] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """
        Perform a GET request and decode the JSON body.

        Args:
            url: Request URL
            params: Query parameters
            headers: Request headers

        Returns:
            Decoded JSON payload

        Raises:
            AuthenticationError: On 401/403
            TransientProviderError: On other error statuses, transport
                failures or an undecodable body
        """
        if not self._client:
            raise RuntimeError("ProviderHTTPClient must be used as async context manager")

        try:
            response = await self._client.get(url, params=params, headers=headers)
        except httpx.TimeoutException as e:
            raise TransientProviderError(
                f"{self.service_label} API timeout: {e}"
            ) from e
        except httpx.HTTPError as e:
            raise TransientProviderError(
                f"{self.service_label} API connection error: {e}"
            ) from e

        if response.status_code in AUTH_STATUS_CODES:
            raise AuthenticationError(
                f"{self.service_label} API error: {response.status_code}",
                status_code=response.status_code,
                response_body=response.text,
            )

        if response.status_code >= 400:
            logger.warning(
                "%s returned %d for %s",
                self.service_label, response.status_code, url,
            )
            raise TransientProviderError(
                f"{self.service_label} API error: {response.status_code}",
                status_code=response.status_code,
                response_body=response.text,
            )

        try:
            return response.json()
        except ValueError as e:
            raise TransientProviderError(
                f"{self.service_label} API returned invalid JSON",
                status_code=response.status_code,
            ) from e
