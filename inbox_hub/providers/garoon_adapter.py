"""
Cybozu Garoon notification adapter.

Garoon is usually on-premises, so ``config.base_url`` is required. App login
uses the ``X-Cybozu-Authorization`` header (base64 of ``user:pass``). Some
deployments put a reverse proxy with its own Basic auth in front; that layer
is sent as a regular ``Authorization`` header when proxy credentials exist.
"""

import logging
from typing import Any

import httpx

from inbox_hub.providers.base_adapter import ProviderAdapter, parse_iso_millis
from inbox_hub.providers.errors import ConfigurationError
from inbox_hub.providers.http_client import ProviderHTTPClient, basic_auth_value
from inbox_hub.providers.schemas import (
    ProviderConfig,
    ProviderId,
    UnifiedMessage,
    now_millis,
)

logger = logging.getLogger(__name__)

NOTIFICATION_FIELDS = "id,creator,createdAt,title,body,url,isRead"


class GaroonAdapter(ProviderAdapter):
    """Garoon adapter reading the notification item list."""

    def __init__(
        self,
        config: ProviderConfig,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(config)
        self._timeout = timeout
        self._transport = transport

    @property
    def provider_id(self) -> ProviderId:
        return ProviderId.GAROON

    @property
    def base_url(self) -> str:
        return (self._config.base_url or "").rstrip("/")

    def _headers(self) -> dict[str, str]:
        headers = {
            "X-Cybozu-Authorization": basic_auth_value(
                self._config.username or "", self._config.password or "",
            ),
            "Content-Type": "application/json",
        }
        if self._config.proxy_username:
            proxy = basic_auth_value(
                self._config.proxy_username, self._config.proxy_password or "",
            )
            headers["Authorization"] = f"Basic {proxy}"
        return headers

    async def _notifications(self, params: dict[str, str]) -> list[dict[str, Any]]:
        if not self.base_url:
            raise ConfigurationError("Garoon URL not configured")

        async with ProviderHTTPClient(
            "Garoon", timeout=self._timeout, transport=self._transport,
        ) as client:
            data = await client.get_json(
                f"{self.base_url}/api/v1/notification/items",
                params=params,
                headers=self._headers(),
            )
        return data.get("notifications", [])

    async def fetch_messages(self) -> list[UnifiedMessage]:
        items = await self._notifications({"limit": "20", "fields": NOTIFICATION_FIELDS})
        return self._finalize([
            self._transform(item) for item in items if not item.get("isRead")
        ])

    def _transform(self, raw: dict[str, Any]) -> UnifiedMessage:
        return UnifiedMessage(
            id=f"garoon-{raw['id']}",
            provider_id=ProviderId.GAROON,
            sender=(raw.get("creator") or {}).get("name", "Unknown"),
            content=raw.get("title") or raw.get("body", ""),
            timestamp=parse_iso_millis(raw.get("createdAt")) or now_millis(),
            is_unread=not raw.get("isRead", False),
            deep_link=self.build_link(raw.get("url")),
        )

    async def get_unread_count(self) -> int:
        items = await self._notifications({"limit": "100", "fields": "id,isRead"})
        return sum(1 for item in items if not item.get("isRead"))

    def build_link(self, url: str | None) -> str:
        if url:
            if url.startswith("http"):
                return url
            return f"{self.base_url}{url}"
        return f"{self.base_url}/"

    def get_deep_link(self, message_id: str) -> str:
        return self.build_link(None)

    async def test_connection(self) -> bool:
        try:
            await self._notifications({"limit": "1"})
            return True
        except Exception as e:
            logger.debug("Garoon connection test failed: %s", e)
            return False
