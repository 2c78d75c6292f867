"""
Google Chat adapter.

The Chat API has no unread flag, so every recent human message in the first
five spaces counts as unread. Only Google Workspace accounts can use the
API; consumer accounts get 403/404.
"""

import logging
from typing import Any

import httpx

from inbox_hub.providers.base_adapter import (
    ProviderAdapter,
    parse_iso_millis,
    strip_prefix,
)
from inbox_hub.providers.errors import ConfigurationError, TransientProviderError
from inbox_hub.providers.http_client import ProviderHTTPClient
from inbox_hub.providers.schemas import (
    ProviderConfig,
    ProviderId,
    UnifiedMessage,
    now_millis,
)

logger = logging.getLogger(__name__)

CHAT_API = "https://chat.googleapis.com/v1"
MAX_SPACES = 5


class GoogleChatAdapter(ProviderAdapter):
    """Google Chat adapter using an OAuth bearer token."""

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
        return ProviderId.GOOGLE_CHAT

    def _headers(self) -> dict[str, str]:
        token = self._config.api_token or ""
        if not token:
            raise ConfigurationError("Google Chat OAuth token not configured")
        return {"Authorization": f"Bearer {token}"}

    async def _get(
        self,
        client: ProviderHTTPClient,
        path: str,
        params: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        try:
            return await client.get_json(
                f"{CHAT_API}{path}", params=params, headers=self._headers(),
            )
        except TransientProviderError as e:
            if e.status_code == 404:
                raise ConfigurationError(
                    "Google Chat requires a Google Workspace account (not configured)",
                    status_code=404,
                ) from e
            raise

    async def fetch_messages(self) -> list[UnifiedMessage]:
        async with ProviderHTTPClient(
            "Google Chat", timeout=self._timeout, transport=self._transport,
        ) as client:
            spaces = (await self._get(client, "/spaces")).get("spaces") or []

            messages: list[UnifiedMessage] = []
            for space in spaces[:MAX_SPACES]:
                try:
                    data = await self._get(
                        client,
                        f"/{space['name']}/messages",
                        {"pageSize": "5", "orderBy": "createTime desc"},
                    )
                except TransientProviderError as e:
                    logger.warning("Skipping Google Chat space %s: %s", space["name"], e)
                    continue

                for raw in data.get("messages") or []:
                    if (raw.get("sender") or {}).get("type") == "BOT":
                        continue
                    messages.append(self._transform(raw, space))

        return self._finalize(messages)

    def _transform(self, raw: dict[str, Any], space: dict[str, Any]) -> UnifiedMessage:
        return UnifiedMessage(
            id=f"gchat-{raw['name']}",
            provider_id=ProviderId.GOOGLE_CHAT,
            sender=(raw.get("sender") or {}).get("displayName", "Unknown"),
            content=raw.get("text") or "",
            timestamp=parse_iso_millis(raw.get("createTime")) or now_millis(),
            is_unread=True,
            deep_link=self.get_deep_link(raw["name"]),
            channel_name=space.get("displayName"),
        )

    async def get_unread_count(self) -> int:
        return len(await self.fetch_messages())

    def get_deep_link(self, message_id: str) -> str:
        # spaces/<space>/messages/<message>
        parts = strip_prefix(message_id, "gchat-").split("/")
        space_id = parts[1] if len(parts) > 1 else ""
        return f"https://chat.google.com/room/{space_id}"

    async def test_connection(self) -> bool:
        try:
            async with ProviderHTTPClient(
                "Google Chat", timeout=self._timeout, transport=self._transport,
            ) as client:
                await self._get(client, "/spaces", {"pageSize": "1"})
            return True
        except Exception as e:
            logger.debug("Google Chat connection test failed: %s", e)
            return False
