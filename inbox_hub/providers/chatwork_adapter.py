"""
Chatwork REST adapter.

Lists rooms, picks the five with the most unread messages and pulls their
latest messages. Authentication is a per-user API token sent in the
``X-ChatWorkToken`` header.
"""

import logging
from typing import Any

import httpx

from inbox_hub.providers.base_adapter import (
    ProviderAdapter,
    strip_prefix,
)
from inbox_hub.providers.errors import ConfigurationError, TransientProviderError
from inbox_hub.providers.http_client import ProviderHTTPClient
from inbox_hub.providers.schemas import ProviderConfig, ProviderId, UnifiedMessage

logger = logging.getLogger(__name__)

CHATWORK_API = "https://api.chatwork.com/v2"
CHATWORK_WEB = "https://www.chatwork.com/"

# Rooms inspected per fetch, busiest first
MAX_ROOMS = 5


class ChatworkAdapter(ProviderAdapter):
    """Chatwork adapter using the v2 REST API."""

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
        return ProviderId.CHATWORK

    def _headers(self) -> dict[str, str]:
        token = self._config.api_token or ""
        if not token:
            raise ConfigurationError("Chatwork API token not configured")
        return {"X-ChatWorkToken": token}

    def _client(self) -> ProviderHTTPClient:
        return ProviderHTTPClient(
            "Chatwork",
            timeout=self._timeout,
            transport=self._transport,
        )

    async def fetch_messages(self) -> list[UnifiedMessage]:
        headers = self._headers()

        async with self._client() as client:
            rooms = await client.get_json(f"{CHATWORK_API}/rooms", headers=headers)
            unread_rooms = sorted(
                (r for r in rooms if r.get("unread_num", 0) > 0),
                key=lambda r: r["unread_num"],
                reverse=True,
            )[:MAX_ROOMS]

            messages: list[UnifiedMessage] = []
            for room in unread_rooms:
                try:
                    raw_messages = await client.get_json(
                        f"{CHATWORK_API}/rooms/{room['room_id']}/messages",
                        params={"force": "1"},
                        headers=headers,
                    )
                except TransientProviderError as e:
                    logger.warning(
                        "Skipping Chatwork room %s: %s", room.get("room_id"), e,
                    )
                    continue

                for raw in (raw_messages or [])[-self.max_messages:]:
                    messages.append(self._transform(raw, room))

        return self._finalize(messages)

    def _transform(self, raw: dict[str, Any], room: dict[str, Any]) -> UnifiedMessage:
        account = raw.get("account", {})
        message_id = str(raw["message_id"])
        return UnifiedMessage(
            id=f"chatwork-{message_id}",
            provider_id=ProviderId.CHATWORK,
            sender=account.get("name", "Unknown"),
            sender_avatar=account.get("avatar_image_url"),
            content=raw.get("body", ""),
            timestamp=int(raw.get("send_time", 0)) * 1000,
            is_unread=True,
            deep_link=self.build_room_link(message_id, room["room_id"]),
            channel_name=room.get("name"),
        )

    async def get_unread_count(self) -> int:
        headers = self._headers()
        async with self._client() as client:
            rooms = await client.get_json(f"{CHATWORK_API}/rooms", headers=headers)
        return sum(r.get("unread_num", 0) for r in rooms)

    def build_room_link(self, message_id: str, room_id: int | str) -> str:
        raw_id = strip_prefix(message_id, "chatwork-")
        return f"https://www.chatwork.com/#!rid{room_id}-{raw_id}"

    def get_deep_link(self, message_id: str) -> str:
        # Room id is not recoverable from the unified id alone
        return CHATWORK_WEB

    async def test_connection(self) -> bool:
        try:
            headers = self._headers()
            async with self._client() as client:
                await client.get_json(f"{CHATWORK_API}/me", headers=headers)
            return True
        except Exception as e:
            logger.debug("Chatwork connection test failed: %s", e)
            return False
