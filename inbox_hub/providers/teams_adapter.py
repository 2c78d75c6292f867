"""
Microsoft Teams adapter over Microsoft Graph.

Reads the ten most recent chats and the last five messages of each. The
bearer token is read from the config on every request, so a refreshed
token takes effect on the next cycle; a 401 is terminal for this one.
"""

import logging
from typing import Any

import httpx

from inbox_hub.providers.base_adapter import (
    ProviderAdapter,
    parse_iso_millis,
    strip_html,
)
from inbox_hub.providers.errors import (
    AuthenticationError,
    ConfigurationError,
    TransientProviderError,
)
from inbox_hub.providers.http_client import ProviderHTTPClient
from inbox_hub.providers.schemas import (
    ProviderConfig,
    ProviderId,
    UnifiedMessage,
    now_millis,
)

logger = logging.getLogger(__name__)

GRAPH_API = "https://graph.microsoft.com/v1.0"
TEAMS_WEB = "https://teams.microsoft.com/"


class TeamsAdapter(ProviderAdapter):
    """Teams chat adapter using a Graph access token."""

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
        return ProviderId.TEAMS

    def _token(self) -> str:
        if not self._config.api_token:
            raise ConfigurationError("Teams access token not configured")
        return self._config.api_token

    async def _get(self, client: ProviderHTTPClient, path: str) -> dict[str, Any]:
        try:
            return await client.get_json(
                f"{GRAPH_API}{path}",
                headers={"Authorization": f"Bearer {self._token()}"},
            )
        except AuthenticationError as e:
            if e.status_code == 401:
                raise AuthenticationError(
                    "Teams token expired (401)", status_code=401,
                ) from e
            raise

    def _client(self) -> ProviderHTTPClient:
        return ProviderHTTPClient("Teams", timeout=self._timeout, transport=self._transport)

    async def fetch_messages(self) -> list[UnifiedMessage]:
        async with self._client() as client:
            chats = await self._get(client, "/me/chats?$top=10")

            messages: list[UnifiedMessage] = []
            for chat in chats.get("value", []):
                try:
                    data = await self._get(
                        client,
                        f"/me/chats/{chat['id']}/messages"
                        "?$top=5&$orderby=createdDateTime desc",
                    )
                except TransientProviderError as e:
                    logger.warning("Skipping Teams chat %s: %s", chat["id"], e)
                    continue

                for raw in data.get("value", []):
                    user = (raw.get("from") or {}).get("user")
                    if not user:
                        continue
                    messages.append(self._transform(raw, chat, user))

        return self._finalize(messages)

    def _transform(
        self,
        raw: dict[str, Any],
        chat: dict[str, Any],
        user: dict[str, Any],
    ) -> UnifiedMessage:
        body = (raw.get("body") or {}).get("content", "")
        return UnifiedMessage(
            id=f"teams-{raw['id']}",
            provider_id=ProviderId.TEAMS,
            sender=user.get("displayName", "Unknown"),
            content=strip_html(body),
            timestamp=parse_iso_millis(raw.get("createdDateTime")) or now_millis(),
            is_unread=True,
            deep_link=self.build_chat_link(chat["id"]),
            channel_name=chat.get("topic") or "Chat",
        )

    async def get_unread_count(self) -> int:
        messages = await self.fetch_messages()
        return sum(1 for m in messages if m.is_unread)

    def build_chat_link(self, chat_id: str) -> str:
        return f"https://teams.microsoft.com/l/chat/{chat_id}/0"

    def get_deep_link(self, message_id: str) -> str:
        return TEAMS_WEB

    async def test_connection(self) -> bool:
        try:
            async with self._client() as client:
                await self._get(client, "/me")
            return True
        except Exception as e:
            logger.debug("Teams connection test failed: %s", e)
            return False
