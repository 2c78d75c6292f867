"""
Slack Web API adapter.

Lists the conversations the user is a member of, takes up to five with
unread messages and reads their latest history. Slack answers HTTP 200
with ``{"ok": false, "error": ...}`` for most failures, so the body is
checked as well as the status code.
"""

import logging
from typing import Any

import httpx

from inbox_hub.providers.base_adapter import ProviderAdapter
from inbox_hub.providers.errors import (
    AuthenticationError,
    ConfigurationError,
    TransientProviderError,
)
from inbox_hub.providers.http_client import ProviderHTTPClient
from inbox_hub.providers.schemas import ProviderConfig, ProviderId, UnifiedMessage

logger = logging.getLogger(__name__)

SLACK_API = "https://slack.com/api"
SLACK_WEB = "https://app.slack.com/"

CONVERSATION_TYPES = "public_channel,private_channel,im,mpim"
MAX_CHANNELS = 5
HISTORY_LIMIT = 5

# Slack error codes that mean the token itself is bad
AUTH_ERROR_CODES = frozenset({
    "invalid_auth",
    "not_authed",
    "token_revoked",
    "token_expired",
    "account_inactive",
})


class SlackAdapter(ProviderAdapter):
    """Slack adapter using a user token (``xoxp-``)."""

    def __init__(
        self,
        config: ProviderConfig,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(config)
        self._timeout = timeout
        self._transport = transport
        self._user_names: dict[str, str] = {}

    @property
    def provider_id(self) -> ProviderId:
        return ProviderId.SLACK

    def _headers(self) -> dict[str, str]:
        token = self._config.api_token or ""
        if not token:
            raise ConfigurationError("Slack token not configured")
        return {"Authorization": f"Bearer {token}"}

    async def _call(
        self,
        client: ProviderHTTPClient,
        method: str,
        params: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        data = await client.get_json(
            f"{SLACK_API}/{method}",
            params=params,
            headers=self._headers(),
        )
        if not data.get("ok"):
            error = data.get("error", "unknown_error")
            if error in AUTH_ERROR_CODES:
                raise AuthenticationError(f"Slack API error: {error} (invalid token)")
            raise TransientProviderError(f"Slack API error: {error}")
        return data

    async def _user_name(self, client: ProviderHTTPClient, user_id: str) -> str:
        cached = self._user_names.get(user_id)
        if cached:
            return cached

        try:
            data = await self._call(client, "users.info", {"user": user_id})
        except TransientProviderError:
            return user_id

        profile = data.get("user", {}).get("profile", {})
        name = profile.get("display_name") or profile.get("real_name") or user_id
        self._user_names[user_id] = name
        return name

    async def fetch_messages(self) -> list[UnifiedMessage]:
        self._headers()

        async with ProviderHTTPClient(
            "Slack", timeout=self._timeout, transport=self._transport,
        ) as client:
            data = await self._call(
                client,
                "conversations.list",
                {"types": CONVERSATION_TYPES, "limit": "20"},
            )
            channels = [
                c for c in data.get("channels", [])
                if c.get("is_member") and (c.get("unread_count_display") or 0) > 0
            ][:MAX_CHANNELS]

            messages: list[UnifiedMessage] = []
            for channel in channels:
                try:
                    history = await self._call(
                        client,
                        "conversations.history",
                        {"channel": channel["id"], "limit": str(HISTORY_LIMIT)},
                    )
                except TransientProviderError as e:
                    logger.warning("Skipping Slack channel %s: %s", channel["id"], e)
                    continue

                for raw in history.get("messages", []):
                    if raw.get("type") != "message":
                        continue
                    if raw.get("user"):
                        sender = await self._user_name(client, raw["user"])
                    else:
                        sender = raw.get("username") or "Unknown"
                    messages.append(self._transform(raw, channel, sender))

        return self._finalize(messages)

    def _transform(
        self,
        raw: dict[str, Any],
        channel: dict[str, Any],
        sender: str,
    ) -> UnifiedMessage:
        ts = raw["ts"]
        return UnifiedMessage(
            id=f"slack-{channel['id']}-{ts}",
            provider_id=ProviderId.SLACK,
            sender=sender,
            content=raw.get("text", ""),
            timestamp=int(float(ts) * 1000),
            is_unread=True,
            deep_link=self.build_channel_link(ts, channel["id"]),
            channel_name=channel.get("name"),
        )

    async def get_unread_count(self) -> int:
        async with ProviderHTTPClient(
            "Slack", timeout=self._timeout, transport=self._transport,
        ) as client:
            data = await self._call(
                client,
                "conversations.list",
                {"types": CONVERSATION_TYPES, "limit": "100"},
            )
        return sum(
            c.get("unread_count_display") or 0
            for c in data.get("channels", [])
            if c.get("is_member")
        )

    def build_channel_link(self, ts: str, channel_id: str) -> str:
        return f"https://app.slack.com/client/T00000000/{channel_id}/p{ts.replace('.', '')}"

    def get_deep_link(self, message_id: str) -> str:
        # slack-<channel>-<ts>
        parts = message_id.split("-", 2)
        if len(parts) == 3 and parts[0] == "slack":
            return self.build_channel_link(parts[2], parts[1])
        return SLACK_WEB

    async def test_connection(self) -> bool:
        try:
            async with ProviderHTTPClient(
                "Slack", timeout=self._timeout, transport=self._transport,
            ) as client:
                await self._call(client, "auth.test")
            return True
        except Exception as e:
            logger.debug("Slack connection test failed: %s", e)
            return False
