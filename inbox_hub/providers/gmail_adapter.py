"""
Gmail REST adapter.

Lists unread messages (``q=is:unread``) and fetches From/Subject metadata
for each one concurrently. Expects an OAuth access token in
``config.api_token``; acquiring and refreshing it is the host's job.
"""

import asyncio
import logging
import re
from typing import Any

import httpx

from inbox_hub.providers.base_adapter import (
    ProviderAdapter,
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

GMAIL_API = "https://gmail.googleapis.com/gmail/v1/users/me"

_SENDER_PATTERN = re.compile(r'^"?(.+?)"?\s*<.+>$')


def extract_sender_name(from_header: str) -> str:
    """``"Jane Doe" <jane@example.com>`` -> ``Jane Doe``."""
    match = _SENDER_PATTERN.match(from_header)
    return match.group(1) if match else from_header


class GmailAdapter(ProviderAdapter):
    """Gmail adapter using the Gmail v1 REST API."""

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
        return ProviderId.GMAIL

    def _headers(self) -> dict[str, str]:
        token = self._config.api_token or ""
        if not token:
            raise ConfigurationError("Gmail OAuth token not configured")
        return {"Authorization": f"Bearer {token}"}

    def _client(self) -> ProviderHTTPClient:
        return ProviderHTTPClient("Gmail", timeout=self._timeout, transport=self._transport)

    async def fetch_messages(self) -> list[UnifiedMessage]:
        headers = self._headers()

        async with self._client() as client:
            listing = await client.get_json(
                f"{GMAIL_API}/messages",
                params={"maxResults": str(self.max_messages), "q": "is:unread"},
                headers=headers,
            )
            refs = (listing.get("messages") or [])[:self.max_messages]
            if not refs:
                return []

            details = await asyncio.gather(
                *(self._fetch_detail(client, headers, ref["id"]) for ref in refs)
            )

        return self._finalize([m for m in details if m is not None])

    async def _fetch_detail(
        self,
        client: ProviderHTTPClient,
        headers: dict[str, str],
        message_id: str,
    ) -> UnifiedMessage | None:
        try:
            raw = await client.get_json(
                f"{GMAIL_API}/messages/{message_id}",
                params=[
                    ("format", "metadata"),
                    ("metadataHeaders", "From"),
                    ("metadataHeaders", "Subject"),
                ],
                headers=headers,
            )
        except TransientProviderError as e:
            logger.debug("Gmail message %s unavailable: %s", message_id, e)
            return None
        return self._transform(raw)

    def _transform(self, raw: dict[str, Any]) -> UnifiedMessage:
        header_list = (raw.get("payload") or {}).get("headers") or []
        headers = {h["name"]: h["value"] for h in header_list}
        subject = headers.get("Subject", "")
        labels = raw.get("labelIds")

        return UnifiedMessage(
            id=f"gmail-{raw['id']}",
            provider_id=ProviderId.GMAIL,
            sender=extract_sender_name(headers.get("From", "Unknown")),
            content=subject or raw.get("snippet") or "",
            timestamp=int(raw.get("internalDate") or now_millis()),
            is_unread="UNREAD" in labels if labels is not None else True,
            deep_link=self.get_deep_link(raw["id"]),
        )

    async def get_unread_count(self) -> int:
        async with self._client() as client:
            data = await client.get_json(
                f"{GMAIL_API}/labels/UNREAD", headers=self._headers(),
            )
        return int(data.get("messagesUnread", 0))

    def get_deep_link(self, message_id: str) -> str:
        raw_id = strip_prefix(message_id, "gmail-")
        return f"https://mail.google.com/mail/u/0/#inbox/{raw_id}"

    async def test_connection(self) -> bool:
        try:
            async with self._client() as client:
                await client.get_json(f"{GMAIL_API}/profile", headers=self._headers())
            return True
        except Exception as e:
            logger.debug("Gmail connection test failed: %s", e)
            return False
