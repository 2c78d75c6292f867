"""
Passive adapters for providers observed from an already-open page.

Discord and LINE are never polled. An observer running inside the provider's
web app scans visible unread badges and the page title, then pushes
``(provider_id, count)`` to the orchestrator on every DOM mutation and on a
5-second fallback timer. These adapters just cache the last pushed state.

compute_passive_unread() is the scan the observer performs, kept here so
both sides agree on the rule.
"""

import logging
import re
from collections.abc import Iterable

from inbox_hub.providers.base_adapter import ProviderAdapter
from inbox_hub.providers.schemas import ProviderConfig, ProviderId, UnifiedMessage

logger = logging.getLogger(__name__)

# "Discord (3)" / "LINE (12)"
_TITLE_COUNT = re.compile(r"\((\d+)\)")

# How often the in-page observer re-sends when nothing mutates
OBSERVER_FALLBACK_SECONDS = 5.0


def compute_passive_unread(badge_texts: Iterable[str], title: str | None) -> int:
    """
    Compute an unread count from page signals.

    Sums every badge whose text is a positive integer, then compares that
    total with the parenthesized integer in the page title and returns the
    larger of the two.

    Args:
        badge_texts: Text content of visible unread badge elements
        title: Document title, or None

    Returns:
        Non-negative unread count
    """
    total = 0
    for text in badge_texts:
        match = re.match(r"\s*(\d+)", text or "")
        if match:
            value = int(match.group(1))
            if value > 0:
                total += value

    if title:
        title_match = _TITLE_COUNT.search(title)
        if title_match:
            total = max(total, int(title_match.group(1)))

    return total


# Web app each passive provider is observed in
PASSIVE_WEB_URLS: dict[ProviderId, str] = {
    ProviderId.DISCORD: "https://discord.com/channels/@me",
    ProviderId.LINE: "https://chat.line.me/",
}


class PassiveAdapter(ProviderAdapter):
    """
    Adapter whose state is pushed in rather than fetched.

    One class serves every passive provider; the provider id comes from the
    config. fetch_messages() and get_unread_count() return the cached values
    and never fail. test_connection() reports whether an update has arrived.
    """

    def __init__(self, config: ProviderConfig):
        if config.provider_id not in PASSIVE_WEB_URLS:
            raise ValueError(f"{config.provider_id.value} is not a passive provider")
        super().__init__(config)
        self._cached_messages: list[UnifiedMessage] = []
        self._cached_unread_count = 0
        self._received_update = False

    @property
    def provider_id(self) -> ProviderId:
        return self._config.provider_id

    def receive_passive_update(
        self,
        count: int,
        messages: list[UnifiedMessage] | None = None,
    ) -> None:
        """Store the latest count (and optional messages) from the page observer."""
        self._cached_unread_count = max(0, count)
        self._cached_messages = self._finalize(list(messages or []))
        self._received_update = True
        logger.debug(
            "%s passive update: count=%d messages=%d",
            self.name, self._cached_unread_count, len(self._cached_messages),
        )

    async def fetch_messages(self) -> list[UnifiedMessage]:
        return list(self._cached_messages)

    async def get_unread_count(self) -> int:
        return self._cached_unread_count

    def get_deep_link(self, message_id: str) -> str:
        return PASSIVE_WEB_URLS[self.provider_id]

    async def test_connection(self) -> bool:
        # No observer report yet means no open tab
        return self._received_update
