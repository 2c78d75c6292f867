"""
Provider adapter interface.

Each of the eight provider integrations implements ProviderAdapter directly;
there is no deeper class hierarchy. Passive providers (Discord, LINE) add one
capability, ``receive_passive_update``, expressed as the
SupportsPassiveUpdate protocol rather than a shared base class.

The base class only holds the current ProviderConfig and the shared
``_finalize`` helper that enforces the per-provider message cap.
"""

import logging
import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Protocol, runtime_checkable

from inbox_hub.config.settings import get_settings
from inbox_hub.providers.schemas import ProviderConfig, ProviderId, UnifiedMessage

logger = logging.getLogger(__name__)


class ProviderAdapter(ABC):
    """
    Capability contract consumed by the aggregator.

    Subclasses must implement:
        - provider_id: ProviderId value
        - fetch_messages(): newest messages, at most ``max_messages``
        - get_unread_count(): provider-reported unread total
        - get_deep_link(): URI opening a message in the native provider
        - test_connection(): True if credentials and network work

    fetch_messages() raises ProviderError subclasses on failure; it is
    called through the retry policy so it should NOT retry internally.
    """

    def __init__(self, config: ProviderConfig):
        self._config = config

    @property
    @abstractmethod
    def provider_id(self) -> ProviderId:
        """Return the provider this adapter handles."""
        ...

    @property
    def name(self) -> str:
        """Human-readable adapter name."""
        return f"{self.provider_id.value}_adapter"

    @property
    def config(self) -> ProviderConfig:
        return self._config

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    @property
    def max_messages(self) -> int:
        """Per-provider cap, shared with the store (``max_messages_per_provider``)."""
        return get_settings().max_messages_per_provider

    def update_config(self, config: ProviderConfig) -> None:
        """
        Hot-swap credentials and flags.

        In-memory caches (passive counts, user-name lookups) survive.
        """
        if config.provider_id != self.provider_id:
            raise ValueError(
                f"Config for {config.provider_id.value} given to {self.name}"
            )
        self._config = config

    @abstractmethod
    async def fetch_messages(self) -> list[UnifiedMessage]:
        """Fetch the newest messages, unified and capped."""
        ...

    @abstractmethod
    async def get_unread_count(self) -> int:
        """Return the provider's unread total."""
        ...

    @abstractmethod
    def get_deep_link(self, message_id: str) -> str:
        """Build a URI that opens the message in its native provider."""
        ...

    @abstractmethod
    async def test_connection(self) -> bool:
        """Check whether the provider is reachable with current credentials."""
        ...

    def _finalize(self, messages: list[UnifiedMessage]) -> list[UnifiedMessage]:
        """Sort newest first and apply the per-provider cap."""
        ordered = sorted(messages, key=lambda m: m.timestamp, reverse=True)
        cap = self.max_messages
        if len(ordered) > cap:
            logger.debug(
                "%s returned %d messages, keeping %d",
                self.name, len(ordered), cap,
            )
        return ordered[:cap]


@runtime_checkable
class SupportsPassiveUpdate(Protocol):
    """Adapters fed by an in-page observer instead of polling."""

    def receive_passive_update(
        self,
        count: int,
        messages: list[UnifiedMessage] | None = None,
    ) -> None:
        ...


def strip_prefix(message_id: str, prefix: str) -> str:
    """Remove a provider prefix (``"chatwork-"``) from a unified message id."""
    if message_id.startswith(prefix):
        return message_id[len(prefix):]
    return message_id


def parse_iso_millis(value: str | None) -> int | None:
    """
    Convert an ISO-8601 timestamp (``Z`` suffix allowed) to epoch millis.

    Returns None for missing or unparseable values so adapters can skip or
    default the item instead of failing the whole fetch.
    """
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)


def strip_html(text: str) -> str:
    """Drop tags and collapse whitespace in an HTML message body."""
    text = re.sub(r"<[^>]*>", "", text)
    return " ".join(text.split())
