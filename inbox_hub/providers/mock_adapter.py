"""
Mock adapter for testing and development.

Generates synthetic unread messages that mimic real provider data.
Useful for:
- Running the orchestrator without any credentials
- Exercising notification dedup (ids stay stable between fetches)
- Exercising the failure path via ``error_rate``
"""

import random

from inbox_hub.providers.base_adapter import ProviderAdapter
from inbox_hub.providers.errors import TransientProviderError
from inbox_hub.providers.schemas import (
    ProviderConfig,
    ProviderId,
    UnifiedMessage,
    now_millis,
)

SAMPLE_SENDERS = [
    "Aiko Tanaka",
    "Ben Carter",
    "Chloe Martin",
    "Daniel Kim",
    "Elena Rossi",
    "Farid Haddad",
]

SAMPLE_CHANNELS = ["general", "dev", "design-review", "ops", None]

SAMPLE_PREVIEWS = [
    "Can you take a look at the draft before tomorrow?",
    "Deploy finished, all checks green.",
    "Reminder: sprint review moved to 3pm.",
    "Thanks! Merged.",
    "Are we still on for lunch?",
    "New comment on your document.",
    "The invoice for March is attached.",
]


class MockAdapter(ProviderAdapter):
    """
    Mock adapter that generates synthetic unified messages.

    Each fetch keeps the previous batch and prepends ``new_per_fetch`` new
    messages, so ids persist across polls like a real inbox.
    """

    def __init__(
        self,
        config: ProviderConfig,
        messages_per_fetch: int = 8,
        new_per_fetch: int = 1,
        error_rate: float = 0.0,
    ):
        """
        Initialize mock adapter.

        Args:
            config: Provider config (the provider id is mimicked)
            messages_per_fetch: Messages kept in the synthetic inbox
            new_per_fetch: New messages appearing on each fetch
            error_rate: Probability a fetch raises TransientProviderError
        """
        super().__init__(config)
        self._messages_per_fetch = messages_per_fetch
        self._new_per_fetch = new_per_fetch
        self._error_rate = error_rate
        self._counter = 0
        self._inbox: list[UnifiedMessage] = []

    @property
    def provider_id(self) -> ProviderId:
        return self._config.provider_id

    def _generate(self) -> UnifiedMessage:
        self._counter += 1
        message_id = f"{self.provider_id.value}-mock-{self._counter}"
        return UnifiedMessage(
            id=message_id,
            provider_id=self.provider_id,
            sender=random.choice(SAMPLE_SENDERS),
            content=random.choice(SAMPLE_PREVIEWS),
            timestamp=now_millis() - random.randint(0, 3_600_000),
            is_unread=random.random() < 0.8,
            deep_link=self.get_deep_link(message_id),
            channel_name=random.choice(SAMPLE_CHANNELS),
        )

    async def fetch_messages(self) -> list[UnifiedMessage]:
        if self._error_rate and random.random() < self._error_rate:
            raise TransientProviderError(f"Mock {self.provider_id.value} API error: 503")

        fresh = [self._generate() for _ in range(self._new_per_fetch)]
        self._inbox = (fresh + self._inbox)[: self._messages_per_fetch]
        return self._finalize(self._inbox)

    async def get_unread_count(self) -> int:
        return sum(1 for m in self._inbox if m.is_unread)

    def get_deep_link(self, message_id: str) -> str:
        return f"https://example.invalid/{self.provider_id.value}/{message_id}"

    async def test_connection(self) -> bool:
        """Mock adapter is always reachable."""
        return True
