"""
Service registry: one adapter instance per provider.

The registry belongs to an orchestrator instance (not a module global) so
tests can run several isolated orchestrators side by side.
"""

import logging
from collections.abc import Callable, Iterator

from inbox_hub.config.settings import get_settings
from inbox_hub.providers.base_adapter import ProviderAdapter
from inbox_hub.providers.chatwork_adapter import ChatworkAdapter
from inbox_hub.providers.garoon_adapter import GaroonAdapter
from inbox_hub.providers.gmail_adapter import GmailAdapter
from inbox_hub.providers.google_chat_adapter import GoogleChatAdapter
from inbox_hub.providers.mock_adapter import MockAdapter
from inbox_hub.providers.passive import PASSIVE_WEB_URLS, PassiveAdapter
from inbox_hub.providers.schemas import ProviderConfig, ProviderId
from inbox_hub.providers.slack_adapter import SlackAdapter
from inbox_hub.providers.teams_adapter import TeamsAdapter

logger = logging.getLogger(__name__)

AdapterFactory = Callable[[ProviderConfig], ProviderAdapter]

HTTP_ADAPTERS: dict[ProviderId, type[ProviderAdapter]] = {
    ProviderId.GMAIL: GmailAdapter,
    ProviderId.GOOGLE_CHAT: GoogleChatAdapter,
    ProviderId.CHATWORK: ChatworkAdapter,
    ProviderId.GAROON: GaroonAdapter,
    ProviderId.TEAMS: TeamsAdapter,
    ProviderId.SLACK: SlackAdapter,
}


def create_adapter(config: ProviderConfig) -> ProviderAdapter:
    """
    Build the real adapter for a provider, selected by provider id.

    Args:
        config: Provider configuration

    Returns:
        New adapter instance
    """
    if config.provider_id in PASSIVE_WEB_URLS:
        return PassiveAdapter(config)

    adapter_cls = HTTP_ADAPTERS[config.provider_id]
    return adapter_cls(config, timeout=get_settings().http_timeout_seconds)


def create_mock_adapter(config: ProviderConfig) -> ProviderAdapter:
    """Factory for development: mock adapters, passive providers stay passive."""
    if config.provider_id in PASSIVE_WEB_URLS:
        return PassiveAdapter(config)
    return MockAdapter(config)


class ServiceRegistry:
    """
    Owns at most one adapter per provider id.

    upsert() either constructs an adapter or hot-swaps the config of the
    existing one, so in-memory state (passive caches, token caches) survives
    configuration changes.
    """

    def __init__(self, factory: AdapterFactory = create_adapter):
        self._factory = factory
        self._adapters: dict[ProviderId, ProviderAdapter] = {}

    def get(self, provider_id: ProviderId) -> ProviderAdapter | None:
        return self._adapters.get(provider_id)

    def upsert(self, config: ProviderConfig) -> ProviderAdapter:
        """
        Create or reconfigure the adapter for ``config.provider_id``.

        Returns:
            The adapter now registered for the provider
        """
        existing = self._adapters.get(config.provider_id)
        if existing is not None:
            existing.update_config(config)
            return existing

        adapter = self._factory(config)
        self._adapters[config.provider_id] = adapter
        logger.info(
            "Registered %s (enabled=%s)", adapter.name, config.enabled,
        )
        return adapter

    def __contains__(self, provider_id: object) -> bool:
        return provider_id in self._adapters

    def __iter__(self) -> Iterator[ProviderAdapter]:
        return iter(list(self._adapters.values()))

    def __len__(self) -> int:
        return len(self._adapters)

    @property
    def provider_ids(self) -> list[ProviderId]:
        return list(self._adapters)
