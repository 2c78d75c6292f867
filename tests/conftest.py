"""Pytest fixtures for inbox-hub tests."""

from collections.abc import Callable
from unittest.mock import AsyncMock

import pytest
from prometheus_client import CollectorRegistry

from inbox_hub.config.providers import default_configs
from inbox_hub.config.settings import Settings
from inbox_hub.notifications.dedup import NotificationDedupCache
from inbox_hub.notifications.dispatcher import NotificationDispatcher
from inbox_hub.notifications.sinks import MemorySink
from inbox_hub.observability.metrics import MetricsCollector
from inbox_hub.polling.aggregator import Aggregator
from inbox_hub.polling.badge import BadgeProjection, MemoryBadgeSink
from inbox_hub.polling.retry import RetryPolicy
from inbox_hub.providers.base_adapter import ProviderAdapter
from inbox_hub.providers.passive import PassiveAdapter
from inbox_hub.providers.registry import ServiceRegistry
from inbox_hub.providers.schemas import (
    ProviderConfig,
    ProviderId,
    ProviderStatus,
    UnifiedMessage,
)
from inbox_hub.storage.kv import InMemoryKeyValueStore
from inbox_hub.storage.shared_store import CONFIGS_KEY, STATUSES_KEY, SharedStore


class StubAdapter(ProviderAdapter):
    """Adapter whose fetch is an AsyncMock the test controls."""

    def __init__(self, config: ProviderConfig):
        super().__init__(config)
        self.fetch = AsyncMock(return_value=[])
        self.connected = True

    @property
    def provider_id(self) -> ProviderId:
        return self._config.provider_id

    async def fetch_messages(self) -> list[UnifiedMessage]:
        return await self.fetch()

    async def get_unread_count(self) -> int:
        return sum(1 for m in await self.fetch() if m.is_unread)

    def get_deep_link(self, message_id: str) -> str:
        return f"https://example.com/{message_id}"

    async def test_connection(self) -> bool:
        return self.connected


def stub_factory(config: ProviderConfig) -> ProviderAdapter:
    if config.provider_id in (ProviderId.DISCORD, ProviderId.LINE):
        return PassiveAdapter(config)
    return StubAdapter(config)


@pytest.fixture
def test_settings() -> Settings:
    """Settings configured for testing."""
    return Settings(
        environment="development",
        log_level="DEBUG",
        redis_url="redis://localhost:6379/1",
    )


@pytest.fixture
def metrics() -> MetricsCollector:
    """Metrics collector on a private registry."""
    return MetricsCollector(registry=CollectorRegistry())


@pytest.fixture
def make_message() -> Callable[..., UnifiedMessage]:
    """Factory for unified messages: make_message(ProviderId.SLACK, 3, timestamp=...)."""

    def _make(
        provider_id: ProviderId = ProviderId.SLACK,
        n: int = 1,
        timestamp: int | None = None,
        is_unread: bool = True,
        channel_name: str | None = None,
        content: str = "hello",
    ) -> UnifiedMessage:
        return UnifiedMessage(
            id=f"{provider_id.value}-{n}",
            provider_id=provider_id,
            sender=f"User {n}",
            content=content,
            timestamp=timestamp if timestamp is not None else 1_700_000_000_000 + n * 1000,
            is_unread=is_unread,
            deep_link=f"https://example.com/{provider_id.value}/{n}",
            channel_name=channel_name,
        )

    return _make


@pytest.fixture
def kv() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def store(kv: InMemoryKeyValueStore) -> SharedStore:
    return SharedStore(kv)


@pytest.fixture
def configs() -> list[ProviderConfig]:
    """Default configs with Slack also enabled."""
    result = []
    for config in default_configs():
        if config.provider_id in (ProviderId.SLACK, ProviderId.DISCORD):
            config = config.model_copy(update={"enabled": True})
        result.append(config)
    return result


@pytest.fixture
def seeded_store(configs: list[ProviderConfig]) -> SharedStore:
    """Store holding configs and one fresh status row per provider."""
    kv = InMemoryKeyValueStore({
        CONFIGS_KEY: [c.model_dump(mode="json") for c in configs],
        STATUSES_KEY: [
            ProviderStatus(provider_id=c.provider_id, enabled=c.enabled).model_dump(mode="json")
            for c in configs
        ],
    })
    return SharedStore(kv)


@pytest.fixture
def registry(configs: list[ProviderConfig]) -> ServiceRegistry:
    registry = ServiceRegistry(factory=stub_factory)
    for config in configs:
        registry.upsert(config)
    return registry


@pytest.fixture
def sleep() -> AsyncMock:
    """Replacement for asyncio.sleep in retry policies."""
    return AsyncMock()


@pytest.fixture
def retry_policy(sleep: AsyncMock) -> RetryPolicy:
    return RetryPolicy(max_attempts=4, base_delay=1.0, jitter_factor=0.1, timeout=0, sleep=sleep)


@pytest.fixture
def notification_sink() -> MemorySink:
    return MemorySink()


@pytest.fixture
def dispatcher(notification_sink: MemorySink, metrics: MetricsCollector) -> NotificationDispatcher:
    return NotificationDispatcher(
        sinks=[notification_sink],
        dedup=NotificationDedupCache(max_entries=500, evict_count=250),
        metrics=metrics,
    )


@pytest.fixture
def badge_sink() -> MemoryBadgeSink:
    return MemoryBadgeSink()


@pytest.fixture
def badge(badge_sink: MemoryBadgeSink, metrics: MetricsCollector) -> BadgeProjection:
    return BadgeProjection([badge_sink], metrics=metrics)


@pytest.fixture
def aggregator(
    seeded_store: SharedStore,
    registry: ServiceRegistry,
    dispatcher: NotificationDispatcher,
    badge: BadgeProjection,
    retry_policy: RetryPolicy,
    metrics: MetricsCollector,
) -> Aggregator:
    return Aggregator(
        store=seeded_store,
        registry=registry,
        dispatcher=dispatcher,
        badge=badge,
        retry_policy=retry_policy,
        metrics=metrics,
        max_notifications=3,
    )


@pytest.fixture
def adapter_factory() -> Callable[[ProviderConfig], ProviderAdapter]:
    """Factory building StubAdapter / PassiveAdapter instances."""
    return stub_factory
