"""
Inbox orchestrator - the command surface of the aggregator.

Owns one instance each of the shared store, service registry, scheduler,
aggregator, notification dispatcher and badge projection. Nothing here is
a module-level singleton, so several orchestrators can run side by side
(tests do).

Features:
- First-run default configs and status reset
- Scheduled polling with per-provider timers
- Manual refresh of one or all providers
- Live configuration changes (registry upsert + scheduler restart)
- Passive updates from page observers
- Health checks
"""

import asyncio
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from types import TracebackType
from typing import Any

import structlog
from pydantic import ValidationError

from inbox_hub.config.providers import ALL_PROVIDERS, default_configs
from inbox_hub.config.settings import get_settings
from inbox_hub.notifications.dispatcher import NotificationDispatcher
from inbox_hub.observability.metrics import MetricsCollector, get_metrics
from inbox_hub.polling.aggregator import Aggregator, PollResult
from inbox_hub.polling.badge import BadgeProjection, compute_badge
from inbox_hub.polling.retry import RetryPolicy
from inbox_hub.polling.scheduler import AsyncioTimerService, PollScheduler, TimerService
from inbox_hub.providers.registry import (
    AdapterFactory,
    ServiceRegistry,
    create_adapter,
    create_mock_adapter,
)
from inbox_hub.providers.schemas import (
    ProviderConfig,
    ProviderId,
    ProviderStatus,
    UnifiedMessage,
)
from inbox_hub.storage.kv import create_kv_store
from inbox_hub.storage.shared_store import SharedStore, StoreSnapshot

logger = structlog.get_logger(__name__)


class ConfigValidationError(ValueError):
    """Rejected configuration change (duplicate or malformed provider config)."""


@dataclass
class InboxSnapshot:
    """What observers render: statuses and messages, plus configs and badge."""

    statuses: list[ProviderStatus]
    messages: list[UnifiedMessage]
    configs: list[ProviderConfig]
    badge: int
    version: int

    @classmethod
    def from_store(cls, snapshot: StoreSnapshot) -> "InboxSnapshot":
        return cls(
            statuses=snapshot.statuses,
            messages=snapshot.messages,
            configs=snapshot.configs,
            badge=compute_badge(snapshot.statuses),
            version=snapshot.version,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        return {
            "version": self.version,
            "badge": self.badge,
            "statuses": [s.model_dump(mode="json") for s in self.statuses],
            "messages": [m.model_dump(mode="json") for m in self.messages],
        }


def validate_configs(
    configs: Iterable[ProviderConfig | dict[str, Any]],
) -> list[ProviderConfig]:
    """
    Parse and check a batch of provider configs.

    Raises:
        ConfigValidationError: On a malformed config or a provider id that
            appears more than once
    """
    validated: list[ProviderConfig] = []
    seen: set[ProviderId] = set()
    for raw in configs:
        try:
            config = (
                raw if isinstance(raw, ProviderConfig)
                else ProviderConfig.model_validate(raw)
            )
        except ValidationError as e:
            raise ConfigValidationError(f"Invalid provider config: {e}") from e

        if config.provider_id in seen:
            raise ConfigValidationError(
                f"Duplicate config for provider {config.provider_id.value}"
            )
        seen.add(config.provider_id)
        validated.append(config)
    return validated


class InboxOrchestrator:
    """
    Aggregates unread state from every configured provider.

    Usage:
        async with InboxOrchestrator(use_mock=True) as orchestrator:
            await orchestrator.refresh_all()
            snapshot = await orchestrator.get_snapshot()

        # Long-running
        orchestrator = InboxOrchestrator()
        await orchestrator.start()
        ...
        await orchestrator.stop()
        await orchestrator.close()
    """

    def __init__(
        self,
        store: SharedStore | None = None,
        registry: ServiceRegistry | None = None,
        timer_service: TimerService | None = None,
        dispatcher: NotificationDispatcher | None = None,
        badge: BadgeProjection | None = None,
        retry_policy: RetryPolicy | None = None,
        metrics: MetricsCollector | None = None,
        adapter_factory: AdapterFactory | None = None,
        use_mock: bool = False,
        initial_delay: float | None = None,
    ):
        """
        Initialize orchestrator.

        Args:
            store: Shared store (or build from settings.store_backend)
            registry: Adapter registry (or build from adapter_factory)
            timer_service: Timer primitive (default asyncio tasks)
            dispatcher: Notification dispatcher (default log/webhook sinks)
            badge: Badge projection (default logging sink)
            retry_policy: Retry policy for adapter fetches
            metrics: Metrics collector (default global)
            adapter_factory: Adapter factory when no registry is given
            use_mock: Use mock adapters instead of real APIs
            initial_delay: Seconds before the first scheduled poll
        """
        settings = get_settings()

        self._metrics = metrics or get_metrics()
        self._store = store or SharedStore(
            create_kv_store(),
            max_messages_per_provider=settings.max_messages_per_provider,
        )

        factory = adapter_factory or (create_mock_adapter if use_mock else create_adapter)
        self._registry = registry if registry is not None else ServiceRegistry(factory)

        self._dispatcher = dispatcher or NotificationDispatcher(metrics=self._metrics)
        self._badge = badge or BadgeProjection(metrics=self._metrics)

        self._aggregator = Aggregator(
            store=self._store,
            registry=self._registry,
            dispatcher=self._dispatcher,
            badge=self._badge,
            retry_policy=retry_policy,
            metrics=self._metrics,
        )
        self._timers = timer_service or AsyncioTimerService()
        self._scheduler = PollScheduler(
            timers=self._timers,
            load_configs=self._store.get_configs,
            poll=self._aggregator.poll,
            initial_delay=initial_delay,
        )

        self._initialized = False
        self._running = False

        logger.info(
            "Orchestrator created",
            mock=use_mock,
            store_backend=type(self._store.kv).__name__,
        )

    @property
    def store(self) -> SharedStore:
        return self._store

    @property
    def registry(self) -> ServiceRegistry:
        return self._registry

    @property
    def scheduler(self) -> PollScheduler:
        return self._scheduler

    @property
    def aggregator(self) -> Aggregator:
        return self._aggregator

    @property
    def dispatcher(self) -> NotificationDispatcher:
        return self._dispatcher

    @property
    def badge(self) -> BadgeProjection:
        return self._badge

    @property
    def is_running(self) -> bool:
        return self._running

    async def initialize(self) -> list[ProviderConfig]:
        """
        Load configs, create defaults on first run, reset statuses, create adapters.

        Providers missing from the stored configs get their catalog defaults.
        Every status row starts disconnected with zero unread.

        Returns:
            The persisted configs
        """
        await self._store.kv.connect()

        async with self._store.mutate() as txn:
            configs = list(txn.configs)
            if not configs:
                configs = default_configs()
                logger.info("First run, created default configs", count=len(configs))
            else:
                known = {c.provider_id for c in configs}
                defaults = {c.provider_id: c for c in default_configs()}
                for provider_id in ALL_PROVIDERS:
                    if provider_id not in known:
                        configs.append(defaults[provider_id])
                        logger.info("Added default config", provider=provider_id.value)

            txn.configs = configs
            txn.statuses = [
                ProviderStatus(provider_id=c.provider_id, enabled=c.enabled)
                for c in configs
            ]
            statuses = list(txn.statuses)

        for config in configs:
            self._registry.upsert(config)

        self._badge.update(statuses)
        self._initialized = True

        logger.info(
            "Orchestrator initialized",
            providers=len(configs),
            enabled=[c.provider_id.value for c in configs if c.enabled],
        )
        return configs

    async def start(self) -> list[ProviderId]:
        """
        Start scheduled polling (initializing first if needed).

        Returns:
            Provider ids that got a timer
        """
        if not self._initialized:
            await self.initialize()

        scheduled = await self._scheduler.start()
        self._running = True
        logger.info("Orchestrator started", scheduled=[p.value for p in scheduled])
        return scheduled

    async def stop(self) -> None:
        """Stop every timer and wait for in-flight poll cycles to finish."""
        logger.info("Stopping orchestrator")
        self._scheduler.stop_all()
        await self._timers.wait_idle()
        self._running = False

    async def close(self) -> None:
        """Release the store connection."""
        await self._store.kv.close()
        logger.info("Orchestrator closed")

    async def __aenter__(self) -> "InboxOrchestrator":
        await self.initialize()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.stop()
        await self.close()

    async def refresh_all(self) -> list[PollResult]:
        """
        Poll every enabled provider concurrently.

        One provider's failure never affects the others; unexpected
        exceptions are logged and left out of the results.
        """
        configs = await self._store.get_configs()
        provider_ids = [c.provider_id for c in configs if c.enabled]

        outcomes = await asyncio.gather(
            *(self._aggregator.poll(pid) for pid in provider_ids),
            return_exceptions=True,
        )

        results: list[PollResult] = []
        for provider_id, outcome in zip(provider_ids, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(
                    "Refresh failed", provider=provider_id.value, error=str(outcome),
                )
                continue
            results.append(outcome)

        logger.info(
            "Refresh completed",
            polled=len(results),
            errors=sum(1 for r in results if r.outcome == "error"),
        )
        return results

    async def refresh_one(self, provider_id: ProviderId) -> PollResult:
        return await self._aggregator.poll(provider_id)

    async def get_snapshot(self) -> InboxSnapshot:
        return InboxSnapshot.from_store(await self._store.snapshot())

    async def on_config_changed(
        self,
        new_configs: Iterable[ProviderConfig | dict[str, Any]],
    ) -> list[ProviderConfig]:
        """
        Apply edited provider configs.

        Configs not mentioned keep their stored value (configs are never
        deleted). Status rows follow the ``enabled`` flag, the badge is
        recomputed, adapters are upserted and the scheduler fully restarted.

        Raises:
            ConfigValidationError: If the batch is malformed or names a
                provider twice; nothing is persisted in that case

        Returns:
            The full persisted config list
        """
        incoming = {c.provider_id: c for c in validate_configs(new_configs)}

        async with self._store.mutate() as txn:
            merged: list[ProviderConfig] = []
            for existing in txn.configs:
                merged.append(incoming.pop(existing.provider_id, existing))
            merged.extend(incoming.values())
            txn.configs = merged

            for config in merged:
                status = txn.status_for(config.provider_id)
                if status is None:
                    txn.statuses.append(
                        ProviderStatus(provider_id=config.provider_id, enabled=config.enabled)
                    )
                elif status.enabled != config.enabled:
                    txn.set_status(status.model_copy(update={"enabled": config.enabled}))
            statuses = list(txn.statuses)

        self._badge.update(statuses)

        for config in merged:
            self._registry.upsert(config)

        if self._running:
            await self._scheduler.start()

        logger.info(
            "Configuration applied",
            enabled=[c.provider_id.value for c in merged if c.enabled],
            restarted=self._running,
        )
        return merged

    async def handle_passive_update(
        self,
        provider_id: ProviderId,
        count: int,
        messages: list[UnifiedMessage] | None = None,
    ) -> ProviderStatus | None:
        return await self._aggregator.handle_passive_update(provider_id, count, messages)

    async def open_notification(self, notification_id: str) -> str | None:
        """
        Resolve a clicked notification to the deep link of its message.

        Returns:
            The stored message's deep link, or None if it is no longer stored
        """
        for message in await self._store.get_messages():
            if message.id == notification_id:
                return message.deep_link

        logger.info("Notification target not stored", notification_id=notification_id)
        return None

    def subscribe(self, listener: Callable[[StoreSnapshot], None]) -> Callable[[], None]:
        """Register for store change signals. Returns an unsubscribe function."""
        return self._store.subscribe(listener)

    async def health_check(self) -> dict[str, Any]:
        """
        Check health of the orchestrator.

        Returns:
            Dictionary with store and per-provider connectivity
        """
        provider_health: dict[str, bool] = {}
        for adapter in self._registry:
            if not adapter.enabled:
                continue
            try:
                provider_health[adapter.provider_id.value] = bool(
                    await adapter.test_connection()
                )
            except Exception as e:
                logger.warning(
                    "Connection test raised", provider=adapter.provider_id.value, error=str(e),
                )
                provider_health[adapter.provider_id.value] = False

        return {
            "running": self._running,
            "store_healthy": await self._store.kv.health_check(),
            "providers": provider_health,
            "scheduled": [p.value for p in self._scheduler.scheduled_providers],
            "badge": self._badge.current,
        }
