"""
Aggregator - one poll cycle for one provider.

Flow:
    registry -> adapter.fetch_messages (through RetryPolicy, outside the lock)
             -> SharedStore.mutate(): replace the provider's message slice,
                update its status row
             -> badge recomputed from the statuses just written
             -> first N new unread messages handed to the notification dispatcher

Every adapter error is caught here and turned into a status update. A failed
poll leaves the provider's stored messages in place and never touches any
other provider's data.
"""

import time
from dataclasses import dataclass, field
from typing import Any

import structlog

from inbox_hub.config.settings import get_settings
from inbox_hub.notifications.dispatcher import NotificationDispatcher
from inbox_hub.observability.metrics import MetricsCollector, get_metrics
from inbox_hub.observability.tracing import get_tracer, traced
from inbox_hub.polling.badge import BadgeProjection
from inbox_hub.polling.retry import RetryPolicy
from inbox_hub.providers.base_adapter import SupportsPassiveUpdate
from inbox_hub.providers.registry import ServiceRegistry
from inbox_hub.providers.schemas import (
    ProviderId,
    ProviderStatus,
    UnifiedMessage,
    now_millis,
)
from inbox_hub.storage.shared_store import SharedStore, normalize_messages

logger = structlog.get_logger(__name__)

OUTCOME_SUCCESS = "success"
OUTCOME_ERROR = "error"
OUTCOME_SKIPPED = "skipped"


@dataclass
class PollResult:
    """Outcome of one poll cycle."""

    provider_id: ProviderId
    outcome: str
    unread_count: int = 0
    fetched: int = 0
    new_messages: list[UnifiedMessage] = field(default_factory=list)
    notified: list[str] = field(default_factory=list)
    error: str | None = None
    badge: int | None = None
    duration_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.outcome == OUTCOME_SUCCESS

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider_id": self.provider_id.value,
            "outcome": self.outcome,
            "unread_count": self.unread_count,
            "fetched": self.fetched,
            "new_messages": [m.id for m in self.new_messages],
            "notified": self.notified,
            "error": self.error,
            "badge": self.badge,
            "duration_seconds": round(self.duration_seconds, 3),
        }


def error_message(exc: BaseException) -> str:
    """Short text stored in ProviderStatus.error."""
    return str(exc) or type(exc).__name__


class Aggregator:
    """
    Executes poll cycles and passive updates against the shared store.

    Safe to run concurrently, including two cycles for the same provider:
    store mutations are serialized and each cycle replaces the provider's
    whole slice.
    """

    def __init__(
        self,
        store: SharedStore,
        registry: ServiceRegistry,
        dispatcher: NotificationDispatcher,
        badge: BadgeProjection,
        retry_policy: RetryPolicy | None = None,
        metrics: MetricsCollector | None = None,
        max_notifications: int | None = None,
    ):
        """
        Initialize aggregator.

        Args:
            store: Shared store
            registry: Adapter registry
            dispatcher: Receives new unread messages
            badge: Badge projection updated after every status change
            retry_policy: Wraps adapter fetches (default from settings)
            metrics: Metrics collector (default global)
            max_notifications: New messages notified per cycle (default 3)
        """
        self._store = store
        self._registry = registry
        self._dispatcher = dispatcher
        self._badge = badge
        self._retry = retry_policy or RetryPolicy()
        self._metrics = metrics or get_metrics()
        self._max_notifications = (
            max_notifications
            if max_notifications is not None
            else get_settings().max_notifications_per_poll
        )
        self._tracer = get_tracer("inbox_hub.polling")

    async def poll(self, provider_id: ProviderId) -> PollResult:
        """
        Run one poll cycle for ``provider_id``.

        Disabled, unregistered and passive providers are skipped. Never
        raises for adapter failures; store errors propagate.

        Returns:
            PollResult describing what happened
        """
        adapter = self._registry.get(provider_id)
        # Passive providers are fed by handle_passive_update only
        if (
            adapter is None
            or not adapter.enabled
            or isinstance(adapter, SupportsPassiveUpdate)
        ):
            logger.debug("Poll skipped", provider=provider_id.value)
            self._metrics.record_poll(provider_id, OUTCOME_SKIPPED)
            return PollResult(provider_id=provider_id, outcome=OUTCOME_SKIPPED)

        start_time = time.monotonic()

        with traced(self._tracer, "poll_cycle", {"provider": provider_id.value}) as span:
            fetched: list[UnifiedMessage] | None = None
            error: str | None = None
            try:
                fetched = await self._retry.execute(
                    adapter.fetch_messages,
                    on_retry=lambda attempt, exc, delay: self._metrics.record_retry(
                        provider_id, type(exc).__name__,
                    ),
                )
            except Exception as e:
                error = error_message(e)
                logger.warning(
                    "Poll failed",
                    provider=provider_id.value,
                    error=error,
                    error_type=type(e).__name__,
                )

            if fetched is not None:
                result = await self._apply_success(provider_id, fetched)
            else:
                result = await self._apply_failure(provider_id, error or "Unknown error")

            span.set_attribute("outcome", result.outcome)
            span.set_attribute("unread_count", result.unread_count)

            if result.new_messages:
                result.notified = await self._notify(result.new_messages)

        result.duration_seconds = time.monotonic() - start_time
        self._metrics.record_poll(provider_id, result.outcome, result.duration_seconds)

        logger.info(
            "Poll finished",
            provider=provider_id.value,
            outcome=result.outcome,
            unread=result.unread_count,
            fetched=result.fetched,
            new=len(result.new_messages),
            badge=result.badge,
            elapsed_seconds=round(result.duration_seconds, 2),
        )
        return result

    async def _apply_success(
        self,
        provider_id: ProviderId,
        fetched: list[UnifiedMessage],
    ) -> PollResult:
        cap = self._store.max_messages_per_provider
        unread_count = sum(1 for m in fetched if m.is_unread)
        kept = normalize_messages(fetched, cap)
        kept_ids = {m.id for m in kept}

        async with self._store.mutate() as txn:
            prior_ids = {m.id for m in txn.messages if m.provider_id == provider_id}
            txn.messages = [
                m for m in txn.messages if m.provider_id != provider_id
            ] + kept

            # Fetch order, not timestamp order
            new_messages = [
                m for m in fetched
                if m.id in kept_ids and m.is_unread and m.id not in prior_ids
            ]

            config = txn.config_for(provider_id)
            notify = config is None or config.notifications_enabled is not False

            self._update_status(
                txn.statuses,
                provider_id,
                connected=True,
                unread_count=unread_count,
                error=None,
            )
            statuses = list(txn.statuses)

        badge = self._badge.update(statuses)

        return PollResult(
            provider_id=provider_id,
            outcome=OUTCOME_SUCCESS,
            unread_count=unread_count,
            fetched=len(fetched),
            new_messages=new_messages if notify else [],
            badge=badge,
        )

    async def _apply_failure(self, provider_id: ProviderId, error: str) -> PollResult:
        async with self._store.mutate() as txn:
            status = self._update_status(
                txn.statuses,
                provider_id,
                connected=False,
                error=error,
            )
            statuses = list(txn.statuses)

        badge = self._badge.update(statuses)

        return PollResult(
            provider_id=provider_id,
            outcome=OUTCOME_ERROR,
            unread_count=status.unread_count if status else 0,
            error=error,
            badge=badge,
        )

    @staticmethod
    def _update_status(
        statuses: list[ProviderStatus],
        provider_id: ProviderId,
        **changes: Any,
    ) -> ProviderStatus | None:
        for idx, status in enumerate(statuses):
            if status.provider_id == provider_id:
                statuses[idx] = status.model_copy(
                    update={**changes, "last_fetched": now_millis()},
                )
                return statuses[idx]

        logger.warning("No status row for provider", provider=provider_id.value)
        return None

    async def _notify(self, new_messages: list[UnifiedMessage]) -> list[str]:
        notified: list[str] = []
        for message in new_messages[: self._max_notifications]:
            try:
                notification = await self._dispatcher.notify(message)
            except Exception as e:
                logger.error("Notification failed", message_id=message.id, error=str(e))
                continue
            if notification is not None:
                notified.append(notification.notification_id)
        return notified

    async def handle_passive_update(
        self,
        provider_id: ProviderId,
        count: int,
        messages: list[UnifiedMessage] | None = None,
    ) -> ProviderStatus | None:
        """
        Apply an unread count pushed by a page observer.

        Forwards the update to the adapter cache, marks the provider
        connected with ``unread_count=count`` and recomputes the badge.
        Stored messages are left as they are.

        Returns:
            The updated status, or None if the provider has no status row
        """
        count = max(0, int(count))

        adapter = self._registry.get(provider_id)
        if isinstance(adapter, SupportsPassiveUpdate):
            adapter.receive_passive_update(count, messages)
        else:
            logger.warning(
                "Passive update for non-passive adapter", provider=provider_id.value,
            )

        self._metrics.record_passive_update(provider_id)

        async with self._store.mutate() as txn:
            status = self._update_status(
                txn.statuses,
                provider_id,
                connected=True,
                unread_count=count,
                error=None,
            )
            statuses = list(txn.statuses)

        if status is None:
            logger.info("Passive update ignored", provider=provider_id.value, count=count)
            return None

        badge = self._badge.update(statuses)
        logger.debug(
            "Passive update applied", provider=provider_id.value, count=count, badge=badge,
        )
        return status
