"""Notification dispatcher: dedup, then fan out to every sink.

Sink failures are logged and isolated per sink; they never reach the poll
cycle that triggered the notification.
"""

import logging

from inbox_hub.config.settings import get_settings
from inbox_hub.notifications.dedup import NotificationDedupCache
from inbox_hub.notifications.schemas import Notification, build_notification
from inbox_hub.notifications.sinks import LoggingSink, NotificationSink, WebhookSink
from inbox_hub.observability.metrics import MetricsCollector, get_metrics
from inbox_hub.providers.schemas import UnifiedMessage

logger = logging.getLogger(__name__)


def create_default_sinks() -> list[NotificationSink]:
    """Log sink, plus a webhook sink when a webhook URL is configured."""
    settings = get_settings()
    sinks: list[NotificationSink] = [LoggingSink()]
    if settings.notification_webhook_url:
        sinks.append(
            WebhookSink(
                settings.notification_webhook_url,
                timeout=settings.http_timeout_seconds,
            )
        )
    return sinks


class NotificationDispatcher:
    """Turns new unread messages into notifications.

    Usage:
        dispatcher = NotificationDispatcher([LoggingSink()])
        await dispatcher.notify(message)
    """

    def __init__(
        self,
        sinks: list[NotificationSink] | None = None,
        dedup: NotificationDedupCache | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self._sinks = list(sinks) if sinks is not None else create_default_sinks()
        self._dedup = dedup if dedup is not None else NotificationDedupCache()
        self._metrics = metrics or get_metrics()

    @property
    def sinks(self) -> list[NotificationSink]:
        return self._sinks

    @property
    def dedup(self) -> NotificationDedupCache:
        return self._dedup

    async def notify(self, message: UnifiedMessage) -> Notification | None:
        """Notify about ``message`` unless its id was already notified.

        Args:
            message: New unread message.

        Returns:
            The notification that was dispatched, or None if suppressed.
        """
        if not self._dedup.should_notify(message.id):
            logger.debug("Suppressed repeat notification for %s", message.id)
            self._metrics.record_notification(message.provider_id, sent=False)
            return None

        notification = build_notification(message)
        results = await self.dispatch(notification)
        self._metrics.record_notification(message.provider_id, sent=True)

        failed = [name for name, ok in results if not ok]
        if failed:
            logger.warning(
                "Notification %s not delivered to %s",
                notification.notification_id, ", ".join(failed),
            )
        return notification

    async def dispatch(self, notification: Notification) -> list[tuple[str, bool]]:
        """Send to every sink, isolating failures per sink.

        Returns:
            List of (sink_name, success) tuples.
        """
        results: list[tuple[str, bool]] = []
        for sink in self._sinks:
            try:
                ok = await sink.send(notification)
            except Exception as e:
                logger.error(
                    "Sink %s raised for notification %s: %s",
                    sink.name, notification.notification_id, e,
                )
                ok = False
            results.append((sink.name, ok))
        return results
