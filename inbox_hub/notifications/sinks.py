"""Notification sink implementations.

A sink makes a notification visible somewhere: the log, an in-memory list
the CLI prints from, or a webhook that a desktop notifier listens on.
"""

import logging
from abc import ABC, abstractmethod

import httpx

from inbox_hub.notifications.schemas import Notification

logger = logging.getLogger(__name__)


class NotificationSink(ABC):
    """Abstract base for notification delivery."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this sink (e.g. 'log', 'webhook')."""

    @abstractmethod
    async def send(self, notification: Notification) -> bool:
        """Deliver a notification.

        Args:
            notification: Notification to deliver.

        Returns:
            True if delivery succeeded, False otherwise.
        """


class LoggingSink(NotificationSink):
    """Writes notifications to the application log."""

    @property
    def name(self) -> str:
        return "log"

    async def send(self, notification: Notification) -> bool:
        logger.info(
            "Notification %s | %s | %s",
            notification.notification_id, notification.title, notification.body,
        )
        return True


class MemorySink(NotificationSink):
    """Collects notifications in a list."""

    def __init__(self) -> None:
        self.sent: list[Notification] = []

    @property
    def name(self) -> str:
        return "memory"

    async def send(self, notification: Notification) -> bool:
        self.sent.append(notification)
        return True


class WebhookSink(NotificationSink):
    """Delivers notifications as JSON POST to an HTTP endpoint.

    Creates a new ``httpx.AsyncClient`` per call; notifications are rare
    (at most a few per poll cycle).
    """

    def __init__(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url
        self._headers = headers or {}
        self._timeout = timeout
        self._transport = transport

    @property
    def name(self) -> str:
        return "webhook"

    async def send(self, notification: Notification) -> bool:
        payload = notification.model_dump(mode="json")
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport,
            ) as client:
                resp = await client.post(
                    self._url,
                    json=payload,
                    headers=self._headers,
                )
                if resp.is_success:
                    return True
                logger.warning(
                    "Webhook %s returned %d for notification %s",
                    self._url, resp.status_code, notification.notification_id,
                )
                return False
        except httpx.TimeoutException:
            logger.warning(
                "Webhook %s timed out for notification %s",
                self._url, notification.notification_id,
            )
            return False
        except httpx.HTTPError as e:
            logger.warning(
                "Webhook %s failed for notification %s: %s",
                self._url, notification.notification_id, e,
            )
            return False
