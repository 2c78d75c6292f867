"""Notifications - dedup cache, notification builder, sinks, dispatcher."""

from inbox_hub.notifications.dedup import NotificationDedupCache
from inbox_hub.notifications.dispatcher import NotificationDispatcher
from inbox_hub.notifications.schemas import Notification, build_notification
from inbox_hub.notifications.sinks import (
    LoggingSink,
    MemorySink,
    NotificationSink,
    WebhookSink,
)

__all__ = [
    "LoggingSink",
    "MemorySink",
    "Notification",
    "NotificationDedupCache",
    "NotificationDispatcher",
    "NotificationSink",
    "WebhookSink",
    "build_notification",
]
