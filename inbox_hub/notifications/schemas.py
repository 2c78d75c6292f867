"""User-visible notification built from a unified message."""

from pydantic import BaseModel, Field

from inbox_hub.config.providers import provider_label
from inbox_hub.config.settings import get_settings
from inbox_hub.providers.schemas import ProviderId, UnifiedMessage


class Notification(BaseModel):
    """
    One alert, keyed by the message id so sinks can dedupe repeats too.
    """

    notification_id: str = Field(..., description="Same as the message id")
    provider_id: ProviderId
    title: str
    body: str
    deep_link: str
    timestamp: int = Field(..., ge=0)


def build_notification(
    message: UnifiedMessage,
    body_max_chars: int | None = None,
) -> Notification:
    """
    Render a message as a notification.

    Title is the provider label, plus `` - channel`` when the message has
    one. Body is ``sender: content`` with the content cut to
    ``body_max_chars`` (100 by default).
    """
    limit = body_max_chars or get_settings().notification_body_max_chars

    label = provider_label(message.provider_id)
    title = f"{label} - {message.channel_name}" if message.channel_name else label

    return Notification(
        notification_id=message.id,
        provider_id=message.provider_id,
        title=title,
        body=f"{message.sender}: {message.content[:limit]}",
        deep_link=message.deep_link,
        timestamp=message.timestamp,
    )
