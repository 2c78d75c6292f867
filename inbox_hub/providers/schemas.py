"""
Canonical message, config and status schemas for the aggregator.

CRITICAL: UnifiedMessage is the contract every provider adapter MUST produce.
The aggregator, notification sink and persisted store all depend on these
field names; persisted records are the ``model_dump(mode="json")`` form.
"""

import time
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Preview length adapters truncate message content to
MAX_PREVIEW_CHARS = 200


def now_millis() -> int:
    """Current wall-clock time as epoch milliseconds."""
    return int(time.time() * 1000)


class ProviderId(str, Enum):
    """Supported messaging providers."""

    GMAIL = "gmail"
    GOOGLE_CHAT = "google-chat"
    CHATWORK = "chatwork"
    GAROON = "garoon"
    TEAMS = "teams"
    SLACK = "slack"
    DISCORD = "discord"
    LINE = "line"


class UnifiedMessage(BaseModel):
    """
    UNIFIED MESSAGE SCHEMA

    One normalized inbound item. Instances are immutable: every poll cycle
    replaces a provider's entire slice of the store instead of editing
    messages in place.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(
        ...,
        min_length=1,
        description="Provider-prefixed ID, stable across polls",
        examples=["chatwork-1234567890", "slack-C024BE91L-1712345678.000200"],
    )
    provider_id: ProviderId = Field(..., description="Source provider")
    sender: str = Field(..., description="Display name of the sender")
    sender_avatar: str | None = Field(default=None, description="Avatar URI")
    content: str = Field(default="", description="Truncated preview text")
    timestamp: int = Field(
        ...,
        ge=0,
        description="Provider-reported send time, epoch milliseconds",
    )
    is_unread: bool = True
    deep_link: str = Field(..., description="URI opening the message natively")
    channel_name: str | None = Field(
        default=None,
        description="Room, thread or channel label",
    )

    @field_validator("content")
    @classmethod
    def truncate_content(cls, v: str) -> str:
        """Keep previews short; full bodies are never stored."""
        return v[:MAX_PREVIEW_CHARS]


class ProviderConfig(BaseModel):
    """
    User-controlled settings for one provider.

    Credential fields are optional and validated only by the adapter that
    needs them (e.g. Garoon needs base_url + username/password, Slack needs
    api_token).
    """

    provider_id: ProviderId
    enabled: bool = False
    notifications_enabled: bool = True
    polling_interval_seconds: int = Field(
        default=60,
        ge=0,
        description="Seconds between polls; 0 means passive (page-observed)",
    )

    api_token: str | None = None
    base_url: str | None = None
    username: str | None = None
    password: str | None = None

    # Garoon: optional web server / reverse proxy Basic auth layer
    proxy_username: str | None = None
    proxy_password: str | None = None

    @property
    def is_passive(self) -> bool:
        return self.polling_interval_seconds == 0

    @property
    def is_scheduled(self) -> bool:
        """Whether the scheduler should register a timer for this provider."""
        return self.enabled and self.polling_interval_seconds > 0


class ProviderStatus(BaseModel):
    """Runtime health of one configured provider."""

    provider_id: ProviderId
    enabled: bool = False
    connected: bool = False
    unread_count: int = Field(default=0, ge=0)
    last_fetched: int = Field(
        default=0,
        ge=0,
        description="Epoch millis of the last poll attempt (success or failure)",
    )
    error: str | None = None
