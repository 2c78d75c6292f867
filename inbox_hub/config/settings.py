"""Application settings using Pydantic Settings for environment-based configuration."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, RedisDsn
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central configuration for the inbox-hub orchestrator.

    All settings can be overridden via ``INBOX_HUB_*`` environment variables
    or a ``.env`` file. Per-provider credentials are not settings: they live
    in the persisted ProviderConfig records edited by the settings UI.
    """

    model_config = SettingsConfigDict(
        env_prefix="INBOX_HUB_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Shared store backend
    store_backend: Literal["memory", "redis"] = "memory"
    redis_url: RedisDsn = Field(default="redis://localhost:6379/0")
    store_key_prefix: str = "inbox_hub"

    # Aggregation limits
    max_messages_per_provider: int = Field(default=20, ge=1, le=200)
    max_notifications_per_poll: int = Field(default=3, ge=0, le=20)

    # Scheduling
    initial_poll_delay_seconds: float = Field(default=6.0, ge=0.0)

    # Retry policy (applies to every adapter fetch)
    retry_max_attempts: int = Field(default=4, ge=1, le=10)
    retry_base_delay_ms: int = Field(default=1000, ge=0)
    retry_jitter_factor: float = Field(default=0.1, ge=0.0, le=1.0)
    adapter_timeout_seconds: float | None = Field(default=20.0, ge=0.0)

    # HTTP adapters
    http_timeout_seconds: float = Field(default=15.0, gt=0.0)

    # Notifications
    notification_dedup_max_entries: int = Field(default=500, ge=1)
    notification_dedup_evict_count: int = Field(default=250, ge=1)
    notification_body_max_chars: int = Field(default=100, ge=1)
    notification_webhook_url: str | None = None

    # Observability
    metrics_port: int = 8000
    otel_exporter_otlp_endpoint: str | None = None
    otel_service_name: str = "inbox-hub"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def tracing_enabled(self) -> bool:
        """Tracing is enabled when an OTLP endpoint is configured."""
        return self.otel_exporter_otlp_endpoint is not None

    @property
    def retry_base_delay_seconds(self) -> float:
        return self.retry_base_delay_ms / 1000.0


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are loaded only once.
    Clear cache with get_settings.cache_clear() if needed.
    """
    return Settings()
