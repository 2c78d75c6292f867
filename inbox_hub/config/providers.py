"""Static provider catalog: display metadata and default polling intervals.

Discord and LINE have no server-side API we poll; their unread counts are
pushed by an observer running inside an already-open page, so their default
interval is 0 (never scheduled).
"""

from dataclasses import dataclass

from inbox_hub.providers.schemas import ProviderConfig, ProviderId


@dataclass(frozen=True)
class ProviderInfo:
    """Display metadata for a provider."""

    label: str
    color: str
    polling_interval_seconds: int
    icon: str


PROVIDER_CATALOG: dict[ProviderId, ProviderInfo] = {
    ProviderId.GMAIL: ProviderInfo("Gmail", "#EA4335", 30, "📧"),
    ProviderId.GOOGLE_CHAT: ProviderInfo("Google Chat", "#00AC47", 60, "💬"),
    ProviderId.CHATWORK: ProviderInfo("Chatwork", "#E5302E", 60, "🔴"),
    ProviderId.GAROON: ProviderInfo("Garoon", "#1E88E5", 300, "🏢"),
    ProviderId.TEAMS: ProviderInfo("Teams", "#6264A7", 60, "👥"),
    ProviderId.SLACK: ProviderInfo("Slack", "#4A154B", 120, "💜"),
    ProviderId.DISCORD: ProviderInfo("Discord", "#5865F2", 0, "🎮"),
    ProviderId.LINE: ProviderInfo("LINE", "#06C755", 0, "🟢"),
}

# Display and iteration order
ALL_PROVIDERS: list[ProviderId] = list(PROVIDER_CATALOG)

# Enabled out of the box on first run
DEFAULT_ENABLED_PROVIDERS: frozenset[ProviderId] = frozenset({
    ProviderId.GMAIL,
    ProviderId.CHATWORK,
})


def provider_label(provider_id: ProviderId) -> str:
    """Human-readable provider name."""
    return PROVIDER_CATALOG[provider_id].label


def default_configs() -> list[ProviderConfig]:
    """
    Build first-run configs, one per known provider.

    Returns:
        ProviderConfig list in catalog order
    """
    return [
        ProviderConfig(
            provider_id=provider_id,
            enabled=provider_id in DEFAULT_ENABLED_PROVIDERS,
            notifications_enabled=True,
            polling_interval_seconds=info.polling_interval_seconds,
        )
        for provider_id, info in PROVIDER_CATALOG.items()
    ]
