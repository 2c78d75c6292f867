"""Provider integrations - schemas, adapter interface and registry."""

from inbox_hub.providers.base_adapter import ProviderAdapter, SupportsPassiveUpdate
from inbox_hub.providers.errors import (
    AuthenticationError,
    ConfigurationError,
    ProviderError,
    TransientProviderError,
)
from inbox_hub.providers.schemas import (
    ProviderConfig,
    ProviderId,
    ProviderStatus,
    UnifiedMessage,
)

__all__ = [
    "AuthenticationError",
    "ConfigurationError",
    "ProviderAdapter",
    "ProviderConfig",
    "ProviderError",
    "ProviderId",
    "ProviderStatus",
    "SupportsPassiveUpdate",
    "TransientProviderError",
    "UnifiedMessage",
]
