"""
Provider error taxonomy.

Adapters raise these so the retry policy can tell terminal failures
(bad or missing credentials) from transient ones without parsing
provider-specific responses.
"""


class ProviderError(Exception):
    """Base exception for provider adapter failures."""

    terminal = False

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class ConfigurationError(ProviderError):
    """Required credential or URL is missing. Never retried."""

    terminal = True


class AuthenticationError(ProviderError):
    """401/403 or an invalid/expired token. Never retried."""

    terminal = True


class TransientProviderError(ProviderError):
    """Network, server or rate-limit failure. Retried with backoff."""

    pass
