"""
Retry policy for adapter fetches.

Wraps a zero-argument async operation with bounded exponential backoff:

    delay(attempt) = base * 2^attempt + random(0, jitter_factor) * that delay

Authentication failures (401/403, invalid or expired token) and missing
configuration are terminal and raised immediately. Everything else,
including rate limits and per-call timeouts, is retried until
``max_attempts`` is exhausted, then the last error is re-raised.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from inbox_hub.config.settings import get_settings
from inbox_hub.providers.errors import ProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Message fragments that mark an untyped error as terminal
TERMINAL_MARKERS = ("401", "403", "not configured", "token")


def is_terminal_error(exc: BaseException) -> bool:
    """
    Classify an error as terminal (never retried) or retryable.

    Typed ProviderErrors carry their own classification; anything else falls
    back to inspecting the message text.

    Args:
        exc: The exception raised by the operation

    Returns:
        True if retrying cannot help
    """
    if isinstance(exc, ProviderError):
        if exc.terminal:
            return True
        if exc.status_code is not None:
            return exc.status_code in (401, 403)

    message = str(exc).lower()
    return any(marker in message for marker in TERMINAL_MARKERS)


class RetryPolicy:
    """
    Bounded exponential backoff with jitter.

    Usage:
        policy = RetryPolicy()
        messages = await policy.execute(adapter.fetch_messages)
    """

    def __init__(
        self,
        max_attempts: int | None = None,
        base_delay: float | None = None,
        jitter_factor: float | None = None,
        timeout: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_retry: Callable[[int, BaseException, float], None] | None = None,
    ):
        """
        Initialize retry policy.

        Args:
            max_attempts: Total attempts including the first (default from settings)
            base_delay: Base delay in seconds (default from settings)
            jitter_factor: Max fraction of the delay added as jitter
            timeout: Per-attempt timeout in seconds (default from settings);
                0 disables
            sleep: Awaitable sleep (injected in tests)
            on_retry: Callback(attempt, error, delay) before each backoff
        """
        settings = get_settings()

        self.max_attempts = max_attempts or settings.retry_max_attempts
        self.base_delay = (
            base_delay if base_delay is not None else settings.retry_base_delay_seconds
        )
        self.jitter_factor = (
            jitter_factor if jitter_factor is not None else settings.retry_jitter_factor
        )
        self.timeout = timeout if timeout is not None else settings.adapter_timeout_seconds
        self._sleep = sleep
        self._on_retry = on_retry

    def calculate_backoff(self, attempt: int) -> float:
        """
        Calculate backoff duration for a given retry attempt.

        Args:
            attempt: The failed attempt number (0-indexed)

        Returns:
            Backoff duration in seconds with jitter applied
        """
        delay = self.base_delay * (2**attempt)
        jitter = delay * self.jitter_factor * random.random()
        return delay + jitter

    @property
    def worst_case_delay(self) -> float:
        """Upper bound on total backoff sleep, ignoring the operation itself."""
        sleeps = max(self.max_attempts - 1, 0)
        return self.base_delay * (2**sleeps - 1) * (1 + self.jitter_factor)

    async def _attempt(self, operation: Callable[[], Awaitable[T]]) -> T:
        if not self.timeout:
            return await operation()
        return await asyncio.wait_for(operation(), timeout=self.timeout)

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        max_attempts: int | None = None,
        on_retry: Callable[[int, BaseException, float], None] | None = None,
    ) -> T:
        """
        Run ``operation`` until it succeeds, fails terminally or runs out of attempts.

        Args:
            operation: Zero-argument async callable
            max_attempts: Override for this call
            on_retry: Override for the policy-level retry callback

        Returns:
            The operation's result

        Raises:
            The terminal error immediately, or the last error once attempts
            are exhausted
        """
        attempts = max_attempts or self.max_attempts
        on_retry = on_retry or self._on_retry
        last_error: Exception | None = None

        for attempt in range(attempts):
            try:
                return await self._attempt(operation)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                last_error = e

                if is_terminal_error(e):
                    logger.info("Terminal error, not retrying: %s", e)
                    raise

                if attempt < attempts - 1:
                    delay = self.calculate_backoff(attempt)
                    logger.warning(
                        "Retryable error %s, attempt %d/%d, backing off %.2fs",
                        type(e).__name__, attempt + 1, attempts, delay,
                    )
                    if on_retry is not None:
                        on_retry(attempt, e, delay)
                    await self._sleep(delay)

        if last_error is None:
            raise RuntimeError(f"No attempts made (max_attempts={attempts})")
        raise last_error
