"""
Status/badge projection.

The badge is a pure function of the status table: the sum of unread counts
over enabled providers. It is recomputed after every status mutation and
never cached on its own.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable

from inbox_hub.observability.metrics import MetricsCollector, get_metrics
from inbox_hub.providers.schemas import ProviderStatus

logger = logging.getLogger(__name__)


def compute_badge(statuses: Iterable[ProviderStatus]) -> int:
    """Sum of ``unread_count`` over enabled statuses."""
    return sum(s.unread_count for s in statuses if s.enabled)


def format_badge(total: int) -> str:
    """Badge text: empty when zero, otherwise the decimal count."""
    return "" if total <= 0 else str(total)


class BadgeSink(ABC):
    """Destination for the rendered badge (toolbar icon, tray, ...)."""

    @abstractmethod
    def set_badge(self, text: str, total: int) -> None:
        """Display ``text`` (``total`` is the underlying count)."""


class MemoryBadgeSink(BadgeSink):
    """Keeps the last value and the full history; used by the CLI and tests."""

    def __init__(self):
        self.text = ""
        self.total = 0
        self.history: list[int] = []

    def set_badge(self, text: str, total: int) -> None:
        self.text = text
        self.total = total
        self.history.append(total)


class LoggingBadgeSink(BadgeSink):
    """Logs badge changes at INFO, repeats at DEBUG."""

    def __init__(self):
        self._last: str | None = None

    def set_badge(self, text: str, total: int) -> None:
        if text != self._last:
            logger.info("Badge updated: %r (%d unread)", text, total)
        else:
            logger.debug("Badge unchanged: %r", text)
        self._last = text


class BadgeProjection:
    """
    Pushes the badge derived from a status table to every sink.

    Usage:
        projection = BadgeProjection([MemoryBadgeSink()])
        total = projection.update(snapshot.statuses)
    """

    def __init__(
        self,
        sinks: list[BadgeSink] | None = None,
        metrics: MetricsCollector | None = None,
    ):
        self._sinks = list(sinks) if sinks is not None else [LoggingBadgeSink()]
        self._metrics = metrics or get_metrics()
        self._current = 0

    @property
    def current(self) -> int:
        """Value most recently pushed (0 before the first update)."""
        return self._current

    @property
    def text(self) -> str:
        return format_badge(self._current)

    def add_sink(self, sink: BadgeSink) -> None:
        self._sinks.append(sink)

    def update(self, statuses: Iterable[ProviderStatus]) -> int:
        """
        Recompute the badge from ``statuses`` and push it.

        Args:
            statuses: The status table as just persisted

        Returns:
            The badge total
        """
        statuses = list(statuses)
        total = compute_badge(statuses)
        text = format_badge(total)
        self._current = total

        for status in statuses:
            self._metrics.set_provider_status(
                status.provider_id, status.connected, status.unread_count,
            )
        self._metrics.set_badge(total)

        for sink in self._sinks:
            try:
                sink.set_badge(text, total)
            except Exception as e:
                logger.error(
                    "Badge sink %s failed: %s", type(sink).__name__, e, exc_info=True,
                )
        return total
