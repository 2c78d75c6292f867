"""
Prometheus metrics for the polling orchestrator.

Defines and exposes metrics for:
- Poll cycle outcomes and latency per provider
- Retry attempts
- Unread counts, connectivity and the aggregate badge
- Notifications sent and suppressed
- Passive updates from page observers

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from inbox_hub.config.settings import get_settings
from inbox_hub.providers.schemas import ProviderId

logger = logging.getLogger(__name__)

# Buckets for poll latency (in seconds); retries push cycles into the tens of seconds
LATENCY_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 40.0)


def _label(provider: ProviderId | str) -> str:
    return provider.value if isinstance(provider, ProviderId) else provider


class MetricsCollector:
    """
    Prometheus metrics collector for inbox-hub.

    Usage:
        metrics = get_metrics()
        metrics.start_server()

        metrics.record_poll("slack", outcome="success", latency=0.42)
        metrics.set_badge(7)
    """

    def __init__(self, registry: CollectorRegistry = REGISTRY):
        """
        Initialize Prometheus metrics.

        Args:
            registry: Registry to register with (a fresh one in tests)
        """
        self.registry = registry

        self.polls = Counter(
            "inbox_hub_polls_total",
            "Total poll cycles",
            ["provider", "outcome"],  # outcome: success, error, skipped
            registry=registry,
        )

        self.poll_latency = Histogram(
            "inbox_hub_poll_latency_seconds",
            "Duration of a poll cycle including retries",
            ["provider"],
            buckets=LATENCY_BUCKETS,
            registry=registry,
        )

        self.retries = Counter(
            "inbox_hub_retry_attempts_total",
            "Retries performed after a retryable adapter failure",
            ["provider", "error_type"],
            registry=registry,
        )

        self.provider_unread = Gauge(
            "inbox_hub_provider_unread",
            "Unread count reported by each provider",
            ["provider"],
            registry=registry,
        )

        self.provider_connected = Gauge(
            "inbox_hub_provider_connected",
            "Provider connectivity (1=connected, 0=error)",
            ["provider"],
            registry=registry,
        )

        self.badge_unread = Gauge(
            "inbox_hub_badge_unread",
            "Aggregate unread count across enabled providers",
            registry=registry,
        )

        self.notifications_sent = Counter(
            "inbox_hub_notifications_sent_total",
            "Notifications delivered to sinks",
            ["provider"],
            registry=registry,
        )

        self.notifications_suppressed = Counter(
            "inbox_hub_notifications_suppressed_total",
            "Notifications skipped because the message was already notified",
            ["provider"],
            registry=registry,
        )

        self.passive_updates = Counter(
            "inbox_hub_passive_updates_total",
            "Unread updates pushed by page observers",
            ["provider"],
            registry=registry,
        )

        logger.info("Prometheus metrics initialized")

    def start_server(self, port: int | None = None) -> None:
        """
        Start Prometheus metrics HTTP server.

        Args:
            port: Port to expose metrics on (default from settings)
        """
        settings = get_settings()
        port = port or settings.metrics_port

        start_http_server(port, registry=self.registry)
        logger.info("Prometheus metrics server started on port %d", port)

    def record_poll(
        self,
        provider: ProviderId | str,
        outcome: str,
        latency: float | None = None,
    ) -> None:
        """
        Record a finished poll cycle.

        Args:
            provider: Provider id
            outcome: success, error or skipped
            latency: Optional cycle duration in seconds
        """
        label = _label(provider)
        self.polls.labels(provider=label, outcome=outcome).inc()
        if latency is not None:
            self.poll_latency.labels(provider=label).observe(latency)

    def record_retry(self, provider: ProviderId | str, error_type: str) -> None:
        self.retries.labels(provider=_label(provider), error_type=error_type).inc()

    def set_provider_status(
        self,
        provider: ProviderId | str,
        connected: bool,
        unread_count: int,
    ) -> None:
        """
        Mirror a provider status row.

        Args:
            provider: Provider id
            connected: Whether the last fetch succeeded
            unread_count: Unread count in the status row
        """
        label = _label(provider)
        self.provider_connected.labels(provider=label).set(1 if connected else 0)
        self.provider_unread.labels(provider=label).set(unread_count)

    def set_badge(self, total: int) -> None:
        self.badge_unread.set(total)

    def record_notification(self, provider: ProviderId | str, sent: bool) -> None:
        label = _label(provider)
        if sent:
            self.notifications_sent.labels(provider=label).inc()
        else:
            self.notifications_suppressed.labels(provider=label).inc()

    def record_passive_update(self, provider: ProviderId | str) -> None:
        self.passive_updates.labels(provider=_label(provider)).inc()


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
