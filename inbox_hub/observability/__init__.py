"""Observability layer - logging, metrics, and tracing."""

from inbox_hub.observability.logging import setup_logging
from inbox_hub.observability.metrics import MetricsCollector, get_metrics
from inbox_hub.observability.tracing import get_tracer, setup_tracing

__all__ = ["setup_logging", "MetricsCollector", "get_metrics", "setup_tracing", "get_tracer"]
