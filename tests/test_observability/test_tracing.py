"""
Tests for OpenTelemetry tracing.

Verifies:
- TracerProvider setup with InMemorySpanExporter
- traced() creates spans and records exceptions
- Structlog processor adds trace_id/span_id to log entries
- Poll cycles are wrapped in a span
"""

import pytest
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode

from inbox_hub.observability.tracing import (
    add_trace_context,
    get_tracer,
    is_tracing_enabled,
    setup_tracing,
    traced,
)
from inbox_hub.providers.schemas import ProviderId

# OTel's global TracerProvider can only be set once per process
_exporter = InMemorySpanExporter()
_provider = setup_tracing("inbox-hub-test", exporter=_exporter)


@pytest.fixture(autouse=True)
def _clear_spans():
    _exporter.clear()
    yield
    _exporter.clear()


def test_setup_enables_tracing():
    assert is_tracing_enabled()


class TestTraced:
    """Tests for the traced() context manager."""

    def test_creates_span_with_attributes(self):
        tracer = get_tracer("test")

        with traced(tracer, "unit", {"provider": "slack", "attempt": 2}):
            pass

        spans = _exporter.get_finished_spans()
        assert len(spans) == 1
        assert spans[0].name == "unit"
        assert spans[0].attributes["provider"] == "slack"
        assert spans[0].attributes["attempt"] == 2

    def test_records_exception(self):
        tracer = get_tracer("test")

        with pytest.raises(ValueError):
            with traced(tracer, "failing"):
                raise ValueError("bad payload")

        span = _exporter.get_finished_spans()[0]
        assert span.status.status_code == StatusCode.ERROR
        assert any(event.name == "exception" for event in span.events)


class TestAddTraceContext:
    """Tests for the structlog processor."""

    def test_adds_ids_inside_span(self):
        tracer = get_tracer("test")

        with tracer.start_as_current_span("outer") as span:
            event = add_trace_context(None, "info", {"event": "hello"})
            ctx = span.get_span_context()

        assert event["trace_id"] == f"{ctx.trace_id:032x}"
        assert event["span_id"] == f"{ctx.span_id:016x}"

    def test_no_ids_outside_span(self):
        event = add_trace_context(None, "info", {"event": "hello"})

        assert "trace_id" not in event
        assert "span_id" not in event


class TestPollCycleSpan:
    """Poll cycles run inside a span."""

    @pytest.mark.asyncio
    async def test_poll_creates_span(self, aggregator, registry, make_message):
        registry.get(ProviderId.SLACK).fetch.return_value = [make_message(ProviderId.SLACK, 1)]

        await aggregator.poll(ProviderId.SLACK)

        spans = [s for s in _exporter.get_finished_spans() if s.name == "poll_cycle"]
        assert len(spans) == 1
        assert spans[0].attributes["provider"] == "slack"
        assert spans[0].attributes["outcome"] == "success"
        assert spans[0].attributes["unread_count"] == 1
