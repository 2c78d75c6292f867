"""Tests for structured logging setup."""

import logging

import structlog

from inbox_hub.observability.logging import bind_context, clear_context, get_logger, setup_logging


def test_setup_logging_quiets_http_libraries():
    setup_logging(level="DEBUG")

    assert logging.getLogger("httpx").level == logging.WARNING
    assert logging.getLogger("httpcore").level == logging.WARNING


def test_context_binding():
    clear_context()
    bind_context(provider="slack")

    assert structlog.contextvars.get_contextvars() == {"provider": "slack"}

    clear_context()
    assert structlog.contextvars.get_contextvars() == {}


def test_get_logger_returns_logger():
    logger = get_logger("inbox_hub.test")

    assert hasattr(logger, "info")
