"""Unified unread-message aggregator for email and chat providers."""

__version__ = "0.1.0"
