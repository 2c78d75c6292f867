"""Long-running services."""

from inbox_hub.services.orchestrator import InboxOrchestrator, InboxSnapshot

__all__ = ["InboxOrchestrator", "InboxSnapshot"]
