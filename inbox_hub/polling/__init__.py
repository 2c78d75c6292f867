"""Polling core - retry policy, scheduler, aggregator and badge projection."""

from inbox_hub.polling.aggregator import Aggregator, PollResult
from inbox_hub.polling.badge import BadgeProjection, compute_badge, format_badge
from inbox_hub.polling.retry import RetryPolicy, is_terminal_error
from inbox_hub.polling.scheduler import (
    AsyncioTimerService,
    PollScheduler,
    ScheduleState,
    TimerService,
)

__all__ = [
    "Aggregator",
    "AsyncioTimerService",
    "BadgeProjection",
    "PollResult",
    "PollScheduler",
    "RetryPolicy",
    "ScheduleState",
    "TimerService",
    "compute_badge",
    "format_badge",
    "is_terminal_error",
]
