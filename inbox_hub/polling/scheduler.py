"""
Per-provider poll scheduling.

The periodic-timer primitive sits behind ``TimerService`` so the asyncio
implementation can be swapped for a host timer without touching the
aggregator. ``PollScheduler`` decides which providers get a timer:

    STOPPED -> SCHEDULED -> STOPPED   (restart re-enters SCHEDULED)

Only enabled providers with a positive polling interval are scheduled.
Passive providers (interval 0) are fed through the passive update path.

Firings are never queued: each one spawns a poll task even if the previous
poll for that provider is still running.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from inbox_hub.config.settings import get_settings
from inbox_hub.providers.schemas import ProviderConfig, ProviderId

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Awaitable[Any]]


class ScheduleState(str, Enum):
    STOPPED = "stopped"
    SCHEDULED = "scheduled"


class TimerService(ABC):
    """Named periodic timers."""

    @abstractmethod
    def create(
        self,
        name: str,
        delay: float,
        period: float,
        callback: TimerCallback,
    ) -> None:
        """
        Register a timer, replacing any existing timer with the same name.

        Args:
            name: Timer name
            delay: Seconds before the first firing
            period: Seconds between subsequent firings
            callback: Async callable invoked on every firing
        """

    @abstractmethod
    def clear(self, name: str) -> bool:
        """Cancel a timer. Returns False if no such timer existed."""

    @abstractmethod
    def clear_all(self) -> None:
        """Cancel every timer."""

    @abstractmethod
    def names(self) -> list[str]:
        """Names of the active timers."""

    async def wait_idle(self) -> None:
        """Wait for running callbacks to finish. No-op unless overridden."""


class AsyncioTimerService(TimerService):
    """
    TimerService backed by one asyncio task per timer.

    Each firing runs the callback in its own task so a slow callback never
    delays the next firing. Cancelling a timer leaves callbacks that are
    already running alone; ``wait_idle()`` waits for them.
    """

    def __init__(self):
        self._timers: dict[str, asyncio.Task] = {}
        self._inflight: set[asyncio.Task] = set()

    def create(
        self,
        name: str,
        delay: float,
        period: float,
        callback: TimerCallback,
    ) -> None:
        if period <= 0:
            raise ValueError(f"Timer period must be positive, got {period}")

        self.clear(name)
        self._timers[name] = asyncio.create_task(
            self._run(name, delay, period, callback),
            name=f"timer_{name}",
        )

    async def _run(
        self,
        name: str,
        delay: float,
        period: float,
        callback: TimerCallback,
    ) -> None:
        await asyncio.sleep(delay)
        while True:
            task = asyncio.create_task(self._fire(name, callback), name=f"fire_{name}")
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)
            await asyncio.sleep(period)

    @staticmethod
    async def _fire(name: str, callback: TimerCallback) -> None:
        try:
            await callback()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Timer %s callback failed: %s", name, e, exc_info=True)

    def clear(self, name: str) -> bool:
        task = self._timers.pop(name, None)
        if task is None:
            return False
        task.cancel()
        return True

    def clear_all(self) -> None:
        for name in list(self._timers):
            self.clear(name)

    def names(self) -> list[str]:
        return list(self._timers)

    @property
    def inflight_count(self) -> int:
        return len(self._inflight)

    async def wait_idle(self) -> None:
        """Wait for callbacks that are currently running to finish."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)


def timer_name(provider_id: ProviderId) -> str:
    return f"poll-{provider_id.value}"


class PollScheduler:
    """
    Assigns each active, non-passive provider an independent periodic timer.

    Usage:
        scheduler = PollScheduler(
            timers=AsyncioTimerService(),
            load_configs=store.get_configs,
            poll=aggregator.poll,
        )
        await scheduler.start()
        ...
        scheduler.stop_all()
    """

    def __init__(
        self,
        timers: TimerService,
        load_configs: Callable[[], Awaitable[list[ProviderConfig]]],
        poll: Callable[[ProviderId], Awaitable[Any]],
        initial_delay: float | None = None,
    ):
        """
        Initialize scheduler.

        Args:
            timers: Timer primitive
            load_configs: Returns the current persisted provider configs
            poll: Runs one poll cycle for a provider
            initial_delay: Seconds before the first poll (default from settings)
        """
        self._timers = timers
        self._load_configs = load_configs
        self._poll = poll
        self._initial_delay = (
            initial_delay
            if initial_delay is not None
            else get_settings().initial_poll_delay_seconds
        )

    @property
    def timers(self) -> TimerService:
        return self._timers

    def _schedule(self, config: ProviderConfig) -> None:
        provider_id = config.provider_id

        async def fire() -> None:
            await self._poll(provider_id)

        self._timers.create(
            timer_name(provider_id),
            delay=self._initial_delay,
            period=float(config.polling_interval_seconds),
            callback=fire,
        )
        logger.info(
            "Scheduled %s every %ds",
            provider_id.value, config.polling_interval_seconds,
        )

    async def start(self) -> list[ProviderId]:
        """
        Cancel all timers and schedule every enabled, non-passive provider.

        Returns:
            Provider ids that were scheduled
        """
        self._timers.clear_all()

        scheduled: list[ProviderId] = []
        for config in await self._load_configs():
            if config.is_scheduled:
                self._schedule(config)
                scheduled.append(config.provider_id)

        logger.info("Scheduler started with %d providers", len(scheduled))
        return scheduled

    def stop(self, provider_id: ProviderId) -> None:
        if self._timers.clear(timer_name(provider_id)):
            logger.info("Stopped polling %s", provider_id.value)

    async def restart(self, provider_id: ProviderId) -> ScheduleState:
        """
        Re-register one provider's timer from its current config.

        Other providers' timers are not touched. A provider that is disabled
        or passive ends up STOPPED.
        """
        self.stop(provider_id)

        for config in await self._load_configs():
            if config.provider_id == provider_id and config.is_scheduled:
                self._schedule(config)
                break

        return self.state(provider_id)

    def stop_all(self) -> None:
        self._timers.clear_all()
        logger.info("Scheduler stopped")

    def state(self, provider_id: ProviderId) -> ScheduleState:
        if timer_name(provider_id) in self._timers.names():
            return ScheduleState.SCHEDULED
        return ScheduleState.STOPPED

    @property
    def scheduled_providers(self) -> list[ProviderId]:
        return [pid for pid in ProviderId if self.state(pid) is ScheduleState.SCHEDULED]
