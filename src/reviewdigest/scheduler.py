"""Daily scheduler for the digest pipeline.

This module implements the scheduler lifecycle as an explicit state machine:

    idle ──tick──> running ──done──> idle
      │
      └──stop──> stopped (terminal)

The scheduler fires once per day at a fixed wall-clock time in a fixed UTC
offset, independent of the host timezone. Ticks never overlap: they run one
at a time under a lock, and a stop request only interrupts the wait between
ticks, so a tick in flight always completes before shutdown.
"""

from __future__ import annotations

import asyncio
import signal
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Protocol

import structlog

from reviewdigest.config import ScheduleConfig
from reviewdigest.pipeline import TickResult, TickStatus

logger = structlog.get_logger(__name__)


class SchedulerState(str, Enum):
    """Lifecycle states of the digest scheduler."""

    idle = "idle"
    running = "running"
    stopped = "stopped"


class InvalidTransitionError(Exception):
    """Raised when an invalid scheduler state transition is attempted.

    Attributes:
        current: The current scheduler state.
        target: The attempted target state.
    """

    def __init__(self, current: SchedulerState, target: SchedulerState):
        self.current = current
        self.target = target
        super().__init__(f"Invalid transition from {current.value} to {target.value}")


VALID_TRANSITIONS: dict[SchedulerState, set[SchedulerState]] = {
    SchedulerState.idle: {SchedulerState.running, SchedulerState.stopped},
    SchedulerState.running: {SchedulerState.idle},
    SchedulerState.stopped: set(),  # Terminal state
}


def validate_transition(current: SchedulerState, target: SchedulerState) -> bool:
    """Validate if a state transition is allowed.

    Args:
        current: Current scheduler state.
        target: Target scheduler state.

    Returns:
        True if the transition is valid according to VALID_TRANSITIONS.
    """
    return target in VALID_TRANSITIONS.get(current, set())


@dataclass(frozen=True)
class DailySchedule:
    """Fire time of the daily digest.

    Attributes:
        hour: Hour of day in the schedule's offset
        minute: Minute of hour
        utc_offset_hours: Fixed offset from UTC
    """

    hour: int = 11
    minute: int = 30
    utc_offset_hours: int = 6

    @classmethod
    def from_config(cls, config: ScheduleConfig) -> DailySchedule:
        return cls(
            hour=config.hour,
            minute=config.minute,
            utc_offset_hours=config.utc_offset_hours,
        )

    @property
    def tz(self) -> timezone:
        sign = "+" if self.utc_offset_hours >= 0 else "-"
        return timezone(
            timedelta(hours=self.utc_offset_hours),
            f"UTC{sign}{abs(self.utc_offset_hours)}",
        )

    def next_run_after(self, now: datetime) -> datetime:
        """Return the first fire time strictly after ``now``.

        Args:
            now: Timezone-aware reference time

        Returns:
            Fire time expressed in the schedule's offset
        """
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        local = now.astimezone(self.tz)
        candidate = local.replace(hour=self.hour, minute=self.minute, second=0, microsecond=0)
        if candidate <= local:
            candidate += timedelta(days=1)
        return candidate


class TickRunner(Protocol):
    async def run_once(self) -> TickResult: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DigestScheduler:
    """Triggers the digest pipeline once per day.

    The scheduler owns its state; there is no module-level job registry.
    Clock and sleep are injectable so tests can fast-forward time.

    Attributes:
        pipeline: Object running one digest tick
        schedule: Daily fire time
    """

    def __init__(
        self,
        pipeline: TickRunner,
        schedule: DailySchedule,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        """Initialize the scheduler in the idle state.

        Args:
            pipeline: Object with an async run_once() returning TickResult
            schedule: Daily fire time
            clock: Returns the current timezone-aware time
            sleep: Awaitable sleep used while waiting for the next tick
        """
        self.pipeline = pipeline
        self.schedule = schedule
        self._clock = clock or _utcnow
        self._sleep = sleep or asyncio.sleep
        self._state = SchedulerState.idle
        self._stop_event = asyncio.Event()
        self._lock = asyncio.Lock()
        self._logger = logger.bind(component="DigestScheduler")

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    def _transition(self, target: SchedulerState) -> None:
        if not validate_transition(self._state, target):
            raise InvalidTransitionError(self._state, target)
        self._logger.debug(
            "scheduler_transition",
            from_state=self._state.value,
            to_state=target.value,
        )
        self._state = target

    def request_stop(self) -> None:
        """Ask the scheduler to stop after any tick in flight."""
        if not self._stop_event.is_set():
            self._logger.info("scheduler_stop_requested", state=self._state.value)
        self._stop_event.set()

    def install_signal_handlers(self) -> None:
        """Stop the scheduler on SIGINT and SIGTERM.

        Must be called from within the running event loop.
        """
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self.request_stop)

    async def tick(self) -> TickResult:
        """Run the pipeline once, returning to idle whatever the outcome.

        Unexpected exceptions from the pipeline are logged and turned into a
        failed result; they never propagate.

        Returns:
            TickResult of the run

        Raises:
            InvalidTransitionError: If the scheduler has already stopped
        """
        async with self._lock:
            self._transition(SchedulerState.running)
            started_at = self._clock()
            try:
                result = await self.pipeline.run_once()
            except Exception as e:
                self._logger.error("digest_tick_crashed", error=str(e), exc_info=True)
                result = TickResult(
                    status=TickStatus.ERRORED,
                    started_at=started_at,
                    finished_at=self._clock(),
                    error=str(e),
                )
            finally:
                self._transition(SchedulerState.idle)

        if result.ok:
            self._logger.info(
                "digest_tick_completed",
                request_count=result.request_count,
            )
        else:
            self._logger.warning(
                "digest_tick_failed",
                status=result.status.value,
                error=result.error,
            )
        return result

    async def _wait_until(self, target: datetime) -> bool:
        """Wait until ``target`` or a stop request.

        Returns:
            True if a stop was requested before the target time
        """
        while not self._stop_event.is_set():
            delay = (target - self._clock()).total_seconds()
            if delay <= 0:
                return False

            sleeper = asyncio.ensure_future(self._sleep(delay))
            stopper = asyncio.ensure_future(self._stop_event.wait())
            try:
                await asyncio.wait({sleeper, stopper}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                for task in (sleeper, stopper):
                    if not task.done():
                        task.cancel()
                await asyncio.gather(sleeper, stopper, return_exceptions=True)
        return True

    async def run_forever(self) -> None:
        """Fire the pipeline every day until a stop is requested."""
        self._logger.info(
            "scheduler_started",
            hour=self.schedule.hour,
            minute=self.schedule.minute,
            utc_offset_hours=self.schedule.utc_offset_hours,
        )

        while not self._stop_event.is_set():
            next_run = self.schedule.next_run_after(self._clock())
            self._logger.info("next_tick_scheduled", next_run=next_run.isoformat())

            if await self._wait_until(next_run):
                break

            await self.tick()

        self._transition(SchedulerState.stopped)
        self._logger.info("scheduler_stopped")
