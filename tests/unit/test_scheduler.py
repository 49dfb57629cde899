"""Unit tests for the daily digest scheduler.

Tests cover:
- Scheduler state machine transitions
- Fire time computation in a fixed UTC offset
- Tick lifecycle (idle -> running -> idle) and failure isolation
- Fast-forwarded daily cadence
- Graceful shutdown, including a tick in flight
"""

from __future__ import annotations

import asyncio
import os
import signal
import sys
from datetime import datetime, timedelta, timezone

import pytest

from reviewdigest.pipeline import TickResult, TickStatus
from reviewdigest.scheduler import (
    VALID_TRANSITIONS,
    DailySchedule,
    DigestScheduler,
    InvalidTransitionError,
    SchedulerState,
    validate_transition,
)

START = datetime(2024, 3, 1, 0, 0, tzinfo=timezone.utc)  # 06:00 at UTC+6


class FakeClock:
    """Virtual clock whose sleep advances time instantly."""

    def __init__(self, start: datetime = START) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> datetime:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += timedelta(seconds=seconds)
        await asyncio.sleep(0)


class RecordingPipeline:
    """Pipeline double recording the virtual time of each run."""

    def __init__(self, clock: FakeClock, status: TickStatus = TickStatus.DELIVERED) -> None:
        self.clock = clock
        self.status = status
        self.runs: list[datetime] = []
        self.on_run = None

    async def run_once(self) -> TickResult:
        now = self.clock()
        self.runs.append(now)
        if self.on_run is not None:
            await self.on_run(len(self.runs))
        return TickResult(status=self.status, started_at=now, finished_at=self.clock())


class TestStateMachine:
    """Test the scheduler state transition table."""

    def test_all_states_defined(self) -> None:
        assert set(VALID_TRANSITIONS) == set(SchedulerState)

    @pytest.mark.parametrize(
        "current,target,expected",
        [
            (SchedulerState.idle, SchedulerState.running, True),
            (SchedulerState.running, SchedulerState.idle, True),
            (SchedulerState.idle, SchedulerState.stopped, True),
            (SchedulerState.running, SchedulerState.stopped, False),
            (SchedulerState.running, SchedulerState.running, False),
            (SchedulerState.stopped, SchedulerState.idle, False),
            (SchedulerState.stopped, SchedulerState.running, False),
        ],
    )
    def test_validate_transition(
        self, current: SchedulerState, target: SchedulerState, expected: bool
    ) -> None:
        assert validate_transition(current, target) is expected

    def test_error_message(self) -> None:
        error = InvalidTransitionError(SchedulerState.stopped, SchedulerState.running)
        assert str(error) == "Invalid transition from stopped to running"


class TestDailySchedule:
    """Test fire time computation."""

    def test_later_today(self) -> None:
        schedule = DailySchedule(hour=11, minute=30, utc_offset_hours=6)
        next_run = schedule.next_run_after(START)
        assert next_run == datetime(2024, 3, 1, 5, 30, tzinfo=timezone.utc)
        assert next_run.utcoffset() == timedelta(hours=6)
        assert (next_run.hour, next_run.minute) == (11, 30)

    def test_exactly_at_fire_time_rolls_to_tomorrow(self) -> None:
        schedule = DailySchedule()
        fire = datetime(2024, 3, 1, 5, 30, tzinfo=timezone.utc)
        assert schedule.next_run_after(fire) == fire + timedelta(days=1)

    def test_after_fire_time(self) -> None:
        schedule = DailySchedule()
        now = datetime(2024, 3, 1, 6, 0, tzinfo=timezone.utc)
        assert schedule.next_run_after(now) == datetime(2024, 3, 2, 5, 30, tzinfo=timezone.utc)

    def test_offset_day_boundary(self) -> None:
        """22:00 UTC is already the next calendar day at UTC+6."""
        schedule = DailySchedule()
        now = datetime(2024, 3, 1, 22, 0, tzinfo=timezone.utc)
        assert schedule.next_run_after(now) == datetime(2024, 3, 2, 5, 30, tzinfo=timezone.utc)

    def test_negative_offset(self) -> None:
        schedule = DailySchedule(hour=9, minute=0, utc_offset_hours=-5)
        assert schedule.next_run_after(START) == datetime(2024, 3, 1, 14, 0, tzinfo=timezone.utc)
        assert schedule.tz.tzname(None) == "UTC-5"

    def test_naive_time_treated_as_utc(self) -> None:
        schedule = DailySchedule()
        naive = START.replace(tzinfo=None)
        assert schedule.next_run_after(naive) == schedule.next_run_after(START)


class TestTick:
    """Test a single scheduler tick."""

    async def test_state_is_running_during_tick(self) -> None:
        clock = FakeClock()
        pipeline = RecordingPipeline(clock)
        scheduler = DigestScheduler(pipeline, DailySchedule(), clock=clock, sleep=clock.sleep)
        seen: list[SchedulerState] = []

        async def record_state(_: int) -> None:
            seen.append(scheduler.state)

        pipeline.on_run = record_state
        result = await scheduler.tick()

        assert seen == [SchedulerState.running]
        assert scheduler.state == SchedulerState.idle
        assert result.ok

    async def test_failed_tick_returns_to_idle(self) -> None:
        clock = FakeClock()
        pipeline = RecordingPipeline(clock, status=TickStatus.FETCH_FAILED)
        scheduler = DigestScheduler(pipeline, DailySchedule(), clock=clock, sleep=clock.sleep)

        result = await scheduler.tick()

        assert result.status == TickStatus.FETCH_FAILED
        assert scheduler.state == SchedulerState.idle

    async def test_crashing_pipeline_is_contained(self) -> None:
        clock = FakeClock()
        pipeline = RecordingPipeline(clock)

        async def explode(_: int) -> None:
            raise RuntimeError("boom")

        pipeline.on_run = explode
        scheduler = DigestScheduler(pipeline, DailySchedule(), clock=clock, sleep=clock.sleep)

        result = await scheduler.tick()

        assert result.status == TickStatus.ERRORED
        assert result.error == "boom"
        assert scheduler.state == SchedulerState.idle

    async def test_concurrent_ticks_are_serialized(self) -> None:
        clock = FakeClock()
        pipeline = RecordingPipeline(clock)
        active = 0
        peak = 0

        async def slow(_: int) -> None:
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1

        pipeline.on_run = slow
        scheduler = DigestScheduler(pipeline, DailySchedule(), clock=clock, sleep=clock.sleep)

        await asyncio.gather(scheduler.tick(), scheduler.tick())

        assert peak == 1
        assert len(pipeline.runs) == 2


class TestRunForever:
    """Test the daily loop under a fast-forwarded clock."""

    async def test_consecutive_days_each_tick_once(self) -> None:
        clock = FakeClock()
        pipeline = RecordingPipeline(clock)
        scheduler = DigestScheduler(pipeline, DailySchedule(), clock=clock, sleep=clock.sleep)

        async def stop_after_three(run_count: int) -> None:
            if run_count == 3:
                scheduler.request_stop()

        pipeline.on_run = stop_after_three
        await asyncio.wait_for(scheduler.run_forever(), timeout=5)

        first = datetime(2024, 3, 1, 5, 30, tzinfo=timezone.utc)
        assert pipeline.runs == [first, first + timedelta(days=1), first + timedelta(days=2)]
        assert scheduler.state == SchedulerState.stopped

    async def test_two_ticks_are_24_hours_apart(self) -> None:
        clock = FakeClock(datetime(2024, 3, 1, 5, 29, 59, tzinfo=timezone.utc))
        pipeline = RecordingPipeline(clock)
        scheduler = DigestScheduler(pipeline, DailySchedule(), clock=clock, sleep=clock.sleep)

        async def stop_after_two(run_count: int) -> None:
            if run_count == 2:
                scheduler.request_stop()

        pipeline.on_run = stop_after_two
        await asyncio.wait_for(scheduler.run_forever(), timeout=5)

        assert len(pipeline.runs) == 2
        assert pipeline.runs[1] - pipeline.runs[0] == timedelta(hours=24)
        assert clock.sleeps == [1.0, 86400.0]

    async def test_failures_do_not_stop_the_loop(self) -> None:
        clock = FakeClock()
        pipeline = RecordingPipeline(clock, status=TickStatus.DELIVERY_FAILED)
        scheduler = DigestScheduler(pipeline, DailySchedule(), clock=clock, sleep=clock.sleep)

        async def stop_after_two(run_count: int) -> None:
            if run_count == 2:
                scheduler.request_stop()

        pipeline.on_run = stop_after_two
        await asyncio.wait_for(scheduler.run_forever(), timeout=5)

        assert len(pipeline.runs) == 2

    async def test_stop_before_start(self) -> None:
        clock = FakeClock()
        pipeline = RecordingPipeline(clock)
        scheduler = DigestScheduler(pipeline, DailySchedule(), clock=clock, sleep=clock.sleep)

        scheduler.request_stop()
        await scheduler.run_forever()

        assert pipeline.runs == []
        assert scheduler.state == SchedulerState.stopped

    async def test_stop_interrupts_wait(self) -> None:
        """A stop request ends a long wait without running the pipeline."""
        clock = FakeClock()
        pipeline = RecordingPipeline(clock)
        # Real sleep: the wait until 05:30 would last hours
        scheduler = DigestScheduler(pipeline, DailySchedule(), clock=clock)

        task = asyncio.create_task(scheduler.run_forever())
        await asyncio.sleep(0.01)
        assert not task.done()

        scheduler.request_stop()
        await asyncio.wait_for(task, timeout=1)

        assert pipeline.runs == []
        assert scheduler.state == SchedulerState.stopped

    @pytest.mark.skipif(sys.platform == "win32", reason="loop signal handlers need a Unix event loop")
    @pytest.mark.parametrize("sig", [signal.SIGTERM, signal.SIGINT])
    async def test_signal_stops_scheduler(self, sig: signal.Signals) -> None:
        clock = FakeClock()
        pipeline = RecordingPipeline(clock)
        scheduler = DigestScheduler(pipeline, DailySchedule(), clock=clock)
        loop = asyncio.get_running_loop()

        scheduler.install_signal_handlers()
        try:
            task = asyncio.create_task(scheduler.run_forever())
            await asyncio.sleep(0.01)
            assert not task.done()

            os.kill(os.getpid(), sig)
            await asyncio.wait_for(task, timeout=1)
        finally:
            for s in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(s)

        assert scheduler.stop_requested
        assert scheduler.state == SchedulerState.stopped
        assert pipeline.runs == []

    async def test_tick_in_flight_completes_before_shutdown(self) -> None:
        clock = FakeClock()
        pipeline = RecordingPipeline(clock)
        scheduler = DigestScheduler(pipeline, DailySchedule(), clock=clock, sleep=clock.sleep)
        started = asyncio.Event()
        release = asyncio.Event()
        finished: list[bool] = []

        async def block(_: int) -> None:
            started.set()
            await release.wait()
            finished.append(True)

        pipeline.on_run = block
        task = asyncio.create_task(scheduler.run_forever())

        await asyncio.wait_for(started.wait(), timeout=1)
        scheduler.request_stop()
        await asyncio.sleep(0.01)
        assert scheduler.state == SchedulerState.running
        assert not task.done()

        release.set()
        await asyncio.wait_for(task, timeout=1)

        assert finished == [True]
        assert len(pipeline.runs) == 1
        assert scheduler.state == SchedulerState.stopped

    async def test_tick_after_stop_is_rejected(self) -> None:
        clock = FakeClock()
        scheduler = DigestScheduler(RecordingPipeline(clock), DailySchedule(), clock=clock, sleep=clock.sleep)
        scheduler.request_stop()
        await scheduler.run_forever()

        with pytest.raises(InvalidTransitionError):
            await scheduler.tick()
