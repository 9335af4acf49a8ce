"""Recurring cycle scheduler on top of APScheduler.

A schedule is one of three variants:
- ``IntervalSchedule``: every N minutes (autopilot, ``continuous`` mode)
- ``DailyWindowsSchedule``: once per post window per day (``window`` mode)
- ``CronSchedule``: a crontab expression (``window`` mode fallback)

The ``Scheduler`` owns its state and serialises every transition through one
lock. Stopping removes the job so no further trigger fires; a cycle already in
flight runs to completion because ticks run it in a shielded task.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, assert_never

from apscheduler.job import Job
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.combining import OrTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from content_autopilot.config import settings
from content_autopilot.db.session import SessionFactory, get_session_context
from content_autopilot.domain.enums import SchedulerMode
from content_autopilot.logging import get_logger
from content_autopilot.services.cycle import CycleRunner
from content_autopilot.services.rules import RulesSettings, get_rules
from content_autopilot.utils.timeutils import Clock, utcnow

logger = get_logger(__name__)

JOB_ID = "content_autopilot_cycle"
MIN_INTERVAL_MINUTES = 5


@dataclass(frozen=True)
class IntervalSchedule:
    minutes: float


@dataclass(frozen=True)
class DailyWindowsSchedule:
    times: tuple[str, ...]
    jitter_minutes: int = 0


@dataclass(frozen=True)
class CronSchedule:
    expression: str


Schedule = IntervalSchedule | DailyWindowsSchedule | CronSchedule


def schedule_mode(schedule: Schedule) -> SchedulerMode:
    if isinstance(schedule, IntervalSchedule):
        return SchedulerMode.CONTINUOUS
    elif isinstance(schedule, (DailyWindowsSchedule, CronSchedule)):
        return SchedulerMode.WINDOW
    else:
        assert_never(schedule)


def schedule_from_rules(rules: RulesSettings) -> Schedule:
    """Pick the schedule the current rules ask for.

    Autopilot runs on an interval. Otherwise cycles fire at the start of each
    post window, or on the configured cron expression when no windows exist.
    """
    policy = rules.optimiser_policy
    if policy.autopilot_enabled:
        return IntervalSchedule(
            minutes=max(MIN_INTERVAL_MINUTES, policy.autopilot_interval_hours * 60)
        )
    if rules.post_time_windows:
        return DailyWindowsSchedule(times=tuple(rules.post_time_windows))
    return CronSchedule(expression=settings.scheduler_cron)


def _window_start(window: str) -> tuple[int, int]:
    start = window.split("-", 1)[0].strip()
    hour, minute = start.split(":")
    return int(hour), int(minute)


def build_trigger(schedule: Schedule, timezone: str | None = None) -> BaseTrigger:
    """Translate a schedule into an APScheduler trigger."""
    tz = timezone or settings.scheduler_timezone

    if isinstance(schedule, IntervalSchedule):
        return IntervalTrigger(
            minutes=max(MIN_INTERVAL_MINUTES, schedule.minutes), timezone=tz
        )
    elif isinstance(schedule, DailyWindowsSchedule):
        if not schedule.times:
            raise ValueError("Daily windows schedule needs at least one window")
        jitter = schedule.jitter_minutes * 60 or None
        triggers = []
        for window in schedule.times:
            hour, minute = _window_start(window)
            triggers.append(CronTrigger(hour=hour, minute=minute, timezone=tz, jitter=jitter))
        return triggers[0] if len(triggers) == 1 else OrTrigger(triggers)
    elif isinstance(schedule, CronSchedule):
        return CronTrigger.from_crontab(schedule.expression, timezone=tz)
    else:
        assert_never(schedule)


@dataclass
class StartResult:
    success: bool
    error: str | None = None
    mode: SchedulerMode | None = None


@dataclass
class StopResult:
    success: bool
    was_running: bool = False


@dataclass
class SchedulerState:
    running: bool = False
    starting: bool = False
    mode: SchedulerMode | None = None
    last_run_at: datetime | None = None
    last_error: str | None = None
    job: Job | None = None
    inflight: set[asyncio.Task[Any]] = field(default_factory=set)

    def to_dict(self) -> dict[str, Any]:
        next_run = self.job.next_run_time if self.job is not None else None
        return {
            "running": self.running,
            "starting": self.starting,
            "mode": str(self.mode) if self.mode else None,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_error": self.last_error,
            "next_run_at": next_run.isoformat() if next_run else None,
            "in_flight": len(self.inflight),
        }


class Scheduler:
    """Drives the cycle runner on a schedule."""

    def __init__(
        self,
        runner: CycleRunner,
        session_factory: SessionFactory = get_session_context,
        clock: Clock = utcnow,
        timezone: str | None = None,
    ) -> None:
        self.runner = runner
        self.session_factory = session_factory
        self.clock = clock
        self.timezone = timezone or settings.scheduler_timezone
        self._state = SchedulerState()
        self._lock = asyncio.Lock()
        self._scheduler: AsyncIOScheduler | None = None

    def status(self) -> dict[str, Any]:
        return self._state.to_dict()

    @property
    def running(self) -> bool:
        return self._state.running

    async def start(self, schedule: Schedule | None = None) -> StartResult:
        """Register the cycle job, replacing any existing one.

        Args:
            schedule: Schedule to use; derived from the stored rules when omitted

        Returns:
            StartResult; a start requested while another is in progress fails
        """
        if self._state.starting:
            return StartResult(success=False, error="Scheduler is already starting")

        async with self._lock:
            self._state.starting = True
            try:
                if schedule is None:
                    with self.session_factory() as session:
                        schedule = schedule_from_rules(get_rules(session))
                mode = schedule_mode(schedule)
                trigger = build_trigger(schedule, self.timezone)

                self._remove_job()
                if self._scheduler is None:
                    self._scheduler = AsyncIOScheduler(timezone=self.timezone)
                    self._scheduler.start()

                self._state.job = self._scheduler.add_job(
                    self._tick,
                    trigger,
                    args=[mode],
                    id=JOB_ID,
                    max_instances=1,
                    coalesce=True,
                    replace_existing=True,
                )
                self._state.running = True
                self._state.mode = mode
            except Exception as e:
                logger.exception("scheduler_start_failed", error=str(e))
                self._state.last_error = str(e)
                return StartResult(success=False, error=str(e))
            finally:
                self._state.starting = False

        logger.info("scheduler_started", mode=str(mode), schedule=repr(schedule))
        if mode == SchedulerMode.CONTINUOUS:
            self._spawn(mode)
        return StartResult(success=True, mode=mode)

    async def stop(self) -> StopResult:
        """Cancel the next trigger. Safe to call when not running."""
        async with self._lock:
            was_running = self._state.running
            self._remove_job()
            self._state.running = False
            self._state.mode = None

        if was_running:
            logger.info("scheduler_stopped", in_flight=len(self._state.inflight))
        return StopResult(success=True, was_running=was_running)

    async def shutdown(self) -> None:
        """Stop, wait for in-flight cycles, then stop the APScheduler loop."""
        await self.stop()
        if self._state.inflight:
            await asyncio.gather(*self._state.inflight, return_exceptions=True)
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None

    def _remove_job(self) -> None:
        if self._state.job is not None:
            try:
                self._state.job.remove()
            except LookupError:
                # Already gone (a one-shot job or a scheduler restart)
                pass
            self._state.job = None

    def _spawn(self, mode: SchedulerMode) -> asyncio.Task[None]:
        task = asyncio.create_task(self._run_tick(mode))
        self._state.inflight.add(task)
        task.add_done_callback(self._state.inflight.discard)
        return task

    async def _tick(self, mode: SchedulerMode) -> None:
        await asyncio.shield(self._spawn(mode))

    async def _run_tick(self, mode: SchedulerMode) -> None:
        async with self._lock:
            self._state.last_run_at = self.clock()

        try:
            report = await self.runner.run_cycle(autopilot=mode == SchedulerMode.CONTINUOUS)
        except Exception as e:
            logger.exception("scheduler_tick_failed", mode=str(mode), error=str(e))
            async with self._lock:
                self._state.last_error = str(e)
            return

        async with self._lock:
            self._state.last_error = None
        logger.info(
            "scheduler_tick_completed",
            mode=str(mode),
            skipped=report.skipped,
            blocked=report.blocked,
            uploaded=len(report.uploaded),
        )
