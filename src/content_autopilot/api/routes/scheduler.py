"""Scheduler control endpoints."""

from typing import Any

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from content_autopilot.api.deps import SchedulerDep
from content_autopilot.logging import get_logger
from content_autopilot.scheduler import (
    CronSchedule,
    DailyWindowsSchedule,
    IntervalSchedule,
    Schedule,
)

router = APIRouter(prefix="/scheduler", tags=["Scheduler"])
logger = get_logger(__name__)


class StartRequest(BaseModel):
    """Optional schedule override; the stored rules decide when all fields are empty."""

    interval_minutes: float | None = Field(default=None, gt=0)
    windows: list[str] | None = None
    cron: str | None = None

    def to_schedule(self) -> Schedule | None:
        given = [v for v in (self.interval_minutes, self.windows, self.cron) if v]
        if len(given) > 1:
            raise ValueError("Give only one of interval_minutes, windows, cron")
        if self.interval_minutes:
            return IntervalSchedule(minutes=self.interval_minutes)
        if self.windows:
            return DailyWindowsSchedule(times=tuple(self.windows))
        if self.cron:
            return CronSchedule(expression=self.cron)
        return None


class StartResponse(BaseModel):
    success: bool
    mode: str | None = None
    error: str | None = None


class StopResponse(BaseModel):
    success: bool
    was_running: bool


@router.post(
    "/start",
    response_model=StartResponse,
    summary="Start the scheduler",
)
async def start_scheduler(
    scheduler: SchedulerDep, request: StartRequest | None = None
) -> StartResponse:
    """Start (or restart) the scheduler."""
    try:
        schedule = request.to_schedule() if request else None
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    result = await scheduler.start(schedule)
    if not result.success:
        logger.warning("scheduler_start_rejected", error=result.error)
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=result.error)
    return StartResponse(success=True, mode=str(result.mode) if result.mode else None)


@router.post(
    "/stop",
    response_model=StopResponse,
    summary="Stop the scheduler",
)
async def stop_scheduler(scheduler: SchedulerDep) -> StopResponse:
    """Stop the scheduler; a cycle already running completes."""
    result = await scheduler.stop()
    return StopResponse(success=result.success, was_running=result.was_running)


@router.get("/status", summary="Scheduler status")
async def scheduler_status(scheduler: SchedulerDep) -> dict[str, Any]:
    return scheduler.status()
