"""Celery job definitions."""

from content_autopilot.jobs.autopilot_tasks import (
    refresh_metrics_task,
    run_cycle_task,
    run_scheduled_cycle_task,
)

__all__ = [
    "run_cycle_task",
    "run_scheduled_cycle_task",
    "refresh_metrics_task",
]
