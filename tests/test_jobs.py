"""Tests for the Celery cycle tasks (executed locally with ``apply``)."""

from unittest.mock import patch

from content_autopilot.config import settings
from content_autopilot.jobs.autopilot_tasks import (
    refresh_metrics_task,
    run_cycle_task,
    run_scheduled_cycle_task,
)
from content_autopilot.worker import _beat_schedule, celery_app


def test_tasks_route_to_autopilot_queue() -> None:
    routes = celery_app.conf.task_routes
    for name in ("autopilot.run_cycle", "autopilot.run_scheduled_cycle", "autopilot.refresh_metrics"):
        assert routes[name] == {"queue": "autopilot"}


def test_metrics_beat_schedule_is_opt_in() -> None:
    assert _beat_schedule() == {}

    with patch.object(settings, "metrics_refresh_interval_minutes", 30):
        schedule = _beat_schedule()

    assert schedule["refresh-metrics"]["task"] == "autopilot.refresh_metrics"
    assert schedule["refresh-metrics"]["schedule"] == 1800.0


class TestCycleTasks:
    """Tests for the cycle tasks."""

    def test_scheduled_cycle_task(self) -> None:
        result = run_scheduled_cycle_task.apply().get()

        assert result["success"] is True
        assert result["blocked"] is False
        assert result["report"]["cycle_type"] == "scheduled_cycle"

    def test_autopilot_cycle_task(self) -> None:
        result = run_cycle_task.apply().get()

        assert result["success"] is True
        assert result["report"]["cycle_type"] == "autopilot_cycle"
        assert result["report"]["metrics"] == {"matched": 0, "results": [], "errors": []}

    def test_cycle_task_reports_failure(self) -> None:
        with patch(
            "content_autopilot.services.cycle.CycleRunner._cycle",
            side_effect=RuntimeError("database gone"),
        ):
            result = run_scheduled_cycle_task.apply().get()

        assert result == {"success": False, "error": "database gone"}

    def test_refresh_metrics_task(self) -> None:
        result = refresh_metrics_task.apply().get()

        assert result == {"success": True, "matched": 0, "results": [], "errors": []}
