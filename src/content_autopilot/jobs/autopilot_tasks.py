"""Celery tasks that run autopilot cycles outside the API process.

Includes:
- autopilot.run_cycle: full autopilot cycle (metrics, learning, queue, upload)
- autopilot.run_scheduled_cycle: window cycle (queue, render, upload)
- autopilot.refresh_metrics: metrics refresh only
"""

from typing import Any

from content_autopilot.logging import get_logger
from content_autopilot.services.cycle import CycleReport, build_cycle_runner
from content_autopilot.utils import run_async
from content_autopilot.worker import celery_app

logger = get_logger(__name__)


def _report_result(report: CycleReport) -> dict[str, Any]:
    return {
        "success": not report.skipped,
        "blocked": report.blocked,
        "report": report.to_dict(),
    }


@celery_app.task(
    bind=True,
    name="autopilot.run_cycle",
    max_retries=0,
)
def run_cycle_task(self: Any) -> dict[str, Any]:
    """Run one autopilot cycle.

    Returns:
        Dictionary with the cycle report; ``success`` is False when the cycle
        was skipped because another one was running or it raised.
    """
    task_id = self.request.id
    logger.info("autopilot_cycle_task_started", task_id=task_id)

    runner = build_cycle_runner()
    try:
        report = run_async(runner.run_autopilot_cycle())
    except Exception as e:
        logger.exception("autopilot_cycle_task_failed", task_id=task_id, error=str(e))
        return {"success": False, "error": str(e)}
    finally:
        run_async(runner.publisher.close())

    return _report_result(report)


@celery_app.task(
    bind=True,
    name="autopilot.run_scheduled_cycle",
    max_retries=0,
)
def run_scheduled_cycle_task(self: Any) -> dict[str, Any]:
    """Run one window cycle."""
    task_id = self.request.id
    logger.info("scheduled_cycle_task_started", task_id=task_id)

    runner = build_cycle_runner()
    try:
        report = run_async(runner.run_scheduled_cycle())
    except Exception as e:
        logger.exception("scheduled_cycle_task_failed", task_id=task_id, error=str(e))
        return {"success": False, "error": str(e)}
    finally:
        run_async(runner.publisher.close())

    return _report_result(report)


@celery_app.task(
    bind=True,
    name="autopilot.refresh_metrics",
    max_retries=2,
    default_retry_delay=300,
)
def refresh_metrics_task(self: Any) -> dict[str, Any]:
    """Pull platform metrics and credit the bandit arms."""
    task_id = self.request.id
    runner = build_cycle_runner()
    try:
        result = run_async(runner.metrics.refresh())
    except Exception as e:
        logger.exception("refresh_metrics_task_failed", task_id=task_id, error=str(e))
        raise self.retry(exc=e)
    finally:
        run_async(runner.publisher.close())

    logger.info("refresh_metrics_task_completed", task_id=task_id, matched=result.matched)
    return {"success": True, **result.to_dict()}
