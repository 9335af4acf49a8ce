"""Celery app for running cycles out of the API process.

Every autopilot task goes to the ``autopilot`` queue and a worker runs one
task at a time, so cycles started through Celery never overlap within a
worker. The in-process ``Scheduler`` remains the primary driver; Celery beat
only adds a periodic metrics refresh when
``METRICS_REFRESH_INTERVAL_MINUTES`` is set.
"""

from typing import Any

from celery import Celery
from celery.signals import worker_process_init

from content_autopilot.config import settings
from content_autopilot.logging import get_logger, setup_logging

setup_logging()
logger = get_logger(__name__)

AUTOPILOT_QUEUE = "autopilot"
AUTOPILOT_TASKS = (
    "autopilot.run_cycle",
    "autopilot.run_scheduled_cycle",
    "autopilot.refresh_metrics",
)


def _beat_schedule() -> dict[str, dict[str, Any]]:
    minutes = settings.metrics_refresh_interval_minutes
    if minutes <= 0:
        return {}
    return {
        "refresh-metrics": {
            "task": "autopilot.refresh_metrics",
            "schedule": minutes * 60.0,
            "options": {"queue": AUTOPILOT_QUEUE},
        }
    }


celery_app = Celery(
    "content_autopilot",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone=settings.scheduler_timezone,
    enable_utc=True,
    task_default_queue=AUTOPILOT_QUEUE,
    task_routes={name: {"queue": AUTOPILOT_QUEUE} for name in AUTOPILOT_TASKS},
    # A cycle renders and uploads several files; allow it 15 minutes
    task_time_limit=900,
    task_soft_time_limit=840,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    worker_concurrency=1,
    result_expires=86400,
    broker_connection_retry_on_startup=True,
    beat_schedule=_beat_schedule(),
)


@worker_process_init.connect
def _dispose_engine(**kwargs: Any) -> None:
    """Forked worker processes must not reuse the parent's pooled connections."""
    from content_autopilot.db.session import engine

    engine.dispose(close=False)
    logger.info("worker_process_initialized")


celery_app.autodiscover_tasks(["content_autopilot.jobs"])
