"""Recovery mode: reduced cadence after a reach drop or spam signal."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from statistics import median

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from content_autopilot.db.models import MetricModel, RunLogModel
from content_autopilot.domain.enums import RunType
from content_autopilot.logging import get_logger
from content_autopilot.services.rules import RulesSettings
from content_autopilot.utils.timeutils import ensure_utc, utcnow

logger = get_logger(__name__)

CURRENT_WINDOW_DAYS = 3
PREVIOUS_WINDOW_DAYS = 10


@dataclass
class RecoveryStatus:
    active: bool
    views_drop: float = 0.0
    view2s_drop: float = 0.0
    spam_errors: int = 0


def _median(values: list[float]) -> float:
    return float(median(values)) if values else 0.0


def _drop(current: float, previous: float) -> float:
    if previous <= 0:
        return 0.0
    return max(0.0, 1 - current / previous)


def get_recovery_status(
    session: Session, rules: RulesSettings, now: datetime | None = None
) -> RecoveryStatus:
    """Compare the last 3 days against days 3-10 and count recent spam-risk events.

    Args:
        session: Database session
        rules: Current rules document
        now: Reference time (defaults to the current UTC time)

    Returns:
        RecoveryStatus; ``active`` is False when recovery mode is disabled
    """
    policy = rules.recovery_mode
    if not policy.enabled:
        return RecoveryStatus(active=False)

    now = now or utcnow()
    current_start = now - timedelta(days=CURRENT_WINDOW_DAYS)
    previous_start = now - timedelta(days=PREVIOUS_WINDOW_DAYS)

    rows = session.execute(
        select(MetricModel.create_time, MetricModel.views, MetricModel.view2_rate).where(
            MetricModel.create_time >= previous_start
        )
    ).all()

    current = [row for row in rows if ensure_utc(row.create_time) >= current_start]
    previous = [row for row in rows if ensure_utc(row.create_time) < current_start]

    views_drop = _drop(
        _median([row.views or 0 for row in current]),
        _median([row.views or 0 for row in previous]),
    )
    view2s_drop = _drop(
        _median([row.view2_rate for row in current if row.view2_rate and row.view2_rate > 0]),
        _median([row.view2_rate for row in previous if row.view2_rate and row.view2_rate > 0]),
    )

    spam_errors = session.execute(
        select(func.count())
        .select_from(RunLogModel)
        .where(
            RunLogModel.run_type == str(RunType.UPLOAD_SPAM_RISK),
            RunLogModel.started_at >= current_start,
        )
    ).scalar_one()

    active = (
        views_drop > policy.views_drop_threshold
        or view2s_drop > policy.view2s_drop_threshold
        or spam_errors >= policy.spam_error_threshold
    )
    if active:
        logger.info(
            "recovery_mode_active",
            views_drop=round(views_drop, 3),
            view2s_drop=round(view2s_drop, 3),
            spam_errors=spam_errors,
        )
    return RecoveryStatus(
        active=active,
        views_drop=views_drop,
        view2s_drop=view2s_drop,
        spam_errors=spam_errors,
    )
