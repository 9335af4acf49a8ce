"""Run log: the audit trail of cycles and guardrail events."""

from datetime import datetime

from sqlalchemy import desc, select
from sqlalchemy.orm import Session

from content_autopilot.db.models import RunLogModel
from content_autopilot.domain.enums import RunStatus
from content_autopilot.utils.timeutils import ensure_utc, utcnow

# Payload excerpts are truncated so a large API response cannot bloat the log
MAX_EXCERPT_LENGTH = 2000


def _excerpt(payload: str | None) -> str | None:
    if payload is None:
        return None
    return payload[:MAX_EXCERPT_LENGTH]


def log_run_event(
    session: Session,
    run_type: str,
    status: RunStatus | str = RunStatus.OK,
    payload_excerpt: str | None = None,
    started_at: datetime | None = None,
) -> RunLogModel:
    """Append a run event."""
    now = utcnow()
    entry = RunLogModel(
        run_type=str(run_type),
        status=str(status),
        started_at=started_at or now,
        finished_at=now,
        payload_excerpt=_excerpt(payload_excerpt),
    )
    session.add(entry)
    session.flush()
    return entry


def log_run_error(
    session: Session,
    run_type: str,
    error: str,
    payload_excerpt: str | None = None,
    started_at: datetime | None = None,
) -> RunLogModel:
    """Append a failed run event."""
    now = utcnow()
    entry = RunLogModel(
        run_type=str(run_type),
        status=str(RunStatus.FAILED),
        started_at=started_at or now,
        finished_at=now,
        error=error,
        payload_excerpt=_excerpt(payload_excerpt),
    )
    session.add(entry)
    session.flush()
    return entry


def last_run_at(session: Session, run_type: str) -> datetime | None:
    """Start time of the most recent log entry of ``run_type``."""
    started = session.execute(
        select(RunLogModel.started_at)
        .where(RunLogModel.run_type == str(run_type))
        .order_by(desc(RunLogModel.started_at))
        .limit(1)
    ).scalar_one_or_none()
    return ensure_utc(started)


def recent_logs(session: Session, limit: int = 50, run_type: str | None = None) -> list[RunLogModel]:
    query = select(RunLogModel).order_by(desc(RunLogModel.started_at)).limit(limit)
    if run_type:
        query = query.where(RunLogModel.run_type == run_type)
    return list(session.execute(query).scalars().all())
