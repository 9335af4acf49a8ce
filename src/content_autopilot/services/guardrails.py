"""Backpressure and cooldown guardrails for publishing actions.

Every render, upload and queue top-up path goes through a ``GateDecision``
computed from a ``GuardrailSnapshot``. The snapshot is taken once at the start
of a cycle and reused for every gate in that cycle. A blocked gate is a normal
outcome: it is logged as a WARN run event and the caller returns early.
"""

from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from content_autopilot.db.models import PostPlanModel, SettingModel
from content_autopilot.domain.enums import PENDING_SHARE_STATUSES, PlanStatus, RunStatus, RunType
from content_autopilot.logging import get_logger
from content_autopilot.services.rules import RulesSettings
from content_autopilot.services.run_log import log_run_event
from content_autopilot.utils.timeutils import parse_timestamp, utcnow

logger = get_logger(__name__)

PUBLISHER_KEY = "publisher"
COOLDOWN_FIELD = "upload_cooldown_until"

# Hard ceiling on in-flight plans, independent of the rules document
PENDING_SHARE_LIMIT = 5
# Throttle kicks in one below the hard ceiling
PENDING_THROTTLE_AT = 4


def can_upload_more(pending_count: int) -> bool:
    return pending_count < PENDING_SHARE_LIMIT


def max_uploads(pending_count: int) -> int:
    """Per-cycle upload ramp: two when the pipeline is nearly empty, else one."""
    return 2 if pending_count <= 1 else 1


def pending_share_count(
    session: Session, window_hours: int = 24, now: datetime | None = None
) -> int:
    """Plans still in flight that were created within the trailing window."""
    since = (now or utcnow()) - timedelta(hours=window_hours)
    return session.execute(
        select(func.count())
        .select_from(PostPlanModel)
        .where(
            PostPlanModel.status.in_([str(s) for s in PENDING_SHARE_STATUSES]),
            PostPlanModel.created_at >= since,
        )
    ).scalar_one()


def draft_count(session: Session) -> int:
    return session.execute(
        select(func.count())
        .select_from(PostPlanModel)
        .where(PostPlanModel.status == str(PlanStatus.UPLOADED_DRAFT))
    ).scalar_one()


def daily_upload_count(session: Session, now: datetime | None = None) -> int:
    """Plans uploaded as drafts since midnight UTC."""
    now = now or utcnow()
    day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return session.execute(
        select(func.count())
        .select_from(PostPlanModel)
        .where(PostPlanModel.uploaded_at >= day_start)
    ).scalar_one()


# =============================================================================
# Cooldown
# =============================================================================


def _publisher_settings(session: Session) -> SettingModel | None:
    return session.get(SettingModel, PUBLISHER_KEY)


def get_cooldown(session: Session) -> datetime | None:
    """Persisted cooldown deadline, if any."""
    row = _publisher_settings(session)
    if not row or not row.value_json:
        return None
    return parse_timestamp(row.value_json.get(COOLDOWN_FIELD))


def set_cooldown(session: Session, hours: float, now: datetime | None = None) -> datetime:
    """Pause publishing for ``hours`` from now.

    Returns:
        The new cooldown deadline
    """
    until = (now or utcnow()) + timedelta(hours=hours)
    row = _publisher_settings(session)
    if row:
        # Reassign so the JSON column is flagged dirty
        row.value_json = {**(row.value_json or {}), COOLDOWN_FIELD: until.isoformat()}
    else:
        session.add(SettingModel(key=PUBLISHER_KEY, value_json={COOLDOWN_FIELD: until.isoformat()}))
    session.flush()
    logger.warning("cooldown_set", hours=hours, until=until.isoformat())
    return until


def clear_cooldown(session: Session) -> None:
    row = _publisher_settings(session)
    if not row or not row.value_json or COOLDOWN_FIELD not in row.value_json:
        return
    row.value_json = {k: v for k, v in row.value_json.items() if k != COOLDOWN_FIELD}
    session.flush()
    logger.info("cooldown_cleared")


def is_cooldown_active(session: Session, now: datetime | None = None) -> bool:
    until = get_cooldown(session)
    if until is None:
        return False
    return (now or utcnow()) < until


# =============================================================================
# Snapshot and gate
# =============================================================================


@dataclass(frozen=True)
class GuardrailSnapshot:
    """Guardrail counters captured once per cycle."""

    pending_count: int
    draft_count: int
    daily_uploads: int
    cooldown_active: bool
    cooldown_until: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["cooldown_until"] = self.cooldown_until.isoformat() if self.cooldown_until else None
        return data


@dataclass(frozen=True)
class GateDecision:
    """Outcome of a guardrail check."""

    allowed: bool
    run_type: RunType | None = None
    reason: str | None = None

    @classmethod
    def allow(cls) -> "GateDecision":
        return cls(allowed=True)


def snapshot(session: Session, now: datetime | None = None) -> GuardrailSnapshot:
    now = now or utcnow()
    until = get_cooldown(session)
    return GuardrailSnapshot(
        pending_count=pending_share_count(session, now=now),
        draft_count=draft_count(session),
        daily_uploads=daily_upload_count(session, now=now),
        cooldown_active=until is not None and now < until,
        cooldown_until=until,
    )


def check(snap: GuardrailSnapshot, rules: RulesSettings) -> GateDecision:
    """Decide whether a cycle may act, without side effects."""
    if (
        not can_upload_more(snap.pending_count)
        or snap.pending_count >= PENDING_THROTTLE_AT
        or snap.draft_count >= rules.spam_guardrails.pending_drafts_cap
    ):
        return GateDecision(
            allowed=False,
            run_type=RunType.PENDING_THROTTLE,
            reason=f"pendingCount={snap.pending_count},drafts={snap.draft_count}",
        )
    if snap.cooldown_active:
        until = snap.cooldown_until.isoformat() if snap.cooldown_until else "unknown"
        return GateDecision(
            allowed=False,
            run_type=RunType.COOLDOWN_ACTIVE,
            reason=f"cooldownUntil={until}",
        )
    return GateDecision.allow()


def enforce(session: Session, snap: GuardrailSnapshot, rules: RulesSettings) -> GateDecision:
    """Check the gate and record a WARN run event when it blocks."""
    decision = check(snap, rules)
    if not decision.allowed:
        logger.warning(
            str(decision.run_type),
            pending_count=snap.pending_count,
            draft_count=snap.draft_count,
            cooldown_active=snap.cooldown_active,
        )
        log_run_event(
            session,
            str(decision.run_type),
            status=RunStatus.WARN,
            payload_excerpt=decision.reason,
        )
    return decision
