"""Cycle runner: one pass of the autopilot control loop.

Scheduled cycle:
    gate -> next post window -> queue top-up -> render -> upload

Autopilot cycle:
    gate -> metrics refresh -> promote/retire -> mutation trigger
         -> inspiration re-seed -> queue top-up -> render -> upload

The guardrail snapshot is taken once at the start of the cycle and every gate
in the cycle uses it. Cycles are serialised by a lock owned by the runner; a
cycle requested while another is running is skipped and logged as
``cycle_overlap``.

Failure containment:
- A render or upload failure marks only that plan FAILED.
- A spam-risk upload error sets a 24h cooldown and ends the upload batch.
- Anything else escaping the cycle is logged as a FAILED run and re-raised
  for the caller (scheduler tick, Celery task, CLI) to record.
"""

import asyncio
import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any
from uuid import UUID, uuid4
from zoneinfo import ZoneInfo

from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session

from content_autopilot.adapters.inspiration.base import InspirationSeeder
from content_autopilot.adapters.inspiration.stub import StubInspirationSeeder
from content_autopilot.adapters.mutator.base import MutatorAdapter
from content_autopilot.adapters.mutator.stub import StubMutator
from content_autopilot.adapters.planner.base import PlannerAdapter
from content_autopilot.adapters.planner.stub import StubPlanner
from content_autopilot.adapters.publisher.base import PublisherAdapter
from content_autopilot.adapters.publisher.errors import PublisherAuthError, SpamRiskError
from content_autopilot.adapters.publisher.stub import StubPublisher
from content_autopilot.adapters.publisher.tiktok import TikTokPublisher
from content_autopilot.adapters.renderer.base import RendererAdapter
from content_autopilot.adapters.renderer.stub import StubRenderer
from content_autopilot.config import settings
from content_autopilot.db.models import PostPlanModel
from content_autopilot.db.session import SessionFactory, get_session_context
from content_autopilot.domain.enums import PlanStatus, RunStatus, RunType
from content_autopilot.logging import bound_context, get_logger
from content_autopilot.services import guardrails
from content_autopilot.services.alerting import alert_cycle_failure, alert_spam_risk
from content_autopilot.services.learning.mutation import MutationEngine, MutationOutcome, MutationStep
from content_autopilot.services.learning.optimizer import PromotionResult, promote_retire_arms
from content_autopilot.services.metrics import MetricsRefresher, RefreshResult
from content_autopilot.services.publish_status import PublishStatusChecker
from content_autopilot.services.recovery import get_recovery_status
from content_autopilot.services.rules import RulesSettings, get_rules
from content_autopilot.services.run_log import last_run_at, log_run_error, log_run_event
from content_autopilot.utils.timeutils import Clock, ensure_utc, utcnow

logger = get_logger(__name__)

SPAM_RISK_COOLDOWN_HOURS = 24
# Accounts below this many posted videos run at the ramp cadence
RAMP_POSTED_THRESHOLD = 6
RAMP_CADENCE = 2
MAX_CAPTION_LENGTH = 2200


class PlanDataError(Exception):
    """A plan is missing data required for the next step (render path, file)."""


@dataclass
class CycleReport:
    """Summary of one cycle."""

    cycle_type: RunType
    started_at: datetime
    finished_at: datetime | None = None
    skipped: bool = False
    blocked: bool = False
    blocked_reason: str | None = None
    snapshot: guardrails.GuardrailSnapshot | None = None
    effective_cadence: int = 0
    recovery_active: bool = False
    scheduled_for: datetime | None = None
    metrics: RefreshResult | None = None
    promotion: PromotionResult | None = None
    mutation: MutationOutcome | None = None
    inspiration_seeded: int | None = None
    created_plan_ids: list[str] = field(default_factory=list)
    rendered: list[str] = field(default_factory=list)
    render_failed: list[str] = field(default_factory=list)
    uploaded: list[str] = field(default_factory=list)
    upload_failed: list[str] = field(default_factory=list)
    spam_risk: bool = False

    def summary(self) -> str:
        return (
            f"planned={len(self.created_plan_ids)},rendered={len(self.rendered)},"
            f"render_failed={len(self.render_failed)},uploaded={len(self.uploaded)},"
            f"upload_failed={len(self.upload_failed)},spam_risk={self.spam_risk}"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "cycle_type": str(self.cycle_type),
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "skipped": self.skipped,
            "blocked": self.blocked,
            "blocked_reason": self.blocked_reason,
            "snapshot": self.snapshot.to_dict() if self.snapshot else None,
            "effective_cadence": self.effective_cadence,
            "recovery_active": self.recovery_active,
            "scheduled_for": self.scheduled_for.isoformat() if self.scheduled_for else None,
            "metrics": self.metrics.to_dict() if self.metrics else None,
            "promotion": self.promotion.to_dict() if self.promotion else None,
            "mutation": self.mutation.to_dict() if self.mutation else None,
            "inspiration_seeded": self.inspiration_seeded,
            "created_plan_ids": self.created_plan_ids,
            "rendered": self.rendered,
            "render_failed": self.render_failed,
            "uploaded": self.uploaded,
            "upload_failed": self.upload_failed,
            "spam_risk": self.spam_risk,
        }


# =============================================================================
# Post windows
# =============================================================================


def parse_window(day: datetime, value: str, jitter_minutes: int) -> tuple[datetime, datetime]:
    """Resolve ``HH:MM`` or ``HH:MM-HH:MM`` on the given day.

    A single time becomes a window as wide as the jitter (at least one minute).
    """

    def at(time_str: str) -> datetime:
        hour, minute = (int(part) for part in time_str.strip().split(":"))
        return day.replace(hour=hour, minute=minute, second=0, microsecond=0)

    start_str, _, end_str = value.partition("-")
    start = at(start_str)
    end = at(end_str) if end_str else start + timedelta(minutes=max(1, jitter_minutes))
    return start, end


def pick_time_in_window(
    start: datetime, end: datetime, jitter_minutes: int, rng: random.Random
) -> datetime:
    range_minutes = max(0.0, (end - start).total_seconds() / 60)
    jitter = min(max(0, jitter_minutes), int(range_minutes))
    offset = rng.randint(0, jitter) if jitter > 0 else 0
    return start + timedelta(minutes=offset)


def compute_next_window(
    now: datetime,
    windows: list[str],
    jitter_minutes: int,
    min_gap_hours: float,
    last_scheduled: datetime | None,
    rng: random.Random,
    tz: ZoneInfo | None = None,
) -> datetime:
    """Next jittered post time from today's or tomorrow's windows.

    Windows already past and times closer than ``min_gap_hours`` to the last
    scheduled plan are skipped. Falls back to ``now + min_gap_hours``.
    """
    local_now = now.astimezone(tz or ZoneInfo("UTC"))
    last = ensure_utc(last_scheduled)

    for day_offset in (0, 1):
        day = local_now + timedelta(days=day_offset)
        ranges = sorted(
            (parse_window(day, window, jitter_minutes) for window in windows),
            key=lambda r: r[0],
        )
        for start, end in ranges:
            if day_offset == 0 and end <= local_now:
                continue
            scheduled = pick_time_in_window(start, end, jitter_minutes, rng)
            if day_offset == 0 and scheduled <= local_now:
                continue
            if last is not None and (scheduled - last).total_seconds() / 3600 < min_gap_hours:
                continue
            return scheduled.astimezone(now.tzinfo)

    return now + timedelta(hours=min_gap_hours)


def next_window_time(
    session: Session, rules: RulesSettings, now: datetime, rng: random.Random
) -> datetime:
    last_scheduled = session.execute(
        select(PostPlanModel.scheduled_for)
        .where(PostPlanModel.status != str(PlanStatus.FAILED))
        .order_by(desc(PostPlanModel.scheduled_for))
        .limit(1)
    ).scalar_one_or_none()
    return compute_next_window(
        now,
        rules.post_time_windows,
        rules.spam_guardrails.window_jitter_minutes,
        rules.spam_guardrails.min_gap_hours,
        last_scheduled,
        rng,
        tz=ZoneInfo(settings.scheduler_timezone),
    )


def upload_cap(requested: int, pending_count: int, remaining_daily: int) -> int:
    """Uploads allowed this cycle."""
    return max(
        0,
        min(
            requested,
            guardrails.PENDING_SHARE_LIMIT - pending_count,
            guardrails.max_uploads(pending_count),
            remaining_daily,
        ),
    )


# =============================================================================
# Runner
# =============================================================================


class CycleRunner:
    """Runs scheduled and autopilot cycles against the configured adapters."""

    def __init__(
        self,
        planner: PlannerAdapter,
        renderer: RendererAdapter,
        publisher: PublisherAdapter,
        mutator: MutatorAdapter,
        seeder: InspirationSeeder | None = None,
        session_factory: SessionFactory = get_session_context,
        clock: Clock = utcnow,
        rng: random.Random | None = None,
    ) -> None:
        self.planner = planner
        self.renderer = renderer
        self.publisher = publisher
        self.seeder = seeder
        self.session_factory = session_factory
        self.clock = clock
        self.rng = rng or random.Random()
        self.metrics = MetricsRefresher(
            publisher, session_factory, max_count=settings.tiktok_video_list_max_count
        )
        self.mutation = MutationEngine(mutator, session_factory, clock=clock, rng=self.rng)
        self.publish_status = PublishStatusChecker(publisher, session_factory)
        self._lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def run_scheduled_cycle(self) -> CycleReport:
        return await self._run(RunType.SCHEDULED_CYCLE)

    async def run_autopilot_cycle(self) -> CycleReport:
        return await self._run(RunType.AUTOPILOT_CYCLE)

    async def run_cycle(self, autopilot: bool) -> CycleReport:
        return await (self.run_autopilot_cycle() if autopilot else self.run_scheduled_cycle())

    async def _run(self, cycle_type: RunType) -> CycleReport:
        report = CycleReport(cycle_type=cycle_type, started_at=self.clock())

        if self._lock.locked():
            report.skipped = True
            logger.warning("cycle_overlap", cycle_type=str(cycle_type))
            with self.session_factory() as session:
                log_run_event(
                    session,
                    RunType.CYCLE_OVERLAP,
                    status=RunStatus.WARN,
                    payload_excerpt=f"requested={cycle_type}",
                )
            return report

        async with self._lock:
            with bound_context(cycle_id=uuid4().hex[:8], cycle_type=str(cycle_type)):
                logger.info("cycle_started")
                try:
                    await self._cycle(report)
                except Exception as e:
                    logger.exception("cycle_failed", error=str(e))
                    with self.session_factory() as session:
                        log_run_error(
                            session,
                            cycle_type,
                            str(e),
                            payload_excerpt=report.summary(),
                            started_at=report.started_at,
                        )
                    await alert_cycle_failure(str(cycle_type), str(e))
                    raise
                finally:
                    report.finished_at = self.clock()

                logger.info(
                    "cycle_completed",
                    blocked=report.blocked,
                    uploaded=len(report.uploaded),
                    rendered=len(report.rendered),
                )
        return report

    async def _cycle(self, report: CycleReport) -> None:
        now = report.started_at
        autopilot = report.cycle_type == RunType.AUTOPILOT_CYCLE

        with self.session_factory() as session:
            rules = get_rules(session)
            recovery = get_recovery_status(session, rules, now=now)
            posted = session.execute(
                select(func.count())
                .select_from(PostPlanModel)
                .where(PostPlanModel.status == str(PlanStatus.POSTED))
            ).scalar_one()
            snap = guardrails.snapshot(session, now=now)
            decision = guardrails.enforce(session, snap, rules)

        report.snapshot = snap
        report.recovery_active = recovery.active
        ramp_cadence = RAMP_CADENCE if posted < RAMP_POSTED_THRESHOLD else rules.cadence_per_day
        report.effective_cadence = (
            rules.recovery_mode.cadence_per_day if recovery.active else ramp_cadence
        )

        if not decision.allowed:
            report.blocked = True
            report.blocked_reason = decision.reason
            return

        if autopilot:
            await self._learn(report, rules, now)
            scheduled_for = now
        else:
            with self.session_factory() as session:
                scheduled_for = next_window_time(session, rules, now, self.rng)
        report.scheduled_for = scheduled_for

        needed = max(0, rules.target_queue_size - snap.draft_count)
        if needed > 0:
            top_up = await self.planner.top_up(needed, scheduled_for=scheduled_for)
            report.created_plan_ids = [str(plan_id) for plan_id in top_up.created_ids]
            for warning in top_up.warnings:
                logger.warning("planner_warning", warning=warning)

        await self._render_pending(needed or report.effective_cadence, report)
        await self._upload_rendered(report.effective_cadence, snap, rules, report)

        with self.session_factory() as session:
            log_run_event(
                session,
                report.cycle_type,
                status=RunStatus.WARN if report.spam_risk else RunStatus.OK,
                payload_excerpt=report.summary(),
                started_at=report.started_at,
            )

    async def _learn(self, report: CycleReport, rules: RulesSettings, now: datetime) -> None:
        """Autopilot-only steps: metrics, promotion, mutation, inspiration."""
        report.metrics = await self.metrics.refresh()

        with self.session_factory() as session:
            report.promotion = promote_retire_arms(session, rules.optimiser_policy)
            if report.promotion.promoted or report.promotion.retired:
                log_run_event(
                    session,
                    RunType.OPTIMIZER_PROMOTION,
                    payload_excerpt=(
                        f"promoted={len(report.promotion.promoted)},"
                        f"retired={len(report.promotion.retired)}"
                    ),
                )

        report.mutation = await self.mutation.evaluate(rules)
        if report.mutation.step != MutationStep.NONE or report.mutation.escalated:
            with self.session_factory() as session:
                log_run_event(
                    session,
                    RunType.MUTATION_TRIGGER,
                    payload_excerpt=(
                        f"step={report.mutation.step},escalated={report.mutation.escalated},"
                        f"streak={report.mutation.underperform_streak}"
                    ),
                )

        report.inspiration_seeded = await self._maybe_reseed(rules, now)

    async def _maybe_reseed(self, rules: RulesSettings, now: datetime) -> int | None:
        policy = rules.optimiser_policy
        if not policy.autopilot_inspo_enabled or self.seeder is None:
            return None

        with self.session_factory() as session:
            last = last_run_at(session, RunType.AUTOPILOT_INSPO)
        if last is not None and now - last < timedelta(days=policy.autopilot_inspo_days):
            return None

        try:
            seeded = await self.seeder.reseed()
        except Exception as e:
            logger.warning("inspiration_reseed_failed", error=str(e))
            with self.session_factory() as session:
                log_run_error(session, RunType.AUTOPILOT_INSPO, str(e), started_at=now)
            return None

        with self.session_factory() as session:
            log_run_event(
                session,
                RunType.AUTOPILOT_INSPO,
                payload_excerpt=f"seeded={seeded}",
                started_at=now,
            )
        return seeded

    def _mark_plan(self, plan_id: UUID, status: PlanStatus, **values: Any) -> None:
        with self.session_factory() as session:
            plan = session.get(PostPlanModel, plan_id)
            if plan is None:
                return
            plan.status = str(status)
            for key, value in values.items():
                setattr(plan, key, value)

    async def _render_pending(self, limit: int, report: CycleReport) -> None:
        with self.session_factory() as session:
            plan_ids = list(
                session.execute(
                    select(PostPlanModel.id)
                    .where(PostPlanModel.status == str(PlanStatus.PLANNED))
                    .order_by(PostPlanModel.created_at)
                    .limit(limit)
                ).scalars()
            )

        for plan_id in plan_ids:
            try:
                await self.renderer.render(plan_id)
            except Exception as e:
                logger.warning("render_failed", plan_id=str(plan_id), error=str(e))
                self._mark_plan(plan_id, PlanStatus.FAILED, error_message=str(e))
                with self.session_factory() as session:
                    log_run_error(
                        session, RunType.RENDER_FAILED, str(e), payload_excerpt=f"plan={plan_id}"
                    )
                report.render_failed.append(str(plan_id))
            else:
                report.rendered.append(str(plan_id))

    async def _upload_rendered(
        self,
        requested: int,
        snap: guardrails.GuardrailSnapshot,
        rules: RulesSettings,
        report: CycleReport,
    ) -> None:
        daily_cap = rules.spam_guardrails.daily_draft_upload_cap
        if snap.daily_uploads >= daily_cap:
            logger.warning("daily_upload_cap", daily_uploads=snap.daily_uploads, cap=daily_cap)
            with self.session_factory() as session:
                log_run_event(
                    session,
                    RunType.DAILY_UPLOAD_CAP,
                    status=RunStatus.WARN,
                    payload_excerpt=f"dailyUploads={snap.daily_uploads}",
                )
            return

        limit = upload_cap(requested, snap.pending_count, daily_cap - snap.daily_uploads)
        if limit <= 0:
            return

        with self.session_factory() as session:
            plans = [
                (plan.id, plan.render_path, plan.caption)
                for plan in session.execute(
                    select(PostPlanModel)
                    .where(PostPlanModel.status == str(PlanStatus.RENDERED))
                    .order_by(PostPlanModel.created_at)
                    .limit(limit)
                ).scalars()
            ]
        if not plans:
            return

        try:
            await self.publisher.get_creator_info()
        except PublisherAuthError as e:
            logger.warning("upload_skipped", reason=str(e))
            return
        except SpamRiskError as e:
            await self._on_spam_risk(e, report)
            return

        for plan_id, render_path, caption in plans:
            try:
                if not render_path:
                    raise PlanDataError("Plan has no render path")
                path = Path(render_path)
                if not path.is_file():
                    raise PlanDataError(f"Render file not found: {render_path}")
                data = path.read_bytes()

                self._mark_plan(plan_id, PlanStatus.UPLOADING)
                init = await self.publisher.initialize_upload(
                    post_info={
                        "title": (caption or "")[:MAX_CAPTION_LENGTH],
                        "privacy_level": "SELF_ONLY",
                        "disable_comment": False,
                        "disable_duet": False,
                        "disable_stitch": False,
                    },
                    source_info={
                        "source": "FILE_UPLOAD",
                        "video_size": len(data),
                        "chunk_size": len(data),
                        "total_chunk_count": 1,
                    },
                )
                await self.publisher.upload_video(init.upload_url, data)
            except SpamRiskError as e:
                # Plan goes back to the queue for after the cooldown
                self._mark_plan(plan_id, PlanStatus.RENDERED, error_message=str(e))
                await self._on_spam_risk(e, report)
                break
            except Exception as e:
                logger.warning("upload_failed", plan_id=str(plan_id), error=str(e))
                self._mark_plan(plan_id, PlanStatus.FAILED, error_message=str(e))
                with self.session_factory() as session:
                    log_run_error(
                        session, RunType.UPLOAD_FAILED, str(e), payload_excerpt=f"plan={plan_id}"
                    )
                report.upload_failed.append(str(plan_id))
            else:
                self._mark_plan(
                    plan_id,
                    PlanStatus.UPLOADED_DRAFT,
                    publish_id=init.publish_id,
                    uploaded_at=self.clock(),
                    error_message=None,
                )
                report.uploaded.append(str(plan_id))
                logger.info("plan_uploaded", plan_id=str(plan_id), publish_id=init.publish_id)

    async def _on_spam_risk(self, error: SpamRiskError, report: CycleReport) -> None:
        report.spam_risk = True
        with self.session_factory() as session:
            until = guardrails.set_cooldown(session, SPAM_RISK_COOLDOWN_HOURS, now=self.clock())
            log_run_event(
                session,
                RunType.UPLOAD_SPAM_RISK,
                status=RunStatus.WARN,
                payload_excerpt=str(error),
            )
        logger.warning("upload_spam_risk", code=error.code, cooldown_until=until.isoformat())
        await alert_spam_risk(str(error), until)


# =============================================================================
# Provider wiring
# =============================================================================


def get_publisher() -> PublisherAdapter:
    """Get the configured publisher."""
    provider = settings.publisher_provider.lower()
    if provider == "tiktok":
        return TikTokPublisher(settings.tiktok_access_token, sandbox=settings.tiktok_sandbox)
    elif provider == "stub":
        return StubPublisher()
    raise ValueError(f"Unknown publisher provider: {settings.publisher_provider}")


def build_cycle_runner(session_factory: SessionFactory = get_session_context) -> CycleRunner:
    """Wire a runner from settings.

    Planner, renderer and mutator implementations live outside this package;
    only the stub providers ship here.
    """
    for name in ("planner_provider", "renderer_provider", "mutator_provider"):
        if getattr(settings, name).lower() != "stub":
            raise ValueError(f"Unknown {name.replace('_', ' ')}: {getattr(settings, name)}")

    return CycleRunner(
        planner=StubPlanner(session_factory),
        renderer=StubRenderer(session_factory=session_factory),
        publisher=get_publisher(),
        mutator=StubMutator(session_factory),
        seeder=StubInspirationSeeder(),
        session_factory=session_factory,
    )
