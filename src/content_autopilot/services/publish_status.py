"""Publish status: move uploaded drafts to POSTED or FAILED.

Uploads land as drafts (UPLOADED_DRAFT). A plan becomes POSTED either when the
platform reports ``PUBLISH_COMPLETE`` for its publish id or when an operator
marks it posted by hand; a platform ``FAILED`` status fails the plan with the
reported reason. Processing states leave the plan untouched.
"""

from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from content_autopilot.adapters.publisher.base import PublisherAdapter
from content_autopilot.adapters.publisher.errors import PublisherAuthError, UploadError
from content_autopilot.db.models import PostPlanModel
from content_autopilot.db.session import SessionFactory, get_session_context
from content_autopilot.domain.enums import PlanStatus, PublishStatus, RunStatus, RunType
from content_autopilot.logging import get_logger
from content_autopilot.services.run_log import log_run_event

logger = get_logger(__name__)

# Plans that can still be marked posted by hand
MARKABLE_STATUSES = (PlanStatus.RENDERED, PlanStatus.UPLOADING, PlanStatus.UPLOADED_DRAFT)


class PlanNotFoundError(LookupError):
    """No plan with the given id."""


class PlanStateError(ValueError):
    """The plan is not in a state that allows the transition."""


@dataclass
class PublishCheck:
    """Outcome of one publish status check."""

    plan_id: str
    publish_id: str | None
    publish_status: str | None
    plan_status: str
    fail_reason: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "plan_id": self.plan_id,
            "publish_id": self.publish_id,
            "publish_status": self.publish_status,
            "plan_status": self.plan_status,
            "fail_reason": self.fail_reason,
            "error": self.error,
        }


def _get_plan(session: Session, plan_id: UUID) -> PostPlanModel:
    plan = session.get(PostPlanModel, plan_id)
    if plan is None:
        raise PlanNotFoundError(f"Post plan not found: {plan_id}")
    return plan


def mark_posted(session: Session, plan_id: UUID) -> PostPlanModel:
    """Mark a plan as posted after it was published outside the loop.

    Raises:
        PlanNotFoundError: Unknown plan id
        PlanStateError: The plan already left the publishing pipeline
    """
    plan = _get_plan(session, plan_id)
    if plan.status == PlanStatus.POSTED:
        return plan
    if plan.status not in MARKABLE_STATUSES:
        raise PlanStateError(f"Cannot mark a {plan.status} plan as posted")

    plan.status = str(PlanStatus.POSTED)
    log_run_event(session, RunType.MARK_POSTED, payload_excerpt=f"plan={plan_id}")
    logger.info("plan_marked_posted", plan_id=str(plan_id))
    return plan


class PublishStatusChecker:
    """Polls the platform for the publish status of uploaded drafts."""

    def __init__(
        self,
        publisher: PublisherAdapter,
        session_factory: SessionFactory = get_session_context,
    ) -> None:
        self.publisher = publisher
        self.session_factory = session_factory

    async def check(self, plan_id: UUID) -> PublishCheck:
        """Check one plan and apply the reported status.

        Raises:
            PlanNotFoundError: Unknown plan id
            PlanStateError: The plan has no publish id yet
            PublisherAuthError: The publisher has no valid token
            UploadError: The status request failed
        """
        with self.session_factory() as session:
            plan = _get_plan(session, plan_id)
            publish_id = plan.publish_id
            plan_status = plan.status
        if not publish_id:
            raise PlanStateError(f"Plan {plan_id} has no publish id")

        result = await self.publisher.get_publish_status(publish_id)
        check = PublishCheck(
            plan_id=str(plan_id),
            publish_id=publish_id,
            publish_status=str(result.status) if result.status else None,
            plan_status=plan_status,
            fail_reason=result.fail_reason,
        )
        if plan_status != PlanStatus.UPLOADED_DRAFT:
            return check

        if result.status == PublishStatus.PUBLISH_COMPLETE:
            check.plan_status = str(PlanStatus.POSTED)
        elif result.status == PublishStatus.FAILED:
            check.plan_status = str(PlanStatus.FAILED)
        else:
            return check

        with self.session_factory() as session:
            plan = _get_plan(session, plan_id)
            plan.status = check.plan_status
            if check.plan_status == PlanStatus.FAILED:
                plan.error_message = result.fail_reason or "Publish failed"
            log_run_event(
                session,
                RunType.PUBLISH_STATUS,
                status=RunStatus.WARN if check.plan_status == PlanStatus.FAILED else RunStatus.OK,
                payload_excerpt=f"plan={plan_id},publish_status={check.publish_status}",
            )
        logger.info(
            "publish_status_applied",
            plan_id=str(plan_id),
            publish_status=check.publish_status,
            plan_status=check.plan_status,
        )
        return check

    async def sync_drafts(self) -> list[PublishCheck]:
        """Check every uploaded draft; a failing request only affects its own plan."""
        with self.session_factory() as session:
            plan_ids = list(
                session.execute(
                    select(PostPlanModel.id)
                    .where(
                        PostPlanModel.status == str(PlanStatus.UPLOADED_DRAFT),
                        PostPlanModel.publish_id.is_not(None),
                    )
                    .order_by(PostPlanModel.uploaded_at)
                ).scalars()
            )

        checks = []
        for plan_id in plan_ids:
            try:
                checks.append(await self.check(plan_id))
            except PublisherAuthError as e:
                logger.warning("publish_status_skipped", reason=str(e))
                break
            except UploadError as e:
                logger.warning("publish_status_failed", plan_id=str(plan_id), error=str(e))
                checks.append(
                    PublishCheck(
                        plan_id=str(plan_id),
                        publish_id=None,
                        publish_status=None,
                        plan_status=str(PlanStatus.UPLOADED_DRAFT),
                        error=str(e),
                    )
                )
        return checks
