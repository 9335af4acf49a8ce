"""Post plan endpoints: publish status and manual posting."""

from typing import Any
from uuid import UUID

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel

from content_autopilot.adapters.publisher.errors import PublisherAuthError, UploadError
from content_autopilot.api.deps import CycleRunnerDep
from content_autopilot.db.session import get_session_context
from content_autopilot.services.publish_status import (
    PlanNotFoundError,
    PlanStateError,
    mark_posted,
)

router = APIRouter(prefix="/plans", tags=["Plans"])


class PlanStatusResponse(BaseModel):
    id: str
    status: str


@router.post(
    "/{plan_id}/posted",
    response_model=PlanStatusResponse,
    summary="Mark a plan as posted",
    description="Record that a draft was published from the platform app.",
)
async def mark_plan_posted(plan_id: UUID) -> PlanStatusResponse:
    try:
        with get_session_context() as session:
            plan = mark_posted(session, plan_id)
            return PlanStatusResponse(id=str(plan.id), status=plan.status)
    except PlanNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PlanStateError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@router.get(
    "/{plan_id}/publish-status",
    summary="Check a plan's publish status",
    description="Ask the platform for the publish status and apply POSTED or FAILED to the plan.",
)
async def check_publish_status(plan_id: UUID, runner: CycleRunnerDep) -> dict[str, Any]:
    try:
        check = await runner.publish_status.check(plan_id)
    except PlanNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PlanStateError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except PublisherAuthError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))
    except UploadError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    return check.to_dict()


@router.post(
    "/publish-status/sync",
    summary="Check every uploaded draft",
)
async def sync_publish_status(runner: CycleRunnerDep) -> list[dict[str, Any]]:
    checks = await runner.publish_status.sync_drafts()
    return [check.to_dict() for check in checks]
