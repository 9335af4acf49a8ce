"""Bandit optimizer endpoints."""

from datetime import datetime

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel

from content_autopilot.api.deps import SessionDep
from content_autopilot.domain.enums import ArmType
from content_autopilot.services.learning.optimizer import list_arms
from content_autopilot.services.rules import get_rules

router = APIRouter(prefix="/optimizer", tags=["Optimizer"])


class ArmResponse(BaseModel):
    """Arm statistics with derived estimates."""

    arm_type: str
    arm_id: str
    name: str | None
    status: str | None
    pulls: int
    impressions: int
    conversions: int
    reward_sum: float
    mean_reward: float
    confidence: float
    last_used_at: datetime | None


@router.get(
    "/arms",
    response_model=list[ArmResponse],
    summary="List bandit arms",
    description="Arms with posterior mean reward and a display confidence, best first.",
)
async def get_arms(
    session: SessionDep,
    arm_type: str | None = Query(None, description="RECIPE, VARIANT, CTA, CLIP or SNIPPET"),
    limit: int = Query(100, ge=1, le=500),
) -> list[ArmResponse]:
    if arm_type is not None:
        try:
            arm_type = str(ArmType(arm_type.upper()))
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Unknown arm type: {arm_type}",
            )

    policy = get_rules(session).optimiser_policy
    summaries = list_arms(session, policy, arm_type)

    return [ArmResponse(**summary.to_dict()) for summary in summaries[:limit]]
