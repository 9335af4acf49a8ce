"""System endpoints: manual cycles, run logs, metrics and guardrails."""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field

from content_autopilot.api.deps import CycleRunnerDep
from content_autopilot.db.session import get_session_context
from content_autopilot.logging import get_logger
from content_autopilot.services import guardrails
from content_autopilot.services.recovery import get_recovery_status
from content_autopilot.services.rules import get_rules
from content_autopilot.services.run_log import recent_logs

router = APIRouter(tags=["System"])
logger = get_logger(__name__)


# =============================================================================
# Response Models
# =============================================================================


class RunLogResponse(BaseModel):
    """A run log entry."""

    id: str
    run_type: str
    status: str
    started_at: datetime
    finished_at: datetime | None
    error: str | None
    payload_excerpt: str | None


class GuardrailsResponse(BaseModel):
    """Current guardrail counters and gate decision."""

    pending_count: int
    draft_count: int
    daily_uploads: int
    cooldown_active: bool
    cooldown_until: datetime | None
    recovery_active: bool
    gate_open: bool
    blocked_reason: str | None = None


class CooldownRequest(BaseModel):
    hours: float = Field(gt=0, le=24 * 14, description="Cooldown length in hours")


class CooldownResponse(BaseModel):
    cooldown_until: datetime | None


# =============================================================================
# Endpoints
# =============================================================================


@router.post(
    "/system/run-now",
    summary="Run a cycle now",
    description="Run one cycle in the API process and return its report.",
)
async def run_now(
    runner: CycleRunnerDep,
    autopilot: bool = Query(False, description="Run a full autopilot cycle"),
) -> dict[str, Any]:
    """Run one cycle immediately."""
    try:
        report = await runner.run_cycle(autopilot=autopilot)
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Cycle failed: {e}",
        )

    if report.skipped:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Another cycle is already running",
        )
    return report.to_dict()


@router.get(
    "/logs",
    response_model=list[RunLogResponse],
    summary="Recent run logs",
)
async def list_logs(
    limit: int = Query(50, ge=1, le=500, description="Number of entries"),
    run_type: str | None = Query(None, description="Filter by run type"),
) -> list[RunLogResponse]:
    with get_session_context() as session:
        return [
            RunLogResponse(
                id=str(entry.id),
                run_type=entry.run_type,
                status=entry.status,
                started_at=entry.started_at,
                finished_at=entry.finished_at,
                error=entry.error,
                payload_excerpt=entry.payload_excerpt,
            )
            for entry in recent_logs(session, limit=limit, run_type=run_type)
        ]


@router.post(
    "/metrics/refresh",
    summary="Refresh platform metrics",
    description="Match recent platform videos to plans, score them and credit the bandit arms.",
)
async def refresh_metrics(runner: CycleRunnerDep) -> dict[str, Any]:
    result = await runner.metrics.refresh()
    return result.to_dict()


@router.get(
    "/guardrails",
    response_model=GuardrailsResponse,
    summary="Guardrail status",
)
async def guardrail_status() -> GuardrailsResponse:
    with get_session_context() as session:
        rules = get_rules(session)
        snap = guardrails.snapshot(session)
        recovery = get_recovery_status(session, rules)

    decision = guardrails.check(snap, rules)
    return GuardrailsResponse(
        pending_count=snap.pending_count,
        draft_count=snap.draft_count,
        daily_uploads=snap.daily_uploads,
        cooldown_active=snap.cooldown_active,
        cooldown_until=snap.cooldown_until if snap.cooldown_active else None,
        recovery_active=recovery.active,
        gate_open=decision.allowed,
        blocked_reason=decision.reason,
    )


@router.post(
    "/guardrails/cooldown",
    response_model=CooldownResponse,
    summary="Set an upload cooldown",
)
async def set_cooldown(request: CooldownRequest) -> CooldownResponse:
    with get_session_context() as session:
        until = guardrails.set_cooldown(session, request.hours)
    logger.info("cooldown_set_manually", hours=request.hours, cooldown_until=until.isoformat())
    return CooldownResponse(cooldown_until=until)


@router.delete(
    "/guardrails/cooldown",
    response_model=CooldownResponse,
    summary="Clear the upload cooldown",
)
async def clear_cooldown() -> CooldownResponse:
    with get_session_context() as session:
        guardrails.clear_cooldown(session)
    logger.info("cooldown_cleared_manually")
    return CooldownResponse(cooldown_until=None)
