"""Health check endpoints."""

from fastapi import APIRouter, status
from pydantic import BaseModel

from content_autopilot.api.deps import SchedulerDep
from content_autopilot.config import settings
from content_autopilot.logging import get_logger

router = APIRouter(tags=["Health"])
logger = get_logger(__name__)


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    providers: dict[str, str]
    scheduler_running: bool = False
    scheduler_mode: str | None = None


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    ready: bool
    database: bool
    redis: bool
    publisher: bool


def _publisher_configured() -> bool:
    """The TikTok publisher needs a token; the stub needs nothing."""
    if settings.publisher_provider.lower() == "tiktok":
        return bool(settings.tiktok_access_token)
    return True


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Health check",
    description="Configured providers and whether the scheduler is driving cycles.",
)
async def health_check(scheduler: SchedulerDep) -> HealthResponse:
    from content_autopilot import __version__

    state = scheduler.status()
    return HealthResponse(
        status="healthy",
        version=__version__,
        providers={
            "publisher": settings.publisher_provider,
            "planner": settings.planner_provider,
            "renderer": settings.renderer_provider,
            "mutator": settings.mutator_provider,
        },
        scheduler_running=state["running"],
        scheduler_mode=state["mode"],
    )


@router.get(
    "/health/ready",
    response_model=ReadinessResponse,
    summary="Readiness check",
    description="Database, Redis and publisher credentials.",
)
async def readiness_check() -> ReadinessResponse:
    database_ok = False
    try:
        from content_autopilot.db.session import init_db

        init_db()
        database_ok = True
    except Exception as e:
        logger.error("database_health_check_failed", error=str(e))

    redis_ok = False
    try:
        import redis

        redis.from_url(settings.redis_url, socket_connect_timeout=2).ping()
        redis_ok = True
    except Exception as e:
        logger.error("redis_health_check_failed", error=str(e))

    publisher_ok = _publisher_configured()
    if not publisher_ok:
        logger.warning("publisher_not_configured", provider=settings.publisher_provider)

    return ReadinessResponse(
        ready=database_ok and redis_ok and publisher_ok,
        database=database_ok,
        redis=redis_ok,
        publisher=publisher_ok,
    )


@router.get(
    "/health/live",
    status_code=status.HTTP_200_OK,
    summary="Liveness probe",
)
async def liveness_check() -> dict[str, str]:
    return {"status": "alive"}
