"""FastAPI dependencies."""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from content_autopilot.db.session import get_session
from content_autopilot.scheduler import Scheduler
from content_autopilot.services.cycle import CycleRunner

# Database session dependency
SessionDep = Annotated[Session, Depends(get_session)]


def get_cycle_runner(request: Request) -> CycleRunner:
    """The runner created in the application lifespan."""
    return request.app.state.runner


def get_scheduler(request: Request) -> Scheduler:
    """The scheduler created in the application lifespan."""
    return request.app.state.scheduler


CycleRunnerDep = Annotated[CycleRunner, Depends(get_cycle_runner)]
SchedulerDep = Annotated[Scheduler, Depends(get_scheduler)]
