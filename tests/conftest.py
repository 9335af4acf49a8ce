"""Pytest configuration and fixtures."""

import os
import tempfile
from collections.abc import Callable, Generator
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

import pytest
from fastapi.testclient import TestClient

# Set test environment before importing app modules
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REDIS_URL"] = "redis://localhost:6379/1"
os.environ["CELERY_BROKER_URL"] = "redis://localhost:6379/1"
os.environ["CELERY_RESULT_BACKEND"] = "redis://localhost:6379/1"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["PUBLISHER_PROVIDER"] = "stub"
os.environ["SCHEDULER_AUTOSTART"] = "false"
os.environ["RENDER_OUTPUT_DIR"] = tempfile.mkdtemp(prefix="autopilot-renders-")


class FixedClock:
    """Controllable clock for time-dependent services."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture(autouse=True)
def database() -> Generator[None, None, None]:
    """Fresh schema for every test on the shared in-memory engine."""
    from content_autopilot.db.models import Base
    from content_autopilot.db.session import engine

    Base.metadata.create_all(engine)
    yield
    Base.metadata.drop_all(engine)


@pytest.fixture
def session_factory() -> Callable[..., Any]:
    from content_autopilot.db.session import get_session_context

    return get_session_context


@pytest.fixture
def clock() -> FixedClock:
    from content_autopilot.utils.timeutils import utcnow

    return FixedClock(utcnow().replace(microsecond=0))


@pytest.fixture
def make_recipe(session_factory: Callable[..., Any]) -> Callable[..., UUID]:
    """Create a recipe and return its id."""
    from content_autopilot.db.models import RecipeModel

    def _make(name: str, enabled: bool = True, **kwargs: Any) -> UUID:
        kwargs.setdefault("beat1_templates", [f"{name} hook one", f"{name} hook two"])
        kwargs.setdefault("beat2_templates", [f"{name} payoff"])
        with session_factory() as session:
            recipe = RecipeModel(name=name, enabled=enabled, **kwargs)
            session.add(recipe)
            session.flush()
            return recipe.id

    return _make


@pytest.fixture
def make_plan(session_factory: Callable[..., Any]) -> Callable[..., UUID]:
    """Create a post plan and return its id."""
    from content_autopilot.db.models import PostPlanModel
    from content_autopilot.domain.enums import PlanStatus

    def _make(status: str = PlanStatus.PLANNED, **kwargs: Any) -> UUID:
        kwargs.setdefault("caption", "test caption")
        with session_factory() as session:
            plan = PostPlanModel(status=str(status), **kwargs)
            session.add(plan)
            session.flush()
            return plan.id

    return _make


@pytest.fixture
def make_metric(session_factory: Callable[..., Any], make_plan: Callable[..., UUID]):
    """Create a metric row (and its plan) with the given reward and timestamps."""
    from content_autopilot.db.models import MetricModel
    from content_autopilot.domain.enums import PlanStatus

    counter = {"n": 0}

    def _make(
        reward: float,
        collected_at: datetime,
        views: int = 1000,
        view2_rate: float | None = 0.5,
        create_time: datetime | None = None,
    ) -> UUID:
        counter["n"] += 1
        plan_id = make_plan(PlanStatus.METRICS_FETCHED)
        with session_factory() as session:
            metric = MetricModel(
                post_plan_id=plan_id,
                external_video_id=f"video_{counter['n']}",
                views=views,
                view2_rate=view2_rate,
                reward_score=reward,
                create_time=create_time or collected_at,
                collected_at=collected_at,
            )
            session.add(metric)
            session.flush()
            return metric.id

    return _make


@pytest.fixture
def stub_publisher():
    from content_autopilot.adapters.publisher.stub import StubPublisher

    return StubPublisher()


@pytest.fixture
def cycle_runner(session_factory, stub_publisher, clock, tmp_path):
    """Cycle runner wired with stub adapters and a temporary render directory."""
    import random

    from content_autopilot.adapters.inspiration.stub import StubInspirationSeeder
    from content_autopilot.adapters.mutator.stub import StubMutator
    from content_autopilot.adapters.planner.stub import StubPlanner
    from content_autopilot.adapters.renderer.stub import StubRenderer
    from content_autopilot.services.cycle import CycleRunner

    return CycleRunner(
        planner=StubPlanner(session_factory),
        renderer=StubRenderer(output_dir=tmp_path, session_factory=session_factory),
        publisher=stub_publisher,
        mutator=StubMutator(session_factory),
        seeder=StubInspirationSeeder(),
        session_factory=session_factory,
        clock=clock,
        rng=random.Random(7),
    )


@pytest.fixture
def test_client() -> Generator[TestClient, None, None]:
    """Create a test client for the FastAPI app."""
    from content_autopilot.main import app

    with TestClient(app) as client:
        yield client
