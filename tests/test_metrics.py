"""Tests for metrics matching and refresh."""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4

import pytest
from sqlalchemy import select

from content_autopilot.adapters.publisher.base import PlatformVideo
from content_autopilot.adapters.publisher.errors import PublisherAuthError
from content_autopilot.adapters.publisher.stub import StubPublisher
from content_autopilot.db.models import ArmStatsModel, MetricModel, PostPlanModel, RunLogModel
from content_autopilot.domain.enums import PlanStatus, RunType
from content_autopilot.services.learning.reward import RawVideoMetrics
from content_autopilot.services.metrics import (
    MetricsRefresher,
    find_marker,
    match_videos_to_plans,
    strip_marker,
    token_score,
)
from content_autopilot.services.rules import RulesSettings


@dataclass
class Plan:
    id: UUID
    caption: str
    scheduled_for: datetime
    target_duration_sec: float | None = 9.0


NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def test_find_and_strip_marker() -> None:
    assert find_marker("wait for it #mbpa1b2c3d4 #fyp", "#mbp") == "#mbpa1b2c3d4"
    assert find_marker("no marker here", "#mbp") is None
    assert strip_marker("wait for it #mbpa1b2c3d4", "#mbp") == "wait for it"


def test_token_score_ignores_short_tokens() -> None:
    assert token_score("The cat jumps over it", "cat jumps high") == 2
    assert token_score("a b c", "a b c") == 0


class TestMatching:
    """Tests for pairing platform videos with plans."""

    def test_marker_match_wins(self) -> None:
        marked = Plan(uuid4(), "Drop incoming #mbpdeadbeef", NOW)
        other = Plan(uuid4(), "Drop incoming", NOW)
        video = PlatformVideo("v1", "Drop incoming #mbpdeadbeef", NOW, 9.0)

        matches = match_videos_to_plans([video], [other, marked], RulesSettings())

        assert len(matches) == 1
        assert matches[0].plan_id == marked.id
        assert matches[0].method == "marker"

    def test_heuristic_prefers_token_overlap(self) -> None:
        close = Plan(uuid4(), "sunset skate session", NOW)
        unrelated = Plan(uuid4(), "morning coffee routine", NOW)
        video = PlatformVideo("v1", "Sunset skate session vibes", NOW + timedelta(minutes=5), 9.0)

        matches = match_videos_to_plans([video], [unrelated, close], RulesSettings())

        assert matches[0].plan_id == close.id
        assert matches[0].method == "heuristic"

    def test_heuristic_respects_window_and_duration(self) -> None:
        late = Plan(uuid4(), "sunset skate", NOW - timedelta(hours=5))
        long_cut = Plan(uuid4(), "sunset skate", NOW, target_duration_sec=30.0)
        video = PlatformVideo("v1", "sunset skate", NOW, 9.0)

        assert match_videos_to_plans([video], [late, long_cut], RulesSettings()) == []

    def test_each_plan_matched_once(self) -> None:
        plan = Plan(uuid4(), "sunset skate", NOW)
        videos = [
            PlatformVideo("v1", "sunset skate", NOW, 9.0),
            PlatformVideo("v2", "sunset skate", NOW, 9.0),
        ]

        matches = match_videos_to_plans(videos, [plan], RulesSettings())

        assert [m.video_id for m in matches] == ["v1"]


class TestRefresh:
    """Tests for the end-to-end metrics refresh."""

    @pytest.mark.asyncio
    async def test_refresh_scores_credits_and_advances(
        self, session_factory, make_plan, make_recipe
    ) -> None:
        recipe_id = make_recipe("Skate")
        plan_id = make_plan(
            PlanStatus.UPLOADED_DRAFT,
            caption="Kickflip attempt #mbp0a1b2c3d",
            recipe_id=recipe_id,
            target_duration_sec=9.0,
        )
        publisher = StubPublisher(
            videos=[PlatformVideo("v1", "Kickflip attempt #mbp0a1b2c3d", None, 9.0)],
            metrics={
                "v1": RawVideoMetrics(
                    video_id="v1",
                    views=1000,
                    saves=10,
                    shares=5,
                    avg_watch_time_sec=4.5,
                    view_2s=0.7,
                    view_6s=0.4,
                    follower_delta=3,
                )
            },
        )

        result = await MetricsRefresher(publisher, session_factory).refresh()

        assert result.matched == 1
        with session_factory() as session:
            metric = session.execute(select(MetricModel)).scalar_one()
            assert metric.post_plan_id == plan_id
            assert metric.retention == pytest.approx(0.5)
            assert 0 < metric.reward_score <= 1

            arm = session.execute(select(ArmStatsModel)).scalar_one()
            assert arm.arm_id == str(recipe_id)
            assert arm.pulls == 1
            assert arm.conversions == 3

            assert session.get(PostPlanModel, plan_id).status == str(PlanStatus.METRICS_FETCHED)
            log = session.execute(select(RunLogModel)).scalar_one()
            assert log.run_type == str(RunType.METRICS_REFRESH)

    @pytest.mark.asyncio
    async def test_second_refresh_does_not_double_count(
        self, session_factory, make_plan, make_recipe
    ) -> None:
        make_plan(
            PlanStatus.UPLOADED_DRAFT,
            caption="Kickflip #mbpfeedface",
            recipe_id=make_recipe("Skate"),
        )
        publisher = StubPublisher(
            videos=[PlatformVideo("v1", "Kickflip #mbpfeedface", None, 9.0)],
            metrics={"v1": RawVideoMetrics(video_id="v1", views=500)},
        )
        refresher = MetricsRefresher(publisher, session_factory)

        await refresher.refresh()
        second = await refresher.refresh()

        assert second.matched == 0
        with session_factory() as session:
            assert session.execute(select(ArmStatsModel)).scalar_one().pulls == 1

    @pytest.mark.asyncio
    async def test_refresh_skips_on_auth_error(self, session_factory) -> None:
        publisher = StubPublisher()
        publisher.query_video_list = _raise_auth  # type: ignore[method-assign]

        result = await MetricsRefresher(publisher, session_factory).refresh()

        assert result.matched == 0
        assert result.results == []


async def _raise_auth(max_count: int = 20):
    raise PublisherAuthError("token expired")
