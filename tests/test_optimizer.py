"""Tests for the bandit optimizer."""

import pytest
from sqlalchemy import select

from content_autopilot.db.models import ArmStatsModel, RecipeModel
from content_autopilot.domain.enums import ArmType, PlanStatus
from content_autopilot.services.learning.optimizer import (
    confidence,
    list_arms,
    plan_arms,
    posterior_mean,
    promote_retire_arms,
    record_pull,
)
from content_autopilot.services.rules import OptimiserPolicy


class TestEstimates:
    """Tests for posterior mean and confidence."""

    @pytest.mark.parametrize("prior_weight", [1.0, 2.0, 10.0])
    def test_posterior_mean_without_pulls_is_prior(self, prior_weight) -> None:
        mean = posterior_mean(0.0, 0, prior_mean=0.3, prior_weight=prior_weight)
        assert mean == pytest.approx(0.3)

    @pytest.mark.parametrize("reward_sum,pulls", [(3.0, 3), (0.3, 3), (9.0, 10), (0.0, 1)])
    def test_posterior_mean_between_prior_and_empirical(self, reward_sum, pulls) -> None:
        prior = 0.5
        empirical = reward_sum / pulls
        mean = posterior_mean(reward_sum, pulls, prior_mean=prior, prior_weight=2.0)

        low, high = sorted((prior, empirical))
        assert low < mean < high

    def test_confidence_starts_at_zero_and_grows(self) -> None:
        values = [confidence(pulls, prior_weight=2.0) for pulls in range(0, 50)]

        assert values[0] == 0.0
        assert all(a <= b for a, b in zip(values, values[1:]))
        assert values[-1] < 1.0


class TestRecordPull:
    """Tests for crediting arms from a plan's metrics."""

    def test_two_pulls_accumulate(self, session_factory, make_plan, make_recipe) -> None:
        recipe_id = make_recipe("Loop")
        plan_id = make_plan(PlanStatus.UPLOADED_DRAFT, recipe_id=recipe_id, cta_id="follow")

        for _ in range(2):
            with session_factory() as session:
                updated = record_pull(
                    session, plan_id, impressions=100, conversions=1, reward=1.0, min_views=10
                )
            assert updated == 2

        with session_factory() as session:
            arm = session.execute(
                select(ArmStatsModel).where(
                    ArmStatsModel.arm_type == str(ArmType.RECIPE),
                    ArmStatsModel.arm_id == str(recipe_id),
                )
            ).scalar_one()

            assert arm.pulls == 2
            assert arm.reward_sum == pytest.approx(2.0)
            assert arm.impressions == 200
            assert arm.conversions == 2
            assert arm.last_used_at is not None

    def test_below_min_views_is_ignored(self, session_factory, make_plan, make_recipe) -> None:
        plan_id = make_plan(PlanStatus.UPLOADED_DRAFT, recipe_id=make_recipe("Quiet"))

        with session_factory() as session:
            assert record_pull(session, plan_id, 50, 0, 0.9, min_views=200) == 0

        with session_factory() as session:
            assert session.execute(select(ArmStatsModel)).first() is None

    def test_pull_in_same_session_is_visible(self, session_factory, make_plan) -> None:
        plan_id = make_plan(PlanStatus.UPLOADED_DRAFT, snippet_id="s1")

        with session_factory() as session:
            record_pull(session, plan_id, 300, 0, 0.4, min_views=10)
            record_pull(session, plan_id, 300, 0, 0.4, min_views=10)
            arm = session.execute(select(ArmStatsModel)).scalar_one()
            assert arm.pulls == 2

    def test_plan_arms_lists_every_dimension(self) -> None:
        from uuid import uuid4

        from content_autopilot.db.models import PostPlanModel

        recipe_id, variant_id = uuid4(), uuid4()
        plan = PostPlanModel(
            recipe_id=recipe_id,
            variant_id=variant_id,
            cta_id="comment",
            snippet_id="snip",
            clip_ids=["c1", "c2", "c1"],
        )

        arms = plan_arms(plan)

        assert arms == [
            (ArmType.RECIPE, str(recipe_id)),
            (ArmType.VARIANT, str(variant_id)),
            (ArmType.CTA, "comment"),
            (ArmType.SNIPPET, "snip"),
            (ArmType.CLIP, "c1"),
            (ArmType.CLIP, "c2"),
        ]


class TestPromotion:
    """Tests for recipe promotion and retirement."""

    def _arm(self, session, recipe_id, pulls, reward_sum, impressions=5000) -> None:
        session.add(
            ArmStatsModel(
                arm_type=str(ArmType.RECIPE),
                arm_id=str(recipe_id),
                pulls=pulls,
                impressions=impressions,
                reward_sum=reward_sum,
            )
        )

    def test_promotes_strong_and_retires_weak(self, session_factory, make_recipe) -> None:
        strong = make_recipe("Strong", enabled=False)
        weak = make_recipe("Weak", enabled=True)
        average = make_recipe("Average", enabled=True)
        policy = OptimiserPolicy()

        with session_factory() as session:
            self._arm(session, strong, pulls=5, reward_sum=4.5)
            self._arm(session, weak, pulls=5, reward_sum=0.5)
            self._arm(session, average, pulls=5, reward_sum=2.5)

        with session_factory() as session:
            result = promote_retire_arms(session, policy)

        assert result.promoted == [str(strong)]
        assert result.retired == [str(weak)]

        with session_factory() as session:
            assert session.get(RecipeModel, strong).enabled is True
            assert session.get(RecipeModel, weak).enabled is False
            assert session.get(RecipeModel, average).enabled is True
            # History is kept
            assert len(session.execute(select(ArmStatsModel)).all()) == 3

    def test_low_impressions_block_promotion(self, session_factory, make_recipe) -> None:
        strong = make_recipe("Strong", enabled=False)
        weak = make_recipe("Weak")

        with session_factory() as session:
            self._arm(session, strong, pulls=5, reward_sum=4.5, impressions=100)
            self._arm(session, weak, pulls=5, reward_sum=0.5, impressions=100)

        with session_factory() as session:
            result = promote_retire_arms(session, OptimiserPolicy())

        assert result.promoted == []
        assert result.retired == []

    def test_already_enabled_recipe_not_reported(self, session_factory, make_recipe) -> None:
        strong = make_recipe("Strong", enabled=True)
        weak = make_recipe("Weak", enabled=False)

        with session_factory() as session:
            self._arm(session, strong, pulls=5, reward_sum=4.5)
            self._arm(session, weak, pulls=5, reward_sum=0.5)

        with session_factory() as session:
            result = promote_retire_arms(session, OptimiserPolicy())

        assert result.promoted == []
        assert result.retired == []

    def test_list_arms_resolves_names(self, session_factory, make_recipe) -> None:
        recipe_id = make_recipe("Named")
        with session_factory() as session:
            self._arm(session, recipe_id, pulls=2, reward_sum=1.0)
            session.add(ArmStatsModel(arm_type=str(ArmType.CTA), arm_id="follow", pulls=1))

        with session_factory() as session:
            summaries = list_arms(session, OptimiserPolicy(), ArmType.RECIPE)

        assert len(summaries) == 1
        assert summaries[0].name == "Named"
        assert summaries[0].status == "enabled"
        assert summaries[0].mean_reward == pytest.approx(0.5)
        assert summaries[0].confidence == pytest.approx(0.5)
