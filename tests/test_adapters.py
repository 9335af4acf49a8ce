"""Tests for the stub adapter implementations."""

import pytest
from sqlalchemy import select

from content_autopilot.adapters.mutator.base import RecipeTemplates
from content_autopilot.adapters.mutator.stub import StubMutator, passes_guardrails
from content_autopilot.adapters.planner.stub import StubPlanner
from content_autopilot.adapters.renderer.stub import StubRenderer
from content_autopilot.db.models import PostPlanModel, RecipeModel, VariantModel
from content_autopilot.domain.enums import PlanStatus, VariantStatus
from content_autopilot.services.metrics import find_marker
from content_autopilot.services.rules import GuardrailsRules


@pytest.mark.asyncio
async def test_planner_creates_marked_plans(session_factory, make_recipe, clock) -> None:
    """Planned captions carry the caption marker used for metrics matching."""
    make_recipe("sunset")
    planner = StubPlanner(session_factory)

    result = await planner.top_up(2, scheduled_for=clock())

    assert len(result.created_ids) == 2
    assert result.warnings == []
    with session_factory() as session:
        plans = list(session.execute(select(PostPlanModel)).scalars())
        assert {plan.status for plan in plans} == {PlanStatus.PLANNED}
        assert all(find_marker(plan.caption, "#mbp") for plan in plans)
        assert all(plan.target_duration_sec == 9.0 for plan in plans)


@pytest.mark.asyncio
async def test_planner_warns_without_recipes(session_factory) -> None:
    result = await StubPlanner(session_factory).top_up(3)

    assert result.created_ids == []
    assert result.warnings == ["no enabled recipes"]


@pytest.mark.asyncio
async def test_planner_ignores_disabled_recipes(session_factory, make_recipe) -> None:
    make_recipe("retired", enabled=False)

    result = await StubPlanner(session_factory).top_up(1)

    assert result.created_ids == []


@pytest.mark.asyncio
async def test_renderer_writes_file_and_marks_plan(session_factory, make_plan, tmp_path) -> None:
    plan_id = make_plan()
    renderer = StubRenderer(output_dir=tmp_path / "renders", session_factory=session_factory)

    path = await renderer.render(plan_id)

    assert (tmp_path / "renders" / f"{plan_id}.mp4").read_bytes()
    with session_factory() as session:
        plan = session.get(PostPlanModel, plan_id)
        assert plan.status == PlanStatus.RENDERED
        assert plan.render_path == path


@pytest.mark.asyncio
async def test_renderer_unknown_plan(session_factory, tmp_path) -> None:
    from uuid import uuid4

    with pytest.raises(LookupError):
        await StubRenderer(output_dir=tmp_path, session_factory=session_factory).render(uuid4())


class TestStubMutator:
    """Tests for template recombination and archetype creation."""

    def test_guardrails_filter(self) -> None:
        guardrails = GuardrailsRules(banned_words=["giveaway"], banned_phrases=["link in bio"])

        assert passes_guardrails("Wait for the drop", guardrails)
        assert not passes_guardrails("Free giveaway inside", guardrails)
        assert not passes_guardrails("Check the LINK IN BIO", guardrails)
        assert not passes_guardrails("one\ntwo\nthree", guardrails)

    @pytest.mark.asyncio
    async def test_mutate_creates_testing_variant(self, session_factory, make_recipe) -> None:
        recipe_id = make_recipe("sunset")
        mutator = StubMutator(session_factory)

        created = await mutator.mutate(
            recipe_id,
            RecipeTemplates("sunset", ["sunset hook one"], ["sunset payoff"]),
            ["follow"],
            GuardrailsRules(),
        )

        assert len(created) == 1
        with session_factory() as session:
            variant = session.get(VariantModel, created[0])
            assert variant.status == VariantStatus.TESTING
            assert variant.beat1 == "sunset hook one"
            assert variant.cta_intent == "follow"

    @pytest.mark.asyncio
    async def test_mutate_skips_when_all_templates_banned(
        self, session_factory, make_recipe
    ) -> None:
        recipe_id = make_recipe("sunset")
        guardrails = GuardrailsRules(banned_words=["hook"])

        created = await StubMutator(session_factory).mutate(
            recipe_id,
            RecipeTemplates("sunset", ["sunset hook one"], []),
            [],
            guardrails,
        )

        assert created == []

    @pytest.mark.asyncio
    async def test_archetype_name_is_unique(self, session_factory) -> None:
        mutator = StubMutator(session_factory)

        recipe_id = await mutator.create_archetype([], GuardrailsRules(), ["Archetype 1"])

        with session_factory() as session:
            recipe = session.get(RecipeModel, recipe_id)
            assert recipe.name == "Archetype 2"
            assert recipe.source == "archetype"
            assert recipe.enabled is True
