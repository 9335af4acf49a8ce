"""Mutation trigger engine.

Decides, once per autopilot cycle, whether to ask the mutator for new content.
Steps run in order and the first one that requests a mutation ends the
evaluation:

1. Exploit-refine: the best recipe arm (by posterior mean, among arms with
   enough pulls) gets a new variant while it has fewer than 6 live variants.
2. Underperformance escalation: if the trailing 7-day mean reward is at or
   below 60% of the prior mean, a persisted streak grows. From a streak of 2,
   at most once per 24h, the exploration budget widens by 0.1 (capped at 0.6)
   and, at most once per 24h, a new archetype recipe is requested. This step
   never ends the evaluation and its bookkeeping runs on every evaluation.
3. Exploration floor: with fewer than 4 variants in testing, mutate a seed
   drawn from the weakest 30% of recipes.
4. Plateau: if the last ``plateau_days`` did not beat the window before them,
   mutate another weak seed.
"""

import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from content_autopilot.adapters.mutator.base import MutatorAdapter, RecipeTemplates
from content_autopilot.db.models import ArmStatsModel, MetricModel, SettingModel
from content_autopilot.db.session import SessionFactory, get_session_context
from content_autopilot.domain.enums import ArmType, RunType
from content_autopilot.logging import get_logger
from content_autopilot.services.content_store import (
    list_recipes,
    live_variant_count,
    testing_variant_count,
)
from content_autopilot.services.learning.optimizer import posterior_mean
from content_autopilot.services.rules import (
    EXPLORATION_MAX,
    OptimiserPolicy,
    RulesSettings,
    update_exploration_budget,
)
from content_autopilot.services.run_log import log_run_error
from content_autopilot.utils.timeutils import Clock, hours_since, parse_timestamp, utcnow

logger = get_logger(__name__)

OPTIMIZER_STATE_KEY = "optimizer_state"

MAX_LIVE_VARIANTS = 6
UNDERPERFORMANCE_WINDOW_DAYS = 7
UNDERPERFORMANCE_MIN_SAMPLES = 6
UNDERPERFORMANCE_THRESHOLD_RATIO = 0.6
UNDERPERFORMANCE_STREAK_FOR_ACTION = 2
ACTION_COOLDOWN_HOURS = 24
EXPLORATION_STEP = 0.1
EXPLORATION_FLOOR = 4
SEED_POOL_FRACTION = 0.3
PLATEAU_MIN_SAMPLES = 3


class MutationStep(StrEnum):
    EXPLOIT_REFINE = "exploit_refine"
    EXPLORATION_FLOOR = "exploration_floor"
    PLATEAU = "plateau"
    NONE = "none"


@dataclass
class OptimizerState:
    """Persisted escalation bookkeeping."""

    underperform_streak: int = 0
    last_action_at: datetime | None = None
    last_archetype_at: datetime | None = None

    @classmethod
    def from_json(cls, data: dict[str, Any] | None) -> "OptimizerState":
        data = data or {}
        try:
            streak = max(0, int(data.get("underperform_streak") or 0))
        except (TypeError, ValueError):
            streak = 0
        return cls(
            underperform_streak=streak,
            last_action_at=parse_timestamp(data.get("last_action_at")),
            last_archetype_at=parse_timestamp(data.get("last_archetype_at")),
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "underperform_streak": self.underperform_streak,
            "last_action_at": self.last_action_at.isoformat() if self.last_action_at else None,
            "last_archetype_at": (
                self.last_archetype_at.isoformat() if self.last_archetype_at else None
            ),
        }


def get_optimizer_state(session: Session) -> OptimizerState:
    row = session.get(SettingModel, OPTIMIZER_STATE_KEY)
    return OptimizerState.from_json(row.value_json if row else None)


def save_optimizer_state(session: Session, state: OptimizerState) -> None:
    row = session.get(SettingModel, OPTIMIZER_STATE_KEY)
    if row:
        row.value_json = state.to_json()
    else:
        session.add(SettingModel(key=OPTIMIZER_STATE_KEY, value_json=state.to_json()))
    session.flush()


@dataclass
class MutationOutcome:
    """What one evaluation did."""

    step: MutationStep = MutationStep.NONE
    recipe_id: str | None = None
    created_variant_ids: list[str] = field(default_factory=list)
    underperforming: bool = False
    underperform_streak: int = 0
    escalated: bool = False
    exploration_budget: float | None = None
    archetype_id: str | None = None
    skipped: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "step": str(self.step),
            "recipe_id": self.recipe_id,
            "created_variant_ids": self.created_variant_ids,
            "underperforming": self.underperforming,
            "underperform_streak": self.underperform_streak,
            "escalated": self.escalated,
            "exploration_budget": self.exploration_budget,
            "archetype_id": self.archetype_id,
            "skipped": self.skipped,
        }


@dataclass(frozen=True)
class _ArmRow:
    arm_id: str
    reward_sum: float
    pulls: int


@dataclass(frozen=True)
class _Recipe:
    id: UUID
    templates: RecipeTemplates


def _mean_reward(
    session: Session, since: datetime, until: datetime | None = None, min_views: int = 0
) -> tuple[float, int]:
    """Mean reward and sample count of metrics collected in [since, until)."""
    query = select(MetricModel.reward_score).where(MetricModel.collected_at >= since)
    if until is not None:
        query = query.where(MetricModel.collected_at < until)
    if min_views:
        query = query.where(MetricModel.views >= min_views)
    scores = [score or 0.0 for score in session.execute(query).scalars().all()]
    if not scores:
        return 0.0, 0
    return sum(scores) / len(scores), len(scores)


def is_underperforming(session: Session, policy: OptimiserPolicy, now: datetime) -> bool:
    mean, samples = _mean_reward(
        session,
        since=now - timedelta(days=UNDERPERFORMANCE_WINDOW_DAYS),
        min_views=policy.min_views_before_counting,
    )
    if samples < UNDERPERFORMANCE_MIN_SAMPLES:
        return False
    return mean <= policy.prior_mean * UNDERPERFORMANCE_THRESHOLD_RATIO


def is_plateau(session: Session, days: int, now: datetime) -> bool:
    recent_start = now - timedelta(days=days)
    prior_start = now - timedelta(days=days * 2)
    recent_mean, recent_n = _mean_reward(session, since=recent_start)
    prior_mean, prior_n = _mean_reward(session, since=prior_start, until=recent_start)
    if recent_n < PLATEAU_MIN_SAMPLES or prior_n < PLATEAU_MIN_SAMPLES:
        return False
    return recent_mean <= prior_mean


def pick_exploration_seed(
    arms: list[_ArmRow],
    recipes: dict[str, _Recipe],
    policy: OptimiserPolicy,
    rng: random.Random,
) -> _Recipe | None:
    """Pick a recipe from the weakest 30% of arms, least-tested first on ties."""
    if not recipes:
        return None
    scored = sorted(
        (
            (
                posterior_mean(a.reward_sum, a.pulls, policy.prior_mean, policy.prior_weight),
                a.pulls,
                a.arm_id,
            )
            for a in arms
            if a.arm_id in recipes
        ),
        key=lambda item: (item[0], item[1]),
    )
    if not scored:
        return rng.choice(list(recipes.values()))
    bottom = scored[: max(1, int(len(scored) * SEED_POOL_FRACTION))]
    _, _, arm_id = rng.choice(bottom)
    return recipes[arm_id]


class MutationEngine:
    """Runs the ordered mutation steps against a mutator."""

    def __init__(
        self,
        mutator: MutatorAdapter,
        session_factory: SessionFactory = get_session_context,
        clock: Clock = utcnow,
        rng: random.Random | None = None,
    ) -> None:
        self.mutator = mutator
        self.session_factory = session_factory
        self.clock = clock
        self.rng = rng or random.Random()

    async def _mutate(
        self, recipe: _Recipe, rules: RulesSettings, outcome: MutationOutcome, step: MutationStep
    ) -> None:
        created = await self.mutator.mutate(
            recipe.id,
            recipe.templates,
            rules.viral_engine.allowed_cta_types,
            rules.guardrails,
        )
        outcome.step = step
        outcome.recipe_id = str(recipe.id)
        outcome.created_variant_ids = [str(variant_id) for variant_id in created]
        logger.info(
            "mutation_requested",
            step=str(step),
            recipe_id=str(recipe.id),
            created=len(created),
        )

    async def _escalate(
        self, rules: RulesSettings, now: datetime, outcome: MutationOutcome
    ) -> None:
        """Underperformance bookkeeping and escalation actions."""
        policy = rules.optimiser_policy
        with self.session_factory() as session:
            underperforming = is_underperforming(session, policy, now)
            state = get_optimizer_state(session)
            outcome.underperforming = underperforming

            if not underperforming:
                if state.underperform_streak > 0:
                    state.underperform_streak = 0
                    save_optimizer_state(session, state)
                outcome.underperform_streak = 0
                return

            state.underperform_streak += 1
            outcome.underperform_streak = state.underperform_streak
            should_act = (
                state.underperform_streak >= UNDERPERFORMANCE_STREAK_FOR_ACTION
                and hours_since(state.last_action_at, now) > ACTION_COOLDOWN_HOURS
            )
            if not should_act:
                save_optimizer_state(session, state)
                return

            _, budget = update_exploration_budget(session, EXPLORATION_STEP)
            outcome.escalated = True
            outcome.exploration_budget = min(budget, EXPLORATION_MAX)
            archetype_due = hours_since(state.last_archetype_at, now) > ACTION_COOLDOWN_HOURS
            existing_names = [recipe.name for recipe in list_recipes(session, enabled_only=False)]
            # The widening and the action stamp commit together
            state.last_action_at = now
            save_optimizer_state(session, state)

        logger.warning(
            "underperformance_escalated",
            streak=state.underperform_streak,
            exploration_budget=outcome.exploration_budget,
            archetype_requested=archetype_due,
        )

        if not archetype_due:
            return

        try:
            archetype_id = await self.mutator.create_archetype(
                rules.viral_engine.allowed_cta_types, rules.guardrails, existing_names
            )
        except Exception as e:
            logger.warning("archetype_request_failed", error=str(e))
            with self.session_factory() as session:
                log_run_error(session, RunType.ARCHETYPE_REQUEST, str(e))
            return

        outcome.archetype_id = str(archetype_id) if archetype_id else None
        with self.session_factory() as session:
            state = get_optimizer_state(session)
            state.last_archetype_at = now
            save_optimizer_state(session, state)

    async def evaluate(self, rules: RulesSettings) -> MutationOutcome:
        """Run one evaluation of the mutation steps."""
        outcome = MutationOutcome()
        policy = rules.optimiser_policy
        if not policy.test_dimensions.variant:
            outcome.skipped = True
            return outcome

        now = self.clock()
        with self.session_factory() as session:
            arms = [
                _ArmRow(row.arm_id, row.reward_sum, row.pulls)
                for row in session.execute(
                    select(ArmStatsModel).where(ArmStatsModel.arm_type == str(ArmType.RECIPE))
                ).scalars()
            ]
            recipes = {
                str(r.id): _Recipe(
                    r.id,
                    RecipeTemplates(
                        name=r.name,
                        beat1_templates=list(r.beat1_templates or []),
                        beat2_templates=list(r.beat2_templates or []),
                    ),
                )
                for r in list_recipes(session)
            }
            eligible = [a for a in arms if a.pulls >= policy.min_pulls_before_promote]
            top = max(
                eligible,
                key=lambda a: posterior_mean(
                    a.reward_sum, a.pulls, policy.prior_mean, policy.prior_weight
                ),
                default=None,
            )
            top_recipe = recipes.get(top.arm_id) if top else None
            refine = (
                top_recipe is not None
                and live_variant_count(session, top_recipe.id) < MAX_LIVE_VARIANTS
            )

        # 1. Exploit-refine
        if refine and top_recipe is not None:
            await self._mutate(top_recipe, rules, outcome, MutationStep.EXPLOIT_REFINE)

        # 2. Underperformance escalation
        await self._escalate(rules, now, outcome)

        if outcome.step != MutationStep.NONE or not recipes:
            return outcome

        # 3. Exploration floor
        with self.session_factory() as session:
            testing = testing_variant_count(session)
            plateau = policy.plateau_days > 0 and is_plateau(session, policy.plateau_days, now)

        if testing < EXPLORATION_FLOOR:
            seed = pick_exploration_seed(arms, recipes, policy, self.rng)
            if seed is not None:
                await self._mutate(seed, rules, outcome, MutationStep.EXPLORATION_FLOOR)
            return outcome

        # 4. Plateau fallback
        if plateau:
            seed = pick_exploration_seed(arms, recipes, policy, self.rng)
            if seed is not None:
                await self._mutate(seed, rules, outcome, MutationStep.PLATEAU)

        return outcome
