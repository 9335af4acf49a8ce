"""Bandit optimizer over content arms.

Every published plan references a set of arms (its recipe, variant, CTA,
snippet and clips). When the plan's metrics arrive, each arm is credited with
one pull plus the observed impressions and reward. Arm estimates are shrunk
toward a configured prior:

    posterior_mean = (reward_sum + prior_mean * prior_weight) / max(1, pulls + prior_weight)

where ``prior_weight`` acts as a number of virtual pulls at ``prior_mean``.

Promotion and retirement act on RECIPE arms only and flip the recipe's
``enabled`` flag; arm history is never deleted.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from content_autopilot.db.models import ArmStatsModel, PostPlanModel, RecipeModel, VariantModel
from content_autopilot.domain.enums import ArmType
from content_autopilot.logging import get_logger
from content_autopilot.services.content_store import set_recipe_enabled
from content_autopilot.services.rules import OptimiserPolicy
from content_autopilot.utils.timeutils import utcnow

logger = get_logger(__name__)


def posterior_mean(
    reward_sum: float, pulls: int, prior_mean: float, prior_weight: float
) -> float:
    """Smoothed mean reward; equals ``prior_mean`` with no pulls when ``prior_weight >= 1``."""
    return (reward_sum + prior_mean * prior_weight) / max(1, pulls + prior_weight)


def confidence(pulls: int, prior_weight: float) -> float:
    """Display-only certainty in [0, 1); not a statistical interval."""
    return pulls / max(1, pulls + prior_weight)


@dataclass
class PromotionResult:
    promoted: list[str] = field(default_factory=list)
    retired: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"promoted": self.promoted, "retired": self.retired}


@dataclass
class ArmSummary:
    """An arm with its derived estimates, for listings."""

    arm_type: str
    arm_id: str
    pulls: int
    impressions: int
    conversions: int
    reward_sum: float
    mean_reward: float
    confidence: float
    last_used_at: datetime | None = None
    name: str | None = None
    status: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "arm_type": self.arm_type,
            "arm_id": self.arm_id,
            "name": self.name,
            "status": self.status,
            "pulls": self.pulls,
            "impressions": self.impressions,
            "conversions": self.conversions,
            "reward_sum": round(self.reward_sum, 4),
            "mean_reward": round(self.mean_reward, 4),
            "confidence": round(self.confidence, 4),
            "last_used_at": self.last_used_at.isoformat() if self.last_used_at else None,
        }


def plan_arms(plan: PostPlanModel) -> list[tuple[ArmType, str]]:
    """Arms referenced by a plan, each listed once."""
    arms: list[tuple[ArmType, str]] = []
    if plan.recipe_id:
        arms.append((ArmType.RECIPE, str(plan.recipe_id)))
    if plan.variant_id:
        arms.append((ArmType.VARIANT, str(plan.variant_id)))
    if plan.cta_id:
        arms.append((ArmType.CTA, str(plan.cta_id)))
    if plan.snippet_id:
        arms.append((ArmType.SNIPPET, str(plan.snippet_id)))
    for clip_id in dict.fromkeys(plan.clip_ids or []):
        arms.append((ArmType.CLIP, str(clip_id)))
    return arms


def _increment_arm(
    session: Session,
    arm_type: ArmType,
    arm_id: str,
    impressions: int,
    conversions: int,
    reward: float,
    now: datetime,
) -> None:
    """Atomically add one pull to an arm, creating it on first use."""
    dialect = session.get_bind().dialect.name
    values = {
        "arm_type": str(arm_type),
        "arm_id": arm_id,
        "pulls": 1,
        "impressions": impressions,
        "conversions": conversions,
        "reward_sum": reward,
        "last_used_at": now,
    }

    if dialect in ("postgresql", "sqlite"):
        insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
        stmt = insert(ArmStatsModel).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[ArmStatsModel.arm_type, ArmStatsModel.arm_id],
            set_={
                "pulls": ArmStatsModel.pulls + 1,
                "impressions": ArmStatsModel.impressions + impressions,
                "conversions": ArmStatsModel.conversions + conversions,
                "reward_sum": ArmStatsModel.reward_sum + reward,
                "last_used_at": now,
            },
        )
        session.execute(stmt)
        return

    # Other backends: row lock, then increment
    row = session.execute(
        select(ArmStatsModel)
        .where(ArmStatsModel.arm_type == str(arm_type), ArmStatsModel.arm_id == arm_id)
        .with_for_update()
    ).scalar_one_or_none()
    if row is None:
        session.add(ArmStatsModel(**values))
    else:
        row.pulls = ArmStatsModel.pulls + 1
        row.impressions = ArmStatsModel.impressions + impressions
        row.conversions = ArmStatsModel.conversions + conversions
        row.reward_sum = ArmStatsModel.reward_sum + reward
        row.last_used_at = now
    session.flush()


def record_pull(
    session: Session,
    plan_id: UUID,
    impressions: int,
    conversions: int,
    reward: float,
    min_views: int,
    now: datetime | None = None,
) -> int:
    """Credit every arm referenced by a plan with one pull.

    Not idempotent: each call adds a pull. Callers must invoke it at most once
    per plan per metrics refresh.

    Args:
        session: Database session
        plan_id: Post plan whose arms are credited
        impressions: Views observed for the plan's video
        conversions: Conversions (follower gain) observed
        reward: Reward score in [0, 1]
        min_views: Pulls below this many impressions are ignored
        now: Timestamp recorded as ``last_used_at``

    Returns:
        Number of arms updated
    """
    if impressions < min_views:
        logger.debug("pull_below_min_views", plan_id=str(plan_id), impressions=impressions)
        return 0

    plan = session.get(PostPlanModel, plan_id)
    if plan is None:
        logger.warning("pull_plan_missing", plan_id=str(plan_id))
        return 0

    now = now or utcnow()
    arms = plan_arms(plan)
    for arm_type, arm_id in arms:
        _increment_arm(session, arm_type, arm_id, impressions, conversions, reward, now)

    # Core upserts bypass the identity map
    for obj in list(session.identity_map.values()):
        if isinstance(obj, ArmStatsModel):
            session.expire(obj)

    logger.info(
        "pull_recorded",
        plan_id=str(plan_id),
        arms=len(arms),
        impressions=impressions,
        reward=round(reward, 4),
    )
    return len(arms)


def _arms_of_type(session: Session, arm_type: ArmType) -> list[ArmStatsModel]:
    return list(
        session.execute(select(ArmStatsModel).where(ArmStatsModel.arm_type == str(arm_type)))
        .scalars()
        .all()
    )


def promote_retire_arms(session: Session, policy: OptimiserPolicy) -> PromotionResult:
    """Enable outperforming recipes and disable persistently weak ones.

    The baseline is the mean posterior of recipe arms with at least
    ``min_pulls_before_promote`` pulls, or the prior mean when there are none.
    A recipe is promoted when its posterior clears ``baseline * (1 + uplift)``
    and retired when it falls to ``baseline * (1 - uplift)``; both also require
    ``promotion.min_impressions``.
    """
    result = PromotionResult()
    rows = _arms_of_type(session, ArmType.RECIPE)
    if not rows:
        return result

    def mean_of(row: ArmStatsModel) -> float:
        return posterior_mean(row.reward_sum, row.pulls, policy.prior_mean, policy.prior_weight)

    pool = [row for row in rows if row.pulls >= policy.min_pulls_before_promote]
    baseline = sum(mean_of(row) for row in pool) / len(pool) if pool else policy.prior_mean

    uplift = policy.promotion.uplift
    promote_threshold = baseline * (1 + uplift)
    retire_threshold = baseline * (1 - uplift)
    retire_min_pulls = max(policy.min_pulls_before_retire, policy.retirement.max_underperform)

    for row in rows:
        mean = mean_of(row)
        enough_impressions = row.impressions >= policy.promotion.min_impressions

        if (
            row.pulls >= policy.min_pulls_before_promote
            and enough_impressions
            and mean >= promote_threshold
        ):
            if set_recipe_enabled(session, row.arm_id, True):
                result.promoted.append(row.arm_id)

        if row.pulls >= retire_min_pulls and enough_impressions and mean <= retire_threshold:
            if set_recipe_enabled(session, row.arm_id, False):
                result.retired.append(row.arm_id)

    if result.promoted or result.retired:
        logger.info(
            "arms_promoted_retired",
            baseline=round(baseline, 4),
            promoted=result.promoted,
            retired=result.retired,
        )
    return result


def _names_and_statuses(
    session: Session, rows: Iterable[ArmStatsModel]
) -> dict[tuple[str, str], tuple[str | None, str | None]]:
    """Resolve display names for recipe and variant arms."""
    recipe_ids: list[UUID] = []
    variant_ids: list[UUID] = []
    for row in rows:
        try:
            key = UUID(row.arm_id)
        except ValueError:
            continue
        if row.arm_type == ArmType.RECIPE:
            recipe_ids.append(key)
        elif row.arm_type == ArmType.VARIANT:
            variant_ids.append(key)

    resolved: dict[tuple[str, str], tuple[str | None, str | None]] = {}
    if recipe_ids:
        for recipe in session.execute(
            select(RecipeModel).where(RecipeModel.id.in_(recipe_ids))
        ).scalars():
            resolved[(str(ArmType.RECIPE), str(recipe.id))] = (
                recipe.name,
                "enabled" if recipe.enabled else "disabled",
            )
    if variant_ids:
        for variant in session.execute(
            select(VariantModel).where(VariantModel.id.in_(variant_ids))
        ).scalars():
            resolved[(str(ArmType.VARIANT), str(variant.id))] = (variant.beat1, variant.status)
    return resolved


def list_arms(
    session: Session, policy: OptimiserPolicy, arm_type: ArmType | str | None = None
) -> list[ArmSummary]:
    """All arms with posterior mean and confidence, best first."""
    query = select(ArmStatsModel)
    if arm_type:
        query = query.where(ArmStatsModel.arm_type == str(arm_type))
    rows = list(session.execute(query).scalars().all())
    resolved = _names_and_statuses(session, rows)

    summaries = []
    for row in rows:
        name, status = resolved.get((row.arm_type, row.arm_id), (None, None))
        summaries.append(
            ArmSummary(
                arm_type=row.arm_type,
                arm_id=row.arm_id,
                pulls=row.pulls,
                impressions=row.impressions,
                conversions=row.conversions,
                reward_sum=row.reward_sum,
                mean_reward=posterior_mean(
                    row.reward_sum, row.pulls, policy.prior_mean, policy.prior_weight
                ),
                confidence=confidence(row.pulls, policy.prior_weight),
                last_used_at=row.last_used_at,
                name=name,
                status=status,
            )
        )
    summaries.sort(key=lambda s: (s.arm_type, -s.mean_reward))
    return summaries
