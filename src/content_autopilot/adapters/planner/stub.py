"""Stub planner that builds plans from enabled recipes."""

import random
from datetime import datetime
from uuid import uuid4

from sqlalchemy import select

from content_autopilot.adapters.planner.base import PlannerAdapter, TopUpResult
from content_autopilot.db.models import PostPlanModel, VariantModel
from content_autopilot.db.session import SessionFactory, get_session_context
from content_autopilot.domain.enums import PlanStatus, VariantStatus
from content_autopilot.logging import get_logger
from content_autopilot.services.content_store import list_recipes
from content_autopilot.services.rules import get_rules
from content_autopilot.utils.timeutils import utcnow

logger = get_logger(__name__)


class StubPlanner(PlannerAdapter):
    """Creates one plan per requested slot from a random enabled recipe.

    Captions carry the configured marker (``#mbp`` + 8 hex chars) so the
    metrics refresh can match the published video back to its plan.
    """

    def __init__(self, session_factory: SessionFactory = get_session_context) -> None:
        self.session_factory = session_factory

    async def top_up(self, count: int, scheduled_for: datetime | None = None) -> TopUpResult:
        result = TopUpResult()
        if count <= 0:
            return result

        with self.session_factory() as session:
            rules = get_rules(session)
            recipes = list_recipes(session)
            if not recipes:
                result.warnings.append("no enabled recipes")
                logger.warning("stub_planner_no_recipes")
                return result

            for _ in range(count):
                recipe = random.choice(recipes)
                variant = session.execute(
                    select(VariantModel)
                    .where(
                        VariantModel.recipe_id == recipe.id,
                        VariantModel.status != str(VariantStatus.RETIRED),
                    )
                    .limit(1)
                ).scalar_one_or_none()
                hook = variant.beat1 if variant else (recipe.beat1_templates or [recipe.name])[0]
                marker = (
                    f" {rules.caption_marker_prefix}{uuid4().hex[:8]}"
                    if rules.caption_marker_enabled
                    else ""
                )
                plan = PostPlanModel(
                    status=str(PlanStatus.PLANNED),
                    caption=f"{hook}{marker}",
                    scheduled_for=scheduled_for or utcnow(),
                    target_duration_sec=rules.target_duration_sec,
                    recipe_id=recipe.id,
                    variant_id=variant.id if variant else None,
                    cta_id=variant.cta_intent if variant else None,
                    clip_ids=[],
                )
                session.add(plan)
                session.flush()
                result.created_ids.append(plan.id)

        logger.info("stub_planner_top_up", requested=count, created=len(result.created_ids))
        return result
