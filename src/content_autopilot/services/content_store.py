"""Minimal content-store surface used by the optimizer and mutation engine."""

from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from content_autopilot.db.models import RecipeModel, VariantModel
from content_autopilot.domain.enums import VariantStatus

LIVE_VARIANT_STATUSES = (VariantStatus.ACTIVE, VariantStatus.TESTING)


def _as_uuid(value: str | UUID) -> UUID | None:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(value)
    except (TypeError, ValueError):
        return None


def set_recipe_enabled(session: Session, recipe_id: str | UUID, enabled: bool) -> bool:
    """Flip a recipe's ``enabled`` flag.

    Returns:
        True if a row changed (the recipe existed and was in the opposite state)
    """
    key = _as_uuid(recipe_id)
    if key is None:
        return False
    result = session.execute(
        update(RecipeModel)
        .where(RecipeModel.id == key, RecipeModel.enabled == (not enabled))
        .values(enabled=enabled)
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount > 0


def list_recipes(session: Session, enabled_only: bool = True) -> list[RecipeModel]:
    query = select(RecipeModel).order_by(RecipeModel.created_at)
    if enabled_only:
        query = query.where(RecipeModel.enabled.is_(True))
    return list(session.execute(query).scalars().all())


def live_variant_count(session: Session, recipe_id: str | UUID) -> int:
    """Variants of a recipe that are active or under test."""
    key = _as_uuid(recipe_id)
    if key is None:
        return 0
    return session.execute(
        select(func.count())
        .select_from(VariantModel)
        .where(
            VariantModel.recipe_id == key,
            VariantModel.status.in_([str(s) for s in LIVE_VARIANT_STATUSES]),
        )
    ).scalar_one()


def testing_variant_count(session: Session) -> int:
    return session.execute(
        select(func.count())
        .select_from(VariantModel)
        .where(VariantModel.status == str(VariantStatus.TESTING))
    ).scalar_one()
