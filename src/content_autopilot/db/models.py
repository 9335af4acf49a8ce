"""SQLAlchemy ORM models."""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID as PyUUID
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# =============================================================================
# Content (owned by the planner / content store, read by the autopilot)
# =============================================================================


class RecipeModel(Base):
    """Hook recipe ORM model.

    Recipes are created and edited by the content store; the optimizer only
    flips ``enabled`` when promoting or retiring.
    """

    __tablename__ = "recipes"

    id: Mapped[PyUUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, server_default="1", index=True)
    beat1_templates: Mapped[list[str]] = mapped_column(JSON, default=list)
    beat2_templates: Mapped[list[str]] = mapped_column(JSON, default=list)
    source: Mapped[str | None] = mapped_column(String(50), nullable=True)  # manual, mutation, archetype
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=_utcnow
    )

    variants: Mapped[list["VariantModel"]] = relationship(
        "VariantModel", back_populates="recipe", cascade="all, delete-orphan"
    )


class VariantModel(Base):
    """Mutated variant of a recipe (beat wording / CTA)."""

    __tablename__ = "variants"

    id: Mapped[PyUUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    recipe_id: Mapped[PyUUID] = mapped_column(
        Uuid, ForeignKey("recipes.id", ondelete="CASCADE"), index=True
    )
    beat1: Mapped[str] = mapped_column(Text, nullable=False)
    beat2: Mapped[str] = mapped_column(Text, nullable=False)
    caption_template: Mapped[str | None] = mapped_column(Text, nullable=True)
    cta_intent: Mapped[str | None] = mapped_column(String(50), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="testing", index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    recipe: Mapped["RecipeModel"] = relationship("RecipeModel", back_populates="variants")


class PostPlanModel(Base):
    """A planned post moving through render and upload."""

    __tablename__ = "post_plans"

    id: Mapped[PyUUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    status: Mapped[str] = mapped_column(String(30), default="PLANNED", index=True)
    caption: Mapped[str] = mapped_column(Text, default="")
    scheduled_for: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    render_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    target_duration_sec: Mapped[float | None] = mapped_column(Float, nullable=True)
    # Arms referenced by this plan
    recipe_id: Mapped[PyUUID | None] = mapped_column(
        Uuid, ForeignKey("recipes.id", ondelete="SET NULL"), nullable=True
    )
    variant_id: Mapped[PyUUID | None] = mapped_column(Uuid, nullable=True)
    cta_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    snippet_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    clip_ids: Mapped[list[str]] = mapped_column(JSON, default=list)
    # Publishing
    publish_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    uploaded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), index=True
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=_utcnow
    )

    metrics: Mapped[list["MetricModel"]] = relationship(
        "MetricModel", back_populates="post_plan", cascade="all, delete-orphan"
    )


# =============================================================================
# Learning loop
# =============================================================================


class MetricModel(Base):
    """Platform metrics for one published video, upserted by external video id."""

    __tablename__ = "metrics"

    id: Mapped[PyUUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    post_plan_id: Mapped[PyUUID] = mapped_column(
        Uuid, ForeignKey("post_plans.id", ondelete="CASCADE"), index=True
    )
    external_video_id: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    create_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    views: Mapped[int] = mapped_column(Integer, default=0)
    likes: Mapped[int] = mapped_column(Integer, default=0)
    comments: Mapped[int] = mapped_column(Integer, default=0)
    shares: Mapped[int] = mapped_column(Integer, default=0)
    saves: Mapped[int] = mapped_column(Integer, default=0)
    follower_delta: Mapped[int | None] = mapped_column(Integer, nullable=True)
    # Reward audit trail
    retention: Mapped[float | None] = mapped_column(Float, nullable=True)
    view2_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    view6_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    save_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    share_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    reward_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    collected_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, index=True
    )

    post_plan: Mapped["PostPlanModel"] = relationship("PostPlanModel", back_populates="metrics")


class ArmStatsModel(Base):
    """Bandit statistics for one arm. Never deleted."""

    __tablename__ = "arm_stats"
    __table_args__ = (UniqueConstraint("arm_type", "arm_id", name="uq_arm_stats_type_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    arm_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    arm_id: Mapped[str] = mapped_column(String(64), nullable=False)
    pulls: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    impressions: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    conversions: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    reward_sum: Mapped[float] = mapped_column(Float, default=0.0, server_default="0")
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# =============================================================================
# Settings and audit
# =============================================================================


class SettingModel(Base):
    """Named single-record JSON settings (rules, optimizer_state, publisher)."""

    __tablename__ = "settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value_json: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )


class RunLogModel(Base):
    """Audit log of cycle and guardrail events."""

    __tablename__ = "run_logs"
    __table_args__ = (Index("ix_run_logs_type_started", "run_type", "started_at"),)

    id: Mapped[PyUUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    run_type: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="OK")
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    payload_excerpt: Mapped[str | None] = mapped_column(Text, nullable=True)
