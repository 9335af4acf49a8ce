"""Initial schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Recipes table
    op.create_table(
        "recipes",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("beat1_templates", sa.JSON(), nullable=True),
        sa.Column("beat2_templates", sa.JSON(), nullable=True),
        sa.Column("source", sa.String(50), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )
    op.create_index("ix_recipes_enabled", "recipes", ["enabled"])

    # Variants table
    op.create_table(
        "variants",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("recipe_id", sa.Uuid(), nullable=False),
        sa.Column("beat1", sa.Text(), nullable=False),
        sa.Column("beat2", sa.Text(), nullable=False),
        sa.Column("caption_template", sa.Text(), nullable=True),
        sa.Column("cta_intent", sa.String(50), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="testing"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["recipe_id"], ["recipes.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_variants_recipe_id", "variants", ["recipe_id"])
    op.create_index("ix_variants_status", "variants", ["status"])

    # Post plans table
    op.create_table(
        "post_plans",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("status", sa.String(30), nullable=False, server_default="PLANNED"),
        sa.Column("caption", sa.Text(), nullable=False, server_default=""),
        sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=False),
        sa.Column("render_path", sa.Text(), nullable=True),
        sa.Column("target_duration_sec", sa.Float(), nullable=True),
        sa.Column("recipe_id", sa.Uuid(), nullable=True),
        sa.Column("variant_id", sa.Uuid(), nullable=True),
        sa.Column("cta_id", sa.String(64), nullable=True),
        sa.Column("snippet_id", sa.String(64), nullable=True),
        sa.Column("clip_ids", sa.JSON(), nullable=True),
        sa.Column("publish_id", sa.String(128), nullable=True),
        sa.Column("uploaded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["recipe_id"], ["recipes.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_post_plans_status", "post_plans", ["status"])
    op.create_index("ix_post_plans_created_at", "post_plans", ["created_at"])

    # Metrics table
    op.create_table(
        "metrics",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("post_plan_id", sa.Uuid(), nullable=False),
        sa.Column("external_video_id", sa.String(128), nullable=False),
        sa.Column("create_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("views", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("likes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("comments", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("shares", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("saves", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("follower_delta", sa.Integer(), nullable=True),
        sa.Column("retention", sa.Float(), nullable=True),
        sa.Column("view2_rate", sa.Float(), nullable=True),
        sa.Column("view6_rate", sa.Float(), nullable=True),
        sa.Column("save_rate", sa.Float(), nullable=True),
        sa.Column("share_rate", sa.Float(), nullable=True),
        sa.Column("reward_score", sa.Float(), nullable=True),
        sa.Column("collected_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["post_plan_id"], ["post_plans.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("external_video_id"),
    )
    op.create_index("ix_metrics_post_plan_id", "metrics", ["post_plan_id"])
    op.create_index("ix_metrics_collected_at", "metrics", ["collected_at"])

    # Arm stats table
    op.create_table(
        "arm_stats",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("arm_type", sa.String(20), nullable=False),
        sa.Column("arm_id", sa.String(64), nullable=False),
        sa.Column("pulls", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("impressions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("conversions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("reward_sum", sa.Float(), nullable=False, server_default="0"),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("arm_type", "arm_id", name="uq_arm_stats_type_id"),
    )
    op.create_index("ix_arm_stats_arm_type", "arm_stats", ["arm_type"])

    # Settings table
    op.create_table(
        "settings",
        sa.Column("key", sa.String(100), nullable=False),
        sa.Column("value_json", sa.JSON(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("key"),
    )

    # Run logs table
    op.create_table(
        "run_logs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("run_type", sa.String(50), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="OK"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("payload_excerpt", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_run_logs_type_started", "run_logs", ["run_type", "started_at"])


def downgrade() -> None:
    op.drop_table("run_logs")
    op.drop_table("settings")
    op.drop_table("arm_stats")
    op.drop_table("metrics")
    op.drop_table("post_plans")
    op.drop_table("variants")
    op.drop_table("recipes")
