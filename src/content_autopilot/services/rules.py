"""Policy and rules settings persisted in the database.

Rules are stored as a single JSON record under the ``rules`` key and merged
over the defaults on every read, so a partially stored document (or one written
by an older version) always yields a complete ``RulesSettings``.
"""

from typing import Any

from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from content_autopilot.db.models import SettingModel
from content_autopilot.logging import get_logger

logger = get_logger(__name__)

RULES_KEY = "rules"

# Upper bound for the exploration budget, including escalation widening
EXPLORATION_MAX = 0.6


class GuardrailsRules(BaseModel):
    """Text guardrails forwarded to the variant mutator."""

    max_lines: int = 2
    banned_words: list[str] = Field(
        default_factory=lambda: ["hope", "please", "let me know", "new track"]
    )
    banned_phrases: list[str] = Field(
        default_factory=lambda: ["hope you like", "let me know", "new track"]
    )


class ViralEngineRules(BaseModel):
    allowed_cta_types: list[str] = Field(
        default_factory=lambda: ["KEEP_SKIP", "COMMENT_VIBE", "FOLLOW_FULL", "PICK_AB"]
    )


class SpamGuardrails(BaseModel):
    """Self-imposed publishing limits."""

    pending_drafts_cap: int = 4
    daily_draft_upload_cap: int = 3
    min_gap_hours: float = 3.5
    window_jitter_minutes: int = 35


class RecoveryModeRules(BaseModel):
    """Reduced cadence after reach drops or spam signals."""

    enabled: bool = True
    views_drop_threshold: float = 0.6
    view2s_drop_threshold: float = 0.25
    spam_error_threshold: int = 1
    cadence_per_day: int = 2


class PromotionPolicy(BaseModel):
    min_impressions: int = 2000
    uplift: float = 0.15


class RetirementPolicy(BaseModel):
    max_underperform: int = 3


class DimensionToggles(BaseModel):
    recipe: bool = True
    variant: bool = True
    cta: bool = True


class OptimiserPolicy(BaseModel):
    """Bandit and autopilot policy."""

    exploration_budget: float = Field(default=0.3, ge=0.0, le=EXPLORATION_MAX)
    min_views_before_counting: int = 200
    min_pulls_before_promote: int = 3
    min_pulls_before_retire: int = 3
    prior_mean: float = 0.5
    prior_weight: float = Field(default=2.0, ge=1.0)
    autopilot_enabled: bool = False
    autopilot_interval_hours: float = 4.0
    autopilot_inspo_enabled: bool = False
    autopilot_inspo_days: int = 7
    plateau_days: int = 7
    test_dimensions: DimensionToggles = Field(default_factory=DimensionToggles)
    promotion: PromotionPolicy = Field(default_factory=PromotionPolicy)
    retirement: RetirementPolicy = Field(default_factory=RetirementPolicy)


class RulesSettings(BaseModel):
    """Complete rules document."""

    cadence_per_day: int = 2
    target_queue_size: int = 3
    post_time_windows: list[str] = Field(default_factory=lambda: ["09:00", "18:00"])
    target_duration_sec: float = 9.0
    guardrails: GuardrailsRules = Field(default_factory=GuardrailsRules)
    viral_engine: ViralEngineRules = Field(default_factory=ViralEngineRules)
    spam_guardrails: SpamGuardrails = Field(default_factory=SpamGuardrails)
    recovery_mode: RecoveryModeRules = Field(default_factory=RecoveryModeRules)
    optimiser_policy: OptimiserPolicy = Field(default_factory=OptimiserPolicy)
    caption_marker_enabled: bool = True
    caption_marker_prefix: str = "#mbp"
    metrics_match_window_minutes: int = 180

    @field_validator("post_time_windows")
    @classmethod
    def _validate_windows(cls, value: list[str]) -> list[str]:
        for window in value:
            for part in window.split("-"):
                hour, _, minute = part.partition(":")
                if not (hour.isdigit() and minute.isdigit()):
                    raise ValueError(f"Invalid post window: {window!r} (expected HH:MM)")
                if not (0 <= int(hour) <= 23 and 0 <= int(minute) <= 59):
                    raise ValueError(f"Invalid post window: {window!r}")
        return value


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def get_rules(session: Session) -> RulesSettings:
    """Load rules merged over defaults."""
    stored = session.get(SettingModel, RULES_KEY)
    if not stored or not stored.value_json:
        return RulesSettings()

    merged = _deep_merge(RulesSettings().model_dump(), stored.value_json)
    return RulesSettings.model_validate(merged)


def save_rules(session: Session, rules: RulesSettings) -> RulesSettings:
    """Persist a complete rules document."""
    row = session.get(SettingModel, RULES_KEY)
    payload = rules.model_dump()
    if row:
        row.value_json = payload
    else:
        session.add(SettingModel(key=RULES_KEY, value_json=payload))
    session.flush()
    return rules


def update_exploration_budget(session: Session, delta: float) -> tuple[float, float]:
    """Widen (or narrow) the stored exploration budget, capped to [0, EXPLORATION_MAX].

    Re-reads the stored rules instead of trusting the cycle's copy so a budget
    edited since the cycle started is not overwritten.

    Returns:
        (previous_budget, new_budget)
    """
    rules = get_rules(session)
    current = rules.optimiser_policy.exploration_budget
    new_budget = round(min(EXPLORATION_MAX, max(0.0, current + delta)), 4)
    if new_budget != current:
        rules.optimiser_policy.exploration_budget = new_budget
        save_rules(session, rules)
        logger.info(
            "exploration_budget_updated",
            previous=current,
            budget=new_budget,
        )
    return current, new_budget
