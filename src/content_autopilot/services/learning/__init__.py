"""Learning loop: reward scoring, bandit statistics and mutation triggers."""

from content_autopilot.services.learning.optimizer import (
    ArmSummary,
    PromotionResult,
    confidence,
    list_arms,
    posterior_mean,
    promote_retire_arms,
    record_pull,
)
from content_autopilot.services.learning.reward import (
    RawVideoMetrics,
    RewardScore,
    clamp01,
    score_video,
    to_rate,
)

__all__ = [
    "ArmSummary",
    "PromotionResult",
    "RawVideoMetrics",
    "RewardScore",
    "clamp01",
    "confidence",
    "list_arms",
    "posterior_mean",
    "promote_retire_arms",
    "record_pull",
    "score_video",
    "to_rate",
]
