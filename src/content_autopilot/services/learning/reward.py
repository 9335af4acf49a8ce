"""Reward score calculation for video performance evaluation.

The reward score blends a retention proxy with short-window engagement
signals into a single normalized score used by the bandit optimizer.

Formula:
    reward = 0.5 * retention + 0.2 * view_2s_rate + 0.2 * view_6s_rate
             + 0.05 * save_rate + 0.05 * share_rate

Where:
    - retention: average watch time / target duration (0 if duration <= 0)
    - view_2s_rate / view_6s_rate: share of viewers still watching at 2s / 6s
    - save_rate / share_rate: saves / views and shares / views

Each term is clamped to [0, 1] before weighting so a single malformed counter
cannot dominate the score. Platforms report some of these signals as ratios
and others as raw counts; ``to_rate`` accepts either.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

# Component weights (must sum to 1.0)
WEIGHT_RETENTION = 0.5
WEIGHT_VIEW_2S = 0.2
WEIGHT_VIEW_6S = 0.2
WEIGHT_SAVE = 0.05
WEIGHT_SHARE = 0.05


def clamp01(value: float) -> float:
    """Clamp to [0, 1]; NaN maps to 0."""
    if value != value:  # NaN
        return 0.0
    return min(1.0, max(0.0, value))


def to_rate(value: float | int | None, views: float | int | None) -> float:
    """Normalize a signal to a rate.

    Values already in [0, 1] are treated as ratios and passed through
    unchanged; anything else is a raw count and is divided by views.
    """
    if value is None:
        return 0.0
    if 0 <= value <= 1:
        return float(value)
    if not views or views <= 0:
        return 0.0
    return value / views


@dataclass
class RawVideoMetrics:
    """Raw per-video counters as returned by the platform."""

    video_id: str
    views: int = 0
    likes: int = 0
    comments: int = 0
    shares: int = 0
    saves: int = 0
    avg_watch_time_sec: float | None = None
    view_2s: float | None = None  # ratio or count
    view_6s: float | None = None  # ratio or count
    follower_delta: int | None = None
    duration_sec: float | None = None
    create_time: datetime | None = None
    raw_data: dict[str, Any] | None = None


@dataclass
class RewardScore:
    """Computed reward score with component breakdown."""

    total: float
    retention: float
    view2_rate: float
    view6_rate: float
    save_rate: float
    share_rate: float

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "total": self.total,
            "components": {
                "retention": self.retention,
                "view2_rate": self.view2_rate,
                "view6_rate": self.view6_rate,
                "save_rate": self.save_rate,
                "share_rate": self.share_rate,
            },
        }


def retention_proxy(avg_watch_time_sec: float | None, target_duration_sec: float | None) -> float:
    """Average watch time over target duration, unclamped."""
    if not target_duration_sec or target_duration_sec <= 0:
        return 0.0
    return (avg_watch_time_sec or 0.0) / target_duration_sec


def compute_reward(
    retention: float,
    view2_rate: float,
    view6_rate: float,
    save_rate: float,
    share_rate: float,
) -> float:
    """Weighted reward from already-normalized components."""
    total = (
        WEIGHT_RETENTION * clamp01(retention)
        + WEIGHT_VIEW_2S * clamp01(view2_rate)
        + WEIGHT_VIEW_6S * clamp01(view6_rate)
        + WEIGHT_SAVE * clamp01(save_rate)
        + WEIGHT_SHARE * clamp01(share_rate)
    )
    return clamp01(total)


def score_video(metrics: RawVideoMetrics, target_duration_sec: float | None) -> RewardScore:
    """Score one video.

    Args:
        metrics: Raw platform counters
        target_duration_sec: Intended duration of the post (plan or rules default)

    Returns:
        RewardScore with the intermediate rates kept for audit
    """
    views = metrics.views
    retention = retention_proxy(metrics.avg_watch_time_sec, target_duration_sec)
    view2_rate = to_rate(metrics.view_2s, views)
    view6_rate = to_rate(metrics.view_6s, views)
    save_rate = to_rate(metrics.saves, views)
    share_rate = to_rate(metrics.shares, views)

    total = compute_reward(retention, view2_rate, view6_rate, save_rate, share_rate)

    return RewardScore(
        total=round(total, 4),
        retention=round(retention, 4),
        view2_rate=round(view2_rate, 4),
        view6_rate=round(view6_rate, 4),
        save_rate=round(save_rate, 4),
        share_rate=round(share_rate, 4),
    )
