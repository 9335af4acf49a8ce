"""Tests for reward scoring."""

import pytest

from content_autopilot.services.learning.reward import (
    RawVideoMetrics,
    clamp01,
    compute_reward,
    score_video,
    to_rate,
)


def test_to_rate_passes_ratios_through() -> None:
    assert to_rate(0.5, 1000) == 0.5
    assert to_rate(0, 1000) == 0.0
    assert to_rate(1, 1000) == 1.0


def test_to_rate_divides_counts_by_views() -> None:
    assert to_rate(50, 1000) == pytest.approx(0.05)


def test_to_rate_without_views_is_zero() -> None:
    assert to_rate(50, 0) == 0.0
    assert to_rate(50, None) == 0.0
    assert to_rate(None, 1000) == 0.0


def test_clamp01() -> None:
    assert clamp01(-0.2) == 0.0
    assert clamp01(1.7) == 1.0
    assert clamp01(0.3) == 0.3
    assert clamp01(float("nan")) == 0.0


def test_compute_reward_weights() -> None:
    assert compute_reward(1, 1, 1, 1, 1) == pytest.approx(1.0)
    assert compute_reward(1, 0, 0, 0, 0) == pytest.approx(0.5)
    assert compute_reward(0, 1, 1, 0, 0) == pytest.approx(0.4)


def test_compute_reward_clamps_each_term() -> None:
    # An inflated retention cannot push the score past its weight
    assert compute_reward(5.0, 0, 0, 0, 0) == pytest.approx(0.5)


def test_score_video_zero_views_and_duration() -> None:
    score = score_video(RawVideoMetrics(video_id="v1", views=0), target_duration_sec=0)

    assert score.total == 0.0
    assert score.retention == 0.0


def test_score_video_mixed_ratios_and_counts() -> None:
    metrics = RawVideoMetrics(
        video_id="v1",
        views=1000,
        saves=20,
        shares=10,
        avg_watch_time_sec=4.5,
        view_2s=0.8,
        view_6s=400,
    )

    score = score_video(metrics, target_duration_sec=9.0)

    assert score.retention == pytest.approx(0.5)
    assert score.view2_rate == pytest.approx(0.8)
    assert score.view6_rate == pytest.approx(0.4)
    assert score.save_rate == pytest.approx(0.02)
    assert score.share_rate == pytest.approx(0.01)
    expected = 0.5 * 0.5 + 0.2 * 0.8 + 0.2 * 0.4 + 0.05 * 0.02 + 0.05 * 0.01
    assert score.total == pytest.approx(expected, abs=1e-4)


@pytest.mark.parametrize(
    "views,watch,v2,v6,saves,shares",
    [
        (10, 100.0, 5000, 5000, 5000, 5000),
        (1, 0.0, 0.99, 1, 0, 0),
        (100000, 30.0, 0.2, 0.1, 3, 1),
    ],
)
def test_score_video_stays_in_unit_interval(views, watch, v2, v6, saves, shares) -> None:
    metrics = RawVideoMetrics(
        video_id="v",
        views=views,
        saves=saves,
        shares=shares,
        avg_watch_time_sec=watch,
        view_2s=v2,
        view_6s=v6,
    )

    score = score_video(metrics, target_duration_sec=9.0)

    assert 0.0 <= score.total <= 1.0
