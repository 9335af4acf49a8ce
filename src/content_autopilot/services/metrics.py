"""Metrics refresh: pull platform counters back into the learning loop.

A refresh lists the account's recent videos, matches each one to a plan that
is waiting for feedback (UPLOADED_DRAFT or POSTED), scores it, upserts the
metric row, credits the plan's arms and moves the plan to METRICS_FETCHED.
Once a plan has left the waiting states it is never matched again, so its
arms are credited at most once per refresh.

Matching order:
1. Caption marker (``#mbp`` followed by an alphanumeric token) when enabled
2. Otherwise the best candidate by caption token overlap, then duration
   closeness, then time distance, among plans scheduled within the match
   window of the video's create time and within 3 seconds of its duration
"""

import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from content_autopilot.adapters.publisher.base import PlatformVideo, PublisherAdapter
from content_autopilot.adapters.publisher.errors import PublisherAuthError, UploadError
from content_autopilot.db.models import MetricModel, PostPlanModel
from content_autopilot.db.session import SessionFactory, get_session_context
from content_autopilot.domain.enums import PlanStatus, RunStatus, RunType
from content_autopilot.logging import get_logger
from content_autopilot.services.learning.optimizer import record_pull
from content_autopilot.services.learning.reward import RawVideoMetrics, RewardScore, score_video
from content_autopilot.services.rules import RulesSettings, get_rules
from content_autopilot.services.run_log import log_run_event
from content_autopilot.utils.timeutils import ensure_utc, utcnow

logger = get_logger(__name__)

AWAITING_METRICS_STATUSES = (PlanStatus.UPLOADED_DRAFT, PlanStatus.POSTED)
MAX_DURATION_DIFF_SEC = 3.0
MIN_TOKEN_LENGTH = 3


class MatchablePlan(Protocol):
    id: UUID
    caption: str
    scheduled_for: datetime
    target_duration_sec: float | None


@dataclass
class VideoMatch:
    plan_id: UUID
    video_id: str
    caption: str
    method: str  # marker | heuristic


@dataclass
class RefreshResult:
    matched: int = 0
    results: list[dict[str, Any]] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"matched": self.matched, "results": self.results, "errors": self.errors}


def find_marker(caption: str, prefix: str) -> str | None:
    match = re.search(re.escape(prefix) + r"[a-zA-Z0-9]+", caption or "")
    return match.group(0) if match else None


def strip_marker(caption: str, prefix: str) -> str:
    marker = find_marker(caption, prefix)
    return caption.replace(marker, "").strip() if marker else caption


def _tokens(text: str) -> list[str]:
    cleaned = re.sub(r"[^a-z0-9\s]", "", (text or "").lower())
    return [token for token in cleaned.split() if len(token) >= MIN_TOKEN_LENGTH]


def token_score(caption: str, plan_caption: str) -> int:
    """Number of plan-caption tokens that also appear in the video caption."""
    video_tokens = set(_tokens(caption))
    return sum(1 for token in _tokens(plan_caption) if token in video_tokens)


def match_videos_to_plans(
    videos: Sequence[PlatformVideo], plans: Sequence[MatchablePlan], rules: RulesSettings
) -> list[VideoMatch]:
    """Pair platform videos with the plans they were published from.

    Each plan is matched at most once.
    """
    prefix = rules.caption_marker_prefix
    window_sec = rules.metrics_match_window_minutes * 60

    by_marker: dict[str, MatchablePlan] = {}
    if rules.caption_marker_enabled:
        for plan in plans:
            marker = find_marker(plan.caption, prefix)
            if marker:
                by_marker[marker] = plan

    claimed: set[UUID] = set()
    matches: list[VideoMatch] = []

    for video in videos:
        if not video.video_id:
            continue

        if rules.caption_marker_enabled:
            marker = find_marker(video.caption, prefix)
            plan = by_marker.get(marker) if marker else None
            if plan is not None and plan.id not in claimed:
                claimed.add(plan.id)
                matches.append(VideoMatch(plan.id, video.video_id, video.caption, "marker"))
                continue

        created = ensure_utc(video.create_time)
        candidates = []
        for plan in plans:
            if plan.id in claimed:
                continue
            scheduled = ensure_utc(plan.scheduled_for)
            time_diff = (
                abs((created - scheduled).total_seconds()) if created and scheduled else None
            )
            score = token_score(video.caption, strip_marker(plan.caption, prefix))
            duration_diff = (
                abs(video.duration_sec - plan.target_duration_sec)
                if video.duration_sec and plan.target_duration_sec
                else None
            )

            if time_diff is None:
                if score <= 0:
                    continue
            elif time_diff > window_sec:
                continue
            if duration_diff is not None and duration_diff > MAX_DURATION_DIFF_SEC:
                continue
            candidates.append((plan, score, duration_diff, time_diff))

        if not candidates:
            continue

        candidates.sort(
            key=lambda c: (
                -c[1],
                c[2] if c[2] is not None else float("inf"),
                c[3] if c[3] is not None else float("inf"),
            )
        )
        best = candidates[0][0]
        claimed.add(best.id)
        matches.append(VideoMatch(best.id, video.video_id, video.caption, "heuristic"))

    return matches


def upsert_metric(
    session: Session, plan_id: UUID, raw: RawVideoMetrics, score: RewardScore
) -> MetricModel:
    """Create or update the metric row for a video (keyed by external video id)."""
    metric = session.execute(
        select(MetricModel).where(MetricModel.external_video_id == raw.video_id)
    ).scalar_one_or_none()
    if metric is None:
        metric = MetricModel(external_video_id=raw.video_id)
        session.add(metric)

    metric.post_plan_id = plan_id
    metric.create_time = raw.create_time or metric.create_time or utcnow()
    metric.views = raw.views
    metric.likes = raw.likes
    metric.comments = raw.comments
    metric.shares = raw.shares
    metric.saves = raw.saves
    metric.follower_delta = raw.follower_delta
    metric.retention = score.retention
    metric.view2_rate = score.view2_rate
    metric.view6_rate = score.view6_rate
    metric.save_rate = score.save_rate
    metric.share_rate = score.share_rate
    metric.reward_score = score.total
    metric.collected_at = utcnow()
    session.flush()
    return metric


class MetricsRefresher:
    """Fetches platform metrics for plans awaiting feedback."""

    def __init__(
        self,
        publisher: PublisherAdapter,
        session_factory: SessionFactory = get_session_context,
        max_count: int = 20,
    ) -> None:
        self.publisher = publisher
        self.session_factory = session_factory
        self.max_count = max_count

    async def refresh(self) -> RefreshResult:
        """Run one refresh.

        Returns:
            RefreshResult listing the plan/video pairs that were processed
        """
        result = RefreshResult()
        try:
            videos = await self.publisher.query_video_list(self.max_count)
        except PublisherAuthError as e:
            logger.warning("metrics_refresh_skipped", reason=str(e))
            return result
        except UploadError as e:
            logger.warning("video_list_failed", error=str(e))
            result.errors.append(str(e))
            return result

        with self.session_factory() as session:
            rules = get_rules(session)
            plans = list(
                session.execute(
                    select(PostPlanModel).where(
                        PostPlanModel.status.in_([str(s) for s in AWAITING_METRICS_STATUSES])
                    )
                ).scalars()
            )
            matches = match_videos_to_plans(videos, plans, rules)
            targets = {
                plan.id: plan.target_duration_sec or rules.target_duration_sec for plan in plans
            }

        min_views = rules.optimiser_policy.min_views_before_counting

        for match in matches:
            try:
                rows = await self.publisher.query_video_metrics([match.video_id])
            except UploadError as e:
                logger.warning("metrics_query_failed", video_id=match.video_id, error=str(e))
                result.errors.append(f"{match.video_id}: {e}")
                continue
            if not rows:
                continue

            raw = rows[0]
            score = score_video(raw, targets.get(match.plan_id))
            with self.session_factory() as session:
                upsert_metric(session, match.plan_id, raw, score)
                record_pull(
                    session,
                    match.plan_id,
                    impressions=raw.views,
                    conversions=max(0, raw.follower_delta or 0),
                    reward=score.total,
                    min_views=min_views,
                )
                plan = session.get(PostPlanModel, match.plan_id)
                if plan is not None:
                    plan.status = str(PlanStatus.METRICS_FETCHED)

            result.results.append(
                {
                    "plan_id": str(match.plan_id),
                    "video_id": match.video_id,
                    "method": match.method,
                    "reward": score.total,
                }
            )

        result.matched = len(result.results)
        with self.session_factory() as session:
            log_run_event(
                session,
                RunType.METRICS_REFRESH,
                status=RunStatus.WARN if result.errors else RunStatus.OK,
                payload_excerpt=f"videos={len(videos)},matched={result.matched}",
            )
        logger.info("metrics_refreshed", videos=len(videos), matched=result.matched)
        return result
