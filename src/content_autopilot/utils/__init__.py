"""Shared utilities."""

from content_autopilot.utils.async_utils import run_async
from content_autopilot.utils.timeutils import ensure_utc, hours_since, utcnow

__all__ = ["run_async", "ensure_utc", "hours_since", "utcnow"]
