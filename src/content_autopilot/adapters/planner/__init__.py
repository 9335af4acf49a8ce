"""Content planner adapters."""

from content_autopilot.adapters.planner.base import PlannerAdapter, TopUpResult
from content_autopilot.adapters.planner.stub import StubPlanner

__all__ = ["PlannerAdapter", "TopUpResult", "StubPlanner"]
