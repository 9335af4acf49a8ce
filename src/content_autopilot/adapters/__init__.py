"""Adapters for external collaborators."""

from content_autopilot.adapters.inspiration.base import InspirationSeeder
from content_autopilot.adapters.mutator.base import MutatorAdapter
from content_autopilot.adapters.planner.base import PlannerAdapter
from content_autopilot.adapters.publisher.base import PublisherAdapter
from content_autopilot.adapters.renderer.base import RendererAdapter

__all__ = [
    "InspirationSeeder",
    "MutatorAdapter",
    "PlannerAdapter",
    "PublisherAdapter",
    "RendererAdapter",
]
