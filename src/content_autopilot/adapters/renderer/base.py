"""Base interface for renderers."""

from abc import ABC, abstractmethod
from uuid import UUID


class RendererAdapter(ABC):
    """Turns a PLANNED post plan into a video file.

    On success the implementation sets the plan to RENDERED and records its
    render path. Failures are raised; the caller marks the plan FAILED.
    """

    @abstractmethod
    async def render(self, plan_id: UUID) -> str:
        """Render a plan.

        Args:
            plan_id: The post plan to render

        Returns:
            Path of the rendered file
        """
        ...
