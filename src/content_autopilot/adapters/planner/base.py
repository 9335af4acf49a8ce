"""Base interface for content planners."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID


@dataclass
class TopUpResult:
    """Plans created by a queue top-up."""

    created_ids: list[UUID] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "created_ids": [str(plan_id) for plan_id in self.created_ids],
            "warnings": self.warnings,
        }


class PlannerAdapter(ABC):
    """Creates new post plans.

    The selection of clips, snippets and hooks is owned by the planner; the
    autopilot only decides how many plans are needed and when they go out.
    """

    @abstractmethod
    async def top_up(self, count: int, scheduled_for: datetime | None = None) -> TopUpResult:
        """Create up to ``count`` plans in PLANNED status.

        Args:
            count: Number of plans requested
            scheduled_for: Target post time for the new plans

        Returns:
            TopUpResult with the created plan IDs and any planner warnings
        """
        ...
