"""Stub renderer that writes a placeholder file."""

from pathlib import Path
from uuid import UUID

from content_autopilot.adapters.renderer.base import RendererAdapter
from content_autopilot.config import settings
from content_autopilot.db.models import PostPlanModel
from content_autopilot.db.session import SessionFactory, get_session_context
from content_autopilot.domain.enums import PlanStatus
from content_autopilot.logging import get_logger

logger = get_logger(__name__)

PLACEHOLDER_BYTES = b"\x00\x00\x00\x18ftypmp42"


class StubRenderer(RendererAdapter):
    def __init__(
        self,
        output_dir: str | Path | None = None,
        session_factory: SessionFactory = get_session_context,
    ) -> None:
        self.output_dir = Path(output_dir or settings.render_output_dir)
        self.session_factory = session_factory

    async def render(self, plan_id: UUID) -> str:
        with self.session_factory() as session:
            plan = session.get(PostPlanModel, plan_id)
            if plan is None:
                raise LookupError(f"Post plan not found: {plan_id}")

            self.output_dir.mkdir(parents=True, exist_ok=True)
            path = self.output_dir / f"{plan_id}.mp4"
            path.write_bytes(PLACEHOLDER_BYTES)

            plan.render_path = str(path)
            plan.status = str(PlanStatus.RENDERED)

        logger.info("stub_render_completed", plan_id=str(plan_id), path=str(path))
        return str(path)
