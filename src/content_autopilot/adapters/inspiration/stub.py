"""Stub inspiration seeder."""

from content_autopilot.adapters.inspiration.base import InspirationSeeder
from content_autopilot.logging import get_logger

logger = get_logger(__name__)


class StubInspirationSeeder(InspirationSeeder):
    """Seeds nothing; counts how often it was asked."""

    def __init__(self) -> None:
        self.calls = 0

    async def reseed(self) -> int:
        self.calls += 1
        logger.info("stub_inspiration_reseed", calls=self.calls)
        return 0
