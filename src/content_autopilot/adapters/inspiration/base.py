"""Base interface for inspiration seeders."""

from abc import ABC, abstractmethod


class InspirationSeeder(ABC):
    """Refreshes the pool of hook ideas from external inspiration sources."""

    @abstractmethod
    async def reseed(self) -> int:
        """Import new inspiration.

        Returns:
            Number of items seeded
        """
        ...
