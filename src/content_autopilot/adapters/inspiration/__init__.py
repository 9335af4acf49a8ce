"""Inspiration seeders."""

from content_autopilot.adapters.inspiration.base import InspirationSeeder
from content_autopilot.adapters.inspiration.stub import StubInspirationSeeder

__all__ = ["InspirationSeeder", "StubInspirationSeeder"]
