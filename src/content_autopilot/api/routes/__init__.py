"""API route modules."""

from content_autopilot.api.routes import health, optimizer, plans, scheduler, system

__all__ = ["health", "optimizer", "plans", "scheduler", "system"]
