"""Renderer adapters."""

from content_autopilot.adapters.renderer.base import RendererAdapter
from content_autopilot.adapters.renderer.stub import StubRenderer

__all__ = ["RendererAdapter", "StubRenderer"]
