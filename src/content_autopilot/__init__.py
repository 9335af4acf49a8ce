"""Content Autopilot - closed-loop publishing queue and recipe optimizer."""

__version__ = "0.1.0"
