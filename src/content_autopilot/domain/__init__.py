"""Domain types for the autopilot."""
