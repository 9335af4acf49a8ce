"""Variant and archetype mutators."""

from content_autopilot.adapters.mutator.base import MutatorAdapter, RecipeTemplates
from content_autopilot.adapters.mutator.stub import StubMutator

__all__ = ["MutatorAdapter", "RecipeTemplates", "StubMutator"]
