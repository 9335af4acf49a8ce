"""Base interface for variant and archetype mutators."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from uuid import UUID

from content_autopilot.services.rules import GuardrailsRules


@dataclass
class RecipeTemplates:
    """Hook templates of the recipe being mutated."""

    name: str
    beat1_templates: list[str] = field(default_factory=list)
    beat2_templates: list[str] = field(default_factory=list)


class MutatorAdapter(ABC):
    """Generates new content entities.

    The mutation engine only decides when to call these; how the new text is
    written (templates, an LLM, a human queue) is up to the implementation.
    """

    @abstractmethod
    async def mutate(
        self,
        recipe_id: UUID,
        templates: RecipeTemplates,
        allowed_intents: list[str],
        guardrails: GuardrailsRules,
    ) -> list[UUID]:
        """Create new ``testing`` variants of a recipe.

        Returns:
            IDs of the created variants
        """
        ...

    @abstractmethod
    async def create_archetype(
        self,
        allowed_intents: list[str],
        guardrails: GuardrailsRules,
        existing_names: list[str],
    ) -> UUID | None:
        """Create a brand-new recipe whose name is not in ``existing_names``.

        Returns:
            ID of the created recipe, or None if nothing was created
        """
        ...
