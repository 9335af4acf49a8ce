"""Stub mutator that recombines existing templates."""

import random
from uuid import UUID

from content_autopilot.adapters.mutator.base import MutatorAdapter, RecipeTemplates
from content_autopilot.db.models import RecipeModel, VariantModel
from content_autopilot.db.session import SessionFactory, get_session_context
from content_autopilot.domain.enums import VariantStatus
from content_autopilot.logging import get_logger
from content_autopilot.services.rules import GuardrailsRules

logger = get_logger(__name__)

ARCHETYPE_BEAT1 = ["Wait for the drop", "This one hits different", "Nobody expected this"]
ARCHETYPE_BEAT2 = ["Keep or skip?", "Play it again", "Which part got you?"]


def passes_guardrails(text: str, guardrails: GuardrailsRules) -> bool:
    lowered = text.lower()
    if len(text.splitlines()) > guardrails.max_lines:
        return False
    if any(phrase.lower() in lowered for phrase in guardrails.banned_phrases):
        return False
    words = set(lowered.replace(",", " ").replace(".", " ").split())
    return not any(word.lower() in words for word in guardrails.banned_words)


class StubMutator(MutatorAdapter):
    """Shuffles a recipe's own templates into new variants."""

    def __init__(self, session_factory: SessionFactory = get_session_context) -> None:
        self.session_factory = session_factory

    async def mutate(
        self,
        recipe_id: UUID,
        templates: RecipeTemplates,
        allowed_intents: list[str],
        guardrails: GuardrailsRules,
    ) -> list[UUID]:
        beat1 = [t for t in templates.beat1_templates if passes_guardrails(t, guardrails)]
        beat2 = [t for t in templates.beat2_templates if passes_guardrails(t, guardrails)]
        if not beat1:
            logger.warning("stub_mutator_no_templates", recipe_id=str(recipe_id))
            return []

        with self.session_factory() as session:
            variant = VariantModel(
                recipe_id=recipe_id,
                beat1=random.choice(beat1),
                beat2=random.choice(beat2) if beat2 else "",
                cta_intent=random.choice(allowed_intents) if allowed_intents else None,
                status=str(VariantStatus.TESTING),
            )
            session.add(variant)
            session.flush()
            variant_id = variant.id

        logger.info("stub_variant_created", recipe_id=str(recipe_id), variant_id=str(variant_id))
        return [variant_id]

    async def create_archetype(
        self,
        allowed_intents: list[str],
        guardrails: GuardrailsRules,
        existing_names: list[str],
    ) -> UUID | None:
        taken = {name.lower() for name in existing_names}
        index = 1
        while f"archetype {index}" in taken:
            index += 1
        name = f"Archetype {index}"

        with self.session_factory() as session:
            recipe = RecipeModel(
                name=name,
                enabled=True,
                beat1_templates=[t for t in ARCHETYPE_BEAT1 if passes_guardrails(t, guardrails)],
                beat2_templates=[t for t in ARCHETYPE_BEAT2 if passes_guardrails(t, guardrails)],
                source="archetype",
            )
            session.add(recipe)
            session.flush()
            recipe_id = recipe.id

        logger.info("stub_archetype_created", recipe_id=str(recipe_id), name=name)
        return recipe_id
