"""Visual observation stage: screenshot + query -> ObservationResult."""
from __future__ import annotations

import logging

from pydantic import ValidationError

from core.config import cfg
from core.errors import MalformedObservationError

from .llm import CompletionService
from .models import MutationCall, ObservationResult

logger = logging.getLogger(__name__)

OBSERVATION_SYSTEM_PROMPT = """You are the visual observation stage of a 3D scene editing system.

Your role:
1. Analyze screenshots of 3D scenes
2. Identify objects, their properties, and current state
3. Determine what changes need to be made
4. Format low-level calls for the execution stage
5. Validate that changes were applied correctly

Respond with JSON:
{
  "observation": "What you see in the screenshot",
  "detected_objects": ["list of objects visible"],
  "recommended_mutations": [
    {
      "kind": "set_property|set_variable|emit_event",
      "target": "object, variable or event name",
      "property": "position|rotation|scale|visible (set_property only)",
      "value": "new value",
      "reasoning": "why this change"
    }
  ],
  "validation_points": ["Things to check after execution"]
}"""

SUGGESTION_QUERY = "What are some useful commands the user could try with this scene?"


class VisualObservationStage:
    def __init__(self, llm: CompletionService | None = None):
        self.llm = llm or CompletionService()

    async def observe(self, query: str, screenshot: str | None) -> ObservationResult:
        """Analyze ``screenshot`` (base64 PNG) against ``query``.

        The caller is responsible for capturing the screenshot.
        """
        if not screenshot:
            raise ValueError("observe() requires a screenshot")
        parsed = await self.llm.complete_vision(
            OBSERVATION_SYSTEM_PROMPT,
            screenshot,
            f"Query: {query}\n\nAnalyze this 3D scene and provide recommendations.",
            model=cfg.vision_model,
            temperature=cfg.vision_temperature,
        )
        if not isinstance(parsed, dict):
            raise MalformedObservationError("Observer did not return a JSON object", query=query)
        try:
            result = ObservationResult.model_validate(parsed)
        except ValidationError as exc:
            logger.warning("Rejected observation for %r: %s", query, exc.errors()[:3])
            raise MalformedObservationError(
                f"Observation failed schema validation: {exc.error_count()} error(s)", query=query,
            ) from exc
        logger.debug(
            "Observed %d object(s), %d recommended mutation(s)",
            len(result.detected_objects), len(result.recommended_mutations),
        )
        return result

    async def suggest(self, screenshot: str) -> list[tuple[str, MutationCall]]:
        """Suggest follow-up commands as (natural-language command, call) pairs."""
        result = await self.observe(SUGGESTION_QUERY, screenshot)
        return [(m.describe(), m) for m in result.recommended_mutations]
