"""Planning stage: natural-language command -> structured multi-step Plan."""
from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import ValidationError

from core.config import cfg
from core.errors import MalformedPlanError

from .llm import CompletionService
from .models import Plan

logger = logging.getLogger(__name__)

PLANNING_SYSTEM_PROMPT = """You are the planning stage of a 3D scene editing system.

Your role:
1. Understand user intent and break it down into actionable steps
2. Consider the GUI context and knowledge base context provided
3. Identify which steps need a screenshot of the scene to decide what to change
4. Keep the steps in the order they must run

Available operations:
- set_property: position, rotation, scale, visible
- set_variable: color, material properties, custom variables
- emit_event: trigger animations, interactions

Respond with JSON:
{
  "intent": "clear summary of what user wants",
  "steps": [
    {
      "id": 1,
      "action": "brief description of step, or an operation name when params are given",
      "description": "details",
      "requires_vision": true,
      "vision_query": "if requires_vision, what to look for",
      "validation_criteria": "how to verify success",
      "params": {"target": "object name", "property": "position", "value": {"x": 0, "y": 1, "z": 0}}
    }
  ],
  "validation": "overall success criteria",
  "considerations": ["things to watch for"]
}

Only include "params" when the step is a single operation whose target and value are already known."""


def _section(values: dict[str, Any] | None) -> dict[str, Any]:
    return values if isinstance(values, dict) and values else {}


def describe_context(context: dict[str, Any] | None) -> str:
    """Render the structured GUI context as short human-readable lines."""
    context = context or {}
    parts: list[str] = []

    if m := _section(context.get("material")):
        parts.append(
            f"Material: {m.get('type') or 'default'} (transparency: {m.get('transparency') or 0}, "
            f"roughness: {m.get('roughness') or 0.5}, color: {m.get('color') or 'default'})"
        )
    if o := _section(context.get("object")):
        parts.append(
            f"Object: {o.get('type') or 'default'} "
            f"(size: {o.get('width') or 'auto'}x{o.get('height') or 'auto'}x{o.get('depth') or 'auto'})"
        )
    if t := _section(context.get("text")):
        parts.append(
            f"Text: \"{t.get('content') or ''}\" (font: {t.get('font') or 'default'}, size: {t.get('size') or 'default'})"
        )
    if i := _section(context.get("interaction")):
        parts.append(f"Interaction: {i.get('type') or 'none'} -> {i.get('action') or 'none'}")
    if a := _section(context.get("animation")):
        parts.append(
            f"Animation: {a.get('type') or 'none'} (duration: {a.get('duration') or 0}s, "
            f"easing: {a.get('easing') or 'linear'})"
        )

    if not parts:
        return "No GUI context provided"
    return "\n".join(parts)


def build_planning_prompt(command: str, context: dict[str, Any] | None, knowledge_summary: str) -> str:
    return (
        f"Knowledge base context:\n{knowledge_summary}\n\n"
        f"GUI context:\n{describe_context(context)}\n\n"
        f"GUI context (raw):\n{json.dumps(context or {}, indent=2, default=str)}\n\n"
        f"Command: \"{command}\""
    )


class PlanningStage:
    def __init__(self, llm: CompletionService | None = None):
        self.llm = llm or CompletionService()

    async def plan(self, command: str, context: dict[str, Any] | None, knowledge_summary: str) -> Plan:
        """One completion call; anything that is not a valid Plan raises MalformedPlanError."""
        prompt = build_planning_prompt(command, context, knowledge_summary)
        parsed = await self.llm.complete_json(
            PLANNING_SYSTEM_PROMPT,
            prompt,
            model=cfg.planning_model,
            temperature=cfg.planning_temperature,
        )
        if not isinstance(parsed, dict):
            raise MalformedPlanError("Planner did not return a JSON object", command=command)
        try:
            plan = Plan.model_validate(parsed)
        except ValidationError as exc:
            logger.warning("Rejected plan for %r: %s", command, exc.errors()[:3])
            raise MalformedPlanError(f"Plan failed schema validation: {exc.error_count()} error(s)",
                                     command=command) from exc
        logger.info("Planned %d step(s): %s", len(plan.steps), plan.intent)
        return plan
