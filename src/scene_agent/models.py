"""Pydantic data models for the command orchestration pipeline."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, model_validator


class MutationKind(str, Enum):
    """Low-level calls the scene runtime accepts."""
    SET_PROPERTY = "set_property"
    SET_VARIABLE = "set_variable"
    EMIT_EVENT = "emit_event"


# Editor verbs as they appear in completion output, mapped to MutationKind.
MUTATION_ALIASES: dict[str, MutationKind] = {
    "set_property": MutationKind.SET_PROPERTY,
    "setobjectproperty": MutationKind.SET_PROPERTY,
    "set_object_property": MutationKind.SET_PROPERTY,
    "setproperty": MutationKind.SET_PROPERTY,
    "set_variable": MutationKind.SET_VARIABLE,
    "setvariable": MutationKind.SET_VARIABLE,
    "emit_event": MutationKind.EMIT_EVENT,
    "emitevent": MutationKind.EMIT_EVENT,
}


def resolve_mutation_kind(value: Any) -> MutationKind | None:
    if isinstance(value, MutationKind):
        return value
    if not isinstance(value, str):
        return None
    return MUTATION_ALIASES.get(value.strip().lower())


class MutationCall(BaseModel):
    """One call against the live scene."""
    kind: MutationKind
    target: str | None = None      # object, variable or event name
    property: str | None = None    # SET_PROPERTY only
    value: Any = None
    reasoning: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _accept_editor_shape(cls, data: Any) -> Any:
        """Accept ``{"action": "setObjectProperty", "object": ...}`` style payloads."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        raw_kind = data.get("kind", data.get("action"))
        kind = resolve_mutation_kind(raw_kind)
        if kind is not None:
            data["kind"] = kind
        data.pop("action", None)
        if data.get("target") is None:
            for key in ("object", "name", "variable", "event"):
                if data.get(key) is not None:
                    data["target"] = data[key]
                    break
        if kind is MutationKind.EMIT_EVENT and "value" not in data and "payload" in data:
            data["value"] = data["payload"]
        return data

    @model_validator(mode="after")
    def _require_fields(self) -> "MutationCall":
        if not self.target:
            raise ValueError(f"{self.kind.value} requires a target name")
        if self.kind == MutationKind.SET_PROPERTY and not self.property:
            raise ValueError("set_property requires a property name")
        return self

    def describe(self) -> str:
        """Render the call as a natural-language command."""
        if self.kind == MutationKind.SET_PROPERTY:
            prop = (self.property or "").lower()
            if prop == "position" and isinstance(self.value, dict):
                v = self.value
                return f"move {self.target} to ({v.get('x', 0)}, {v.get('y', 0)}, {v.get('z', 0)})"
            if prop == "rotation":
                return f"rotate {self.target}"
            if prop == "scale":
                return f"scale {self.target} by {self.value}"
            if prop == "visible":
                return f"{'show' if self.value else 'hide'} {self.target}"
            return f"set {self.target} {self.property} to {self.value}"
        if self.kind == MutationKind.SET_VARIABLE:
            return f"set {self.target} to {self.value}"
        return f"trigger {self.target}"


class Step(BaseModel):
    id: int
    action: str
    description: str = ""
    requires_vision: bool = False
    vision_query: str | None = None
    validation_criteria: str | None = None
    params: dict[str, Any] | None = None

    def direct_mutations(self) -> list[MutationCall]:
        """Mutations carried by the plan itself (``action`` is a mutation verb with params)."""
        kind = resolve_mutation_kind(self.action)
        if kind is None or not self.params:
            return []
        return [MutationCall.model_validate({**self.params, "kind": kind})]


class Plan(BaseModel):
    intent: str
    steps: list[Step] = Field(min_length=1)
    validation: str = ""
    considerations: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_step_ids(self) -> "Plan":
        ids = [step.id for step in self.steps]
        if len(ids) != len(set(ids)):
            raise ValueError(f"Plan step ids must be unique: {ids}")
        return self


class ObservationResult(BaseModel):
    observation: str = ""
    detected_objects: list[str] = Field(default_factory=list)
    recommended_mutations: list[MutationCall] = Field(default_factory=list)
    validation_points: list[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _accept_aliases(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "detected_objects" not in data and "objects_detected" in data:
            data["detected_objects"] = data.pop("objects_detected")
        if "recommended_mutations" not in data and "recommended_actions" in data:
            data["recommended_mutations"] = data.pop("recommended_actions")
        for key in ("detected_objects", "recommended_mutations", "validation_points"):
            if data.get(key) is None:
                data.pop(key, None)
        return data


class MutationOutcome(BaseModel):
    mutation: MutationCall
    success: bool
    error: str | None = None


class StepResult(BaseModel):
    step: Step
    observation: ObservationResult | None = None
    mutation_outcomes: list[MutationOutcome] = Field(default_factory=list)
    validation: ObservationResult | None = None
    success: bool = False
    error: str | None = None
    validation_error: str | None = None

    @property
    def successful_mutations(self) -> int:
        return sum(1 for o in self.mutation_outcomes if o.success)


class OrchestratorState(str, Enum):
    PLANNING = "planning"
    STEP_OBSERVE = "step_observe"
    STEP_EXECUTE = "step_execute"
    STEP_VALIDATE = "step_validate"
    PLANNED = "planned"          # lightweight sessions stop after planning
    COMPLETE = "complete"
    ABORTED = "aborted"


class ExecutionRecord(BaseModel):
    command: str
    context: dict[str, Any] = Field(default_factory=dict)
    knowledge_summary: str | None = None
    plan: Plan | None = None
    step_results: list[StepResult] = Field(default_factory=list)
    success: bool = False
    state: OrchestratorState = OrchestratorState.PLANNING
    error: str | None = None
    error_type: str | None = None
    session_id: str | None = None
    mode: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
