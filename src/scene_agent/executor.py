"""Execution stage: apply mutation calls to the live scene one at a time."""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from core.config import cfg
from core.errors import SceneOperationError, SessionExpired, TargetNotFound
from transport.scene_handle import SceneHandle

from .models import MutationCall, MutationKind, MutationOutcome

logger = logging.getLogger(__name__)

SETTABLE_PROPERTIES = frozenset({"position", "rotation", "scale", "visible"})

_FALSE_STRINGS = frozenset({"false", "0", "no", "off", "n", ""})
_TRUE_STRINGS = frozenset({"true", "1", "yes", "on", "y"})


def coerce_bool(value: Any, default: bool | None = None) -> bool | None:
    """Coerce common truthy/falsy spellings; None yields ``default``."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
        return True
    return bool(value)


def normalize_vector3(value: Any, *, fill: float = 0.0) -> dict[str, float]:
    """Accept {x,y,z}, [x,y,z] or "x,y,z" and return a float dict.

    Missing dict axes take ``fill``; lists and strings need exactly three numbers.
    """
    if isinstance(value, dict):
        try:
            return {
                axis: float(value[axis]) if value.get(axis) is not None else fill
                for axis in ("x", "y", "z")
            }
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Invalid vector components: {value!r}") from exc

    if isinstance(value, str):
        parts = [p.strip() for p in value.strip().strip("()[]").split(",")]
    elif isinstance(value, (list, tuple)):
        parts = list(value)
    else:
        raise ValueError(f"Expected a 3-component vector, got {value!r}")

    if len(parts) != 3:
        raise ValueError(f"Expected 3 components, got {len(parts)}: {value!r}")
    try:
        x, y, z = (float(p) for p in parts)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid vector components: {value!r}") from exc
    return {"x": x, "y": y, "z": z}


def coerce_scale(value: Any) -> dict[str, float]:
    if isinstance(value, bool):
        raise ValueError(f"Invalid scale: {value!r}")
    if isinstance(value, (int, float)):
        v = float(value)
        return {"x": v, "y": v, "z": v}
    if isinstance(value, str) and "," not in value:
        try:
            v = float(value.strip())
        except ValueError as exc:
            raise ValueError(f"Invalid scale: {value!r}") from exc
        return {"x": v, "y": v, "z": v}
    return normalize_vector3(value, fill=1.0)


def coerce_property_value(prop: str, value: Any) -> Any:
    """Normalize ``value`` for ``prop``; unknown properties raise ValueError."""
    if prop not in SETTABLE_PROPERTIES:
        raise ValueError(f"Cannot set property: {prop}")
    if prop == "scale":
        return coerce_scale(value)
    if prop == "visible":
        return coerce_bool(value, default=False)
    return normalize_vector3(value)


class ExecutionStage:
    """Runs a batch of MutationCalls sequentially against one SceneHandle.

    A failing call is recorded and the batch continues. SessionExpired is not
    a per-call failure and propagates to the caller.
    """

    def __init__(self, handle: SceneHandle, interval: float | None = None):
        self.handle = handle
        self.interval = cfg.mutation_interval if interval is None else interval

    async def _apply_one(self, mutation: MutationCall) -> None:
        target = mutation.target or ""
        if mutation.kind == MutationKind.SET_PROPERTY:
            prop = (mutation.property or "").strip().lower()
            value = coerce_property_value(prop, mutation.value)
            if not await self.handle.find_by_name(target):
                raise TargetNotFound(target)
            await self.handle.set_property(target, prop, value)
        elif mutation.kind == MutationKind.SET_VARIABLE:
            await self.handle.set_variable(target, mutation.value)
        elif mutation.kind == MutationKind.EMIT_EVENT:
            await self.handle.emit_event(target, mutation.value)
        else:
            raise ValueError(f"Unsupported mutation kind: {mutation.kind}")

    async def apply(self, mutations: list[MutationCall]) -> list[MutationOutcome]:
        outcomes: list[MutationOutcome] = []
        for index, mutation in enumerate(mutations):
            if index and self.interval > 0:
                await asyncio.sleep(self.interval)
            try:
                await self._apply_one(mutation)
            except SessionExpired:
                raise
            except (TargetNotFound, SceneOperationError, ValueError) as exc:
                message = getattr(exc, "message", None) or str(exc)
                logger.info("Mutation %s on %s failed: %s", mutation.kind.value, mutation.target, message)
                outcomes.append(MutationOutcome(mutation=mutation, success=False, error=message))
                continue
            logger.debug("Applied %s on %s", mutation.kind.value, mutation.target)
            outcomes.append(MutationOutcome(mutation=mutation, success=True))
        return outcomes
