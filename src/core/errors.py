"""Error taxonomy for command orchestration.

Every error raised by the knowledge, session, planning, observation and
execution layers derives from SceneCommandError so that public boundaries
can turn it into a structured response without string matching.
"""
from __future__ import annotations

from typing import Any


class SceneCommandError(Exception):
    """Base class for all orchestration errors."""

    code = "scene_command_error"
    retryable = False

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "retryable": self.retryable}
        payload.update(self.details)
        return payload


class SessionNotFound(SceneCommandError):
    code = "session_not_found"

    def __init__(self, session_id: str, message: str | None = None):
        super().__init__(message or f"Session not found: {session_id}", session_id=session_id)
        self.session_id = session_id


class SessionExpired(SessionNotFound):
    """The live scene behind a session went away (page closed, browser crashed)."""

    code = "session_expired"
    retryable = True

    def __init__(self, session_id: str, reason: str = "scene handle closed"):
        super().__init__(session_id, f"Session expired: {session_id} ({reason})")
        self.details["reason"] = reason


class SceneLoadTimeout(SceneCommandError):
    code = "scene_load_timeout"
    retryable = True

    def __init__(self, target_ref: str, timeout: float):
        super().__init__(
            f"Scene at {target_ref} did not become ready within {timeout:g}s",
            target_ref=target_ref,
            timeout=timeout,
        )


class TargetNotFound(SceneCommandError):
    code = "target_not_found"

    def __init__(self, name: str):
        super().__init__(f"Object not found: {name}", target=name)
        self.name = name


class SceneOperationError(SceneCommandError):
    """A runtime call against the live scene failed."""

    code = "scene_operation_error"


class BridgeTimeout(SceneOperationError):
    code = "bridge_timeout"
    retryable = True


class MalformedPlanError(SceneCommandError):
    code = "malformed_plan"


class MalformedObservationError(SceneCommandError):
    code = "malformed_observation"


class EmbeddingError(SceneCommandError):
    code = "embedding_error"
    retryable = True


class ServiceUnavailable(SceneCommandError):
    """The completion service could not be reached or returned an error status."""

    code = "service_unavailable"
    retryable = True
