from typing import Any
from datetime import datetime, timezone
from pydantic import BaseModel

from core.errors import SceneCommandError


class CommandResponse(BaseModel):
    success: bool
    message: str | None = None
    error: str | None = None
    details: dict[str, Any] | None = None
    data: Any | None = None

    @classmethod
    def from_error(cls, exc: SceneCommandError, data: Any | None = None) -> "CommandResponse":
        """Build a failure response carrying the error's code and retryable flag."""
        return cls(success=False, error=exc.message, details=exc.to_dict(), data=data)


class SessionInfo(BaseModel):
    """Public view of an open session"""
    session_id: str
    mode: str  # "lightweight" or "full"
    target_ref: str
    created_at: datetime
    reused: bool = False

    def to_dict(self) -> dict[str, Any]:
        """
        Return a JSON-friendly dictionary including the session uptime in seconds.
        """
        now = datetime.now(timezone.utc)
        return {
            "session_id": self.session_id,
            "mode": self.mode,
            "target_ref": self.target_ref,
            "created_at": self.created_at.isoformat(),
            "uptime_s": round((now - self.created_at).total_seconds(), 3),
            "reused": self.reused,
        }
