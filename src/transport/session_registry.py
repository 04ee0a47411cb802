"""Session registry: opaque session ids mapped to lightweight or full sessions."""
from __future__ import annotations

import asyncio
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from threading import RLock
from typing import Awaitable, Callable

from core.config import cfg
from core.errors import SessionNotFound
from models.models import SessionInfo

from .scene_handle import PlaywrightSceneHandle, SceneHandle
from .session_store import SessionIdentityStore

logger = logging.getLogger("scene-pilot")

HandleFactory = Callable[..., Awaitable[SceneHandle]]


class SessionMode(str, Enum):
    LIGHTWEIGHT = "lightweight"
    FULL = "full"


@dataclass
class LightweightSession:
    """Planning-only session; never touches a live scene."""
    id: str
    target_ref: str
    created_at: datetime

    @property
    def mode(self) -> SessionMode:
        return SessionMode.LIGHTWEIGHT


@dataclass
class FullSession:
    """Session that exclusively owns a live scene handle."""
    id: str
    target_ref: str
    created_at: datetime
    handle: SceneHandle

    @property
    def mode(self) -> SessionMode:
        return SessionMode.FULL


Session = LightweightSession | FullSession


@dataclass(frozen=True)
class SessionInitResult:
    session: Session
    reused: bool = False
    rediscovered: bool = False

    def info(self) -> SessionInfo:
        return session_info(self.session, reused=self.reused)


def session_info(session: Session, *, reused: bool = False) -> SessionInfo:
    return SessionInfo(
        session_id=session.id,
        mode=session.mode.value,
        target_ref=session.target_ref,
        created_at=session.created_at,
        reused=reused,
    )


def new_session_id() -> str:
    return f"session_{secrets.token_urlsafe(16)}"


async def _open_playwright_handle(target_ref: str, *, ready_timeout: float) -> SceneHandle:
    return await PlaywrightSceneHandle.open(target_ref, ready_timeout=ready_timeout)


class SessionRegistry:
    """Creates, reuses and closes sessions.

    ``init`` and ``close`` hold a lock per (target_ref, mode) so two callers
    cannot both open a live handle for the same target, while opening one
    scene never blocks work on another.
    """

    def __init__(
        self,
        handle_factory: HandleFactory | None = None,
        identity_store: SessionIdentityStore | None = None,
        ready_timeout: float | None = None,
    ):
        self._handle_factory = handle_factory or _open_playwright_handle
        self._identities = identity_store or SessionIdentityStore()
        self._ready_timeout = ready_timeout
        self._sessions: dict[str, Session] = {}
        self._locks: dict[tuple[str, SessionMode], asyncio.Lock] = {}

    @property
    def identities(self) -> SessionIdentityStore:
        return self._identities

    def _lock_for(self, target_ref: str, mode: SessionMode) -> asyncio.Lock:
        return self._locks.setdefault((target_ref, mode), asyncio.Lock())

    def _find_open(self, target_ref: str, mode: SessionMode) -> Session | None:
        for session in self._sessions.values():
            if session.target_ref != target_ref or session.mode != mode:
                continue
            if isinstance(session, FullSession) and session.handle.is_closed:
                continue
            return session
        return None

    async def init(self, target_ref: str, mode: SessionMode | str = SessionMode.FULL) -> SessionInitResult:
        """Return the open session for ``target_ref``/``mode`` or create one.

        FULL sessions acquire a live handle; SceneLoadTimeout propagates and
        leaves no record behind.
        """
        mode = SessionMode(mode)
        async with self._lock_for(target_ref, mode):
            existing = self._find_open(target_ref, mode)
            if existing is not None:
                logger.info("Reusing session %s for %s", existing.id, target_ref)
                return SessionInitResult(existing, reused=True)

            rediscovered = False
            session_id = None
            persisted = self._identities.get(target_ref, mode.value)
            if persisted and persisted.get("session_id") not in self._sessions:
                session_id = persisted["session_id"]
                rediscovered = True
            if not session_id:
                session_id = new_session_id()

            created_at = datetime.now(timezone.utc)
            session: Session
            if mode is SessionMode.FULL:
                timeout = self._ready_timeout if self._ready_timeout is not None else cfg.scene_ready_timeout
                handle = await self._handle_factory(target_ref, ready_timeout=timeout)
                handle.session_id = session_id
                session = FullSession(session_id, target_ref, created_at, handle)
            else:
                session = LightweightSession(session_id, target_ref, created_at)

            self._sessions[session_id] = session
            self._identities.put(target_ref, session_id, mode.value, created_at.isoformat())
            logger.info(
                "%s %s session %s for %s",
                "Rediscovered" if rediscovered else "Created", mode.value, session_id, target_ref,
            )
            return SessionInitResult(session, rediscovered=rediscovered)

    def get(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    async def close(self, session_id: str) -> bool:
        """Release and forget a session. Unknown ids are a no-op returning False."""
        session = self._sessions.get(session_id)
        if session is None:
            self._identities.remove(session_id)
            return False
        async with self._lock_for(session.target_ref, session.mode):
            if self._sessions.pop(session_id, None) is None:
                return False
            self._identities.remove(session_id)
            if isinstance(session, FullSession):
                await session.handle.close()
            logger.info("Closed session %s", session_id)
            return True

    def lookup_target(self, session_id: str) -> str | None:
        session = self._sessions.get(session_id)
        if session is not None:
            return session.target_ref
        return self._identities.lookup_target(session_id)

    def sessions(self) -> list[SessionInfo]:
        return [session_info(s) for s in self._sessions.values()]

    async def shutdown(self) -> int:
        """Release every live handle. Persisted identities are kept for rediscovery."""
        sessions = list(self._sessions.values())
        self._sessions.clear()
        released = 0
        for session in sessions:
            if isinstance(session, FullSession):
                try:
                    await session.handle.close()
                    released += 1
                except Exception:
                    logger.warning("Failed to release handle for %s", session.id, exc_info=True)
        if sessions:
            logger.info("Shut down %d sessions (%d live handles)", len(sessions), released)
        return released


_session_registry: SessionRegistry | None = None
_registry_lock = RLock()


def get_session_registry() -> SessionRegistry:
    """Get the process-wide session registry."""
    global _session_registry
    if _session_registry is None:
        with _registry_lock:
            if _session_registry is None:
                _session_registry = SessionRegistry()
    return _session_registry


def set_session_registry(registry: SessionRegistry | None) -> None:
    """Replace the process-wide registry (test seam)."""
    global _session_registry
    with _registry_lock:
        _session_registry = registry
