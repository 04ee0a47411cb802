"""Public boundary for running commands against sessions.

Everything returned from here is a CommandResponse; typed errors become
structured failures and a session that expires mid-command is re-initialised
and retried exactly once.
"""
from __future__ import annotations

import logging
from typing import Any

from core.errors import SceneCommandError, SessionExpired, SessionNotFound
from models.models import CommandResponse
from scene_agent.models import ExecutionRecord, OrchestratorState
from scene_agent.orchestrator import Orchestrator
from transport.session_registry import Session, SessionMode, SessionRegistry

logger = logging.getLogger(__name__)

_SESSION_EXPIRED = SessionExpired.__name__


class CommandService:
    def __init__(self, registry: SessionRegistry, orchestrator: Orchestrator):
        self.registry = registry
        self.orchestrator = orchestrator

    # ── Session lifecycle ────────────────────────────────────────────

    async def open_session(self, target_ref: str, mode: SessionMode | str = SessionMode.FULL) -> CommandResponse:
        if not target_ref:
            return CommandResponse(success=False, error="target_ref is required")
        try:
            result = await self.registry.init(target_ref, mode)
        except SceneCommandError as exc:
            return CommandResponse.from_error(exc)
        except Exception as exc:
            logger.exception("Failed to open session for %s", target_ref)
            return CommandResponse(success=False, error=f"Python error opening session: {exc!s}")
        info = result.info()
        verb = "Reused" if result.reused else ("Rediscovered" if result.rediscovered else "Created")
        data = info.to_dict()
        data["rediscovered"] = result.rediscovered
        return CommandResponse(success=True, message=f"{verb} {info.mode} session {info.session_id}", data=data)

    async def close_session(self, session_id: str) -> CommandResponse:
        try:
            closed = await self.registry.close(session_id)
        except Exception as exc:
            logger.exception("Failed to close session %s", session_id)
            return CommandResponse(success=False, error=f"Python error closing session: {exc!s}")
        message = f"Closed session {session_id}" if closed else f"Session {session_id} was not open"
        return CommandResponse(success=True, message=message, data={"closed": closed})

    def list_sessions(self) -> CommandResponse:
        sessions = [info.to_dict() for info in self.registry.sessions()]
        return CommandResponse(success=True, message=f"{len(sessions)} open session(s)", data={"sessions": sessions})

    # ── Commands ─────────────────────────────────────────────────────

    async def _session_for(self, session_id: str | None, target_ref: str | None, mode: SessionMode) -> Session:
        if session_id:
            return self.registry.get(session_id)
        if not target_ref:
            raise ValueError("session_id or target_ref is required")
        return (await self.registry.init(target_ref, mode)).session

    async def execute(
        self,
        command: str,
        context: dict[str, Any] | None = None,
        *,
        session_id: str | None = None,
        target_ref: str | None = None,
        mode: SessionMode | str = SessionMode.FULL,
    ) -> CommandResponse:
        """Run ``command`` on the given (or newly initialised) session.

        An unknown session id or a SessionExpired abort is retried once on a
        fresh session for the same target. A second failure is returned as is.
        """
        if not command or not command.strip():
            return CommandResponse(success=False, error="command is required")
        mode = SessionMode(mode)
        retried = False
        try:
            while True:
                try:
                    session = await self._session_for(session_id, target_ref, mode)
                except SessionNotFound as exc:
                    target = target_ref or self.registry.lookup_target(exc.session_id)
                    if retried or not target:
                        return CommandResponse.from_error(exc, data={"retried": retried})
                    logger.info("Session %s is gone; re-initialising for %s", exc.session_id, target)
                    retried = True
                    await self.registry.close(exc.session_id)
                    session_id, target_ref = None, target
                    continue

                record = await self.orchestrator.run(command, context, session)
                if record.error_type == _SESSION_EXPIRED and not retried:
                    logger.info("Session %s expired mid-command; retrying once", session.id)
                    retried = True
                    await self.registry.close(session.id)
                    session_id, target_ref, mode = None, session.target_ref, session.mode
                    continue
                return self._response(record, retried)
        except SceneCommandError as exc:
            return CommandResponse.from_error(exc, data={"retried": retried})
        except ValueError as exc:
            return CommandResponse(success=False, error=str(exc))
        except Exception as exc:
            logger.exception("Unexpected error executing %r", command)
            return CommandResponse(success=False, error=f"Python error executing command: {exc!s}")

    async def refine(
        self,
        feedback: str,
        *,
        session_id: str | None = None,
        target_ref: str | None = None,
    ) -> CommandResponse:
        """Re-run the last command with user feedback appended.

        An explicit ``target_ref`` wins over the session the last command ran on.
        """
        last = self.orchestrator.log.last()
        if last is None:
            return CommandResponse(success=False, error="No previous execution to refine")
        command = f"{last.command} (refined: {feedback})"
        return await self.execute(
            command,
            last.context,
            session_id=session_id or (None if target_ref else last.session_id),
            target_ref=target_ref,
            mode=last.mode or SessionMode.FULL,
        )

    def history(self) -> CommandResponse:
        log = self.orchestrator.log
        summary = log.summary()
        summary["history"] = [r.model_dump(mode="json") for r in log.records()]
        return CommandResponse(success=True, message=f"{summary['executions']} execution(s)", data=summary)

    @staticmethod
    def _response(record: ExecutionRecord, retried: bool) -> CommandResponse:
        data = {"retried": retried, "record": record.model_dump(mode="json")}
        if record.success:
            steps = len(record.step_results)
            message = (
                f"Planned {len(record.plan.steps)} step(s)" if record.state == OrchestratorState.PLANNED
                else f"Completed {steps} step(s)"
            )
            return CommandResponse(success=True, message=message, data=data)
        return CommandResponse(
            success=False,
            error=record.error,
            details={"error_type": record.error_type, "state": record.state.value, "retried": retried},
            data=data,
        )


def build_command_service(
    *,
    registry: SessionRegistry | None = None,
    embedding_provider: str | None = None,
) -> CommandService:
    """Wire the default stack: on-disk knowledge store, OpenAI stages, shared registry."""
    from core.config import cfg
    from knowledge.embeddings import build_embedding_provider
    from knowledge.enricher import RetrievalEnricher
    from knowledge.store import KnowledgeStore
    from scene_agent.audit import ExecutionLog
    from scene_agent.llm import CompletionService
    from scene_agent.observer import VisualObservationStage
    from scene_agent.planner import PlanningStage
    from transport.session_registry import get_session_registry

    store = KnowledgeStore(build_embedding_provider(embedding_provider), cfg.knowledge_dir)
    llm = CompletionService()
    orchestrator = Orchestrator(
        PlanningStage(llm),
        VisualObservationStage(llm),
        RetrievalEnricher(store),
        ExecutionLog.from_file(cfg.execution_log_file),
    )
    return CommandService(registry or get_session_registry(), orchestrator)
