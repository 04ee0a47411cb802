"""Orchestrator: drives plan -> (observe) -> execute -> validate for one command.

``run`` never raises. Every outcome, including aborts, is returned as an
ExecutionRecord and appended to the execution log.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from pydantic import ValidationError

from core.config import cfg
from core.errors import (
    MalformedObservationError,
    SceneCommandError,
    ServiceUnavailable,
    SessionExpired,
)
from knowledge.enricher import RetrievalEnricher
from transport.scene_handle import SceneHandle
from transport.session_registry import FullSession, Session

from .audit import ExecutionLog
from .executor import ExecutionStage
from .models import (
    ExecutionRecord,
    MutationCall,
    ObservationResult,
    OrchestratorState,
    Plan,
    Step,
    StepResult,
)
from .observer import VisualObservationStage
from .planner import PlanningStage

logger = logging.getLogger(__name__)


def initial_query(plan: Plan, context: dict[str, Any]) -> str:
    return (
        f"User wants to: {plan.intent}. "
        f"Context: {json.dumps(context, default=str)}. "
        "What is the current state of the scene?"
    )


def validation_query(step: Step) -> str:
    criteria = step.validation_criteria or step.description or step.action
    return f"Verify that step {step.id} was successful: {criteria}"


class Orchestrator:
    def __init__(
        self,
        planner: PlanningStage,
        observer: VisualObservationStage,
        enricher: RetrievalEnricher,
        log: ExecutionLog | None = None,
        *,
        settle_delay: float | None = None,
        mutation_interval: float | None = None,
    ):
        self.planner = planner
        self.observer = observer
        self.enricher = enricher
        self.log = log if log is not None else ExecutionLog()
        self.settle_delay = cfg.settle_delay if settle_delay is None else settle_delay
        self.mutation_interval = mutation_interval

    @staticmethod
    def _transition(record: ExecutionRecord, state: OrchestratorState) -> None:
        logger.debug("[%s] %s -> %s", record.session_id, record.state.value, state.value)
        record.state = state

    def _abort(self, record: ExecutionRecord, exc: BaseException) -> None:
        self._transition(record, OrchestratorState.ABORTED)
        record.success = False
        if isinstance(exc, SceneCommandError):
            record.error = exc.message
        else:
            record.error = f"Python error running command: {exc!r}"
        record.error_type = type(exc).__name__

    async def run(self, command: str, context: dict[str, Any] | None, session: Session) -> ExecutionRecord:
        context = dict(context or {})
        record = ExecutionRecord(
            command=command,
            context=context,
            session_id=session.id,
            mode=session.mode.value,
        )
        try:
            await self._run(record, session)
        except SessionExpired as exc:
            logger.warning("Session %s expired during %r", session.id, command)
            self._abort(record, exc)
        except SceneCommandError as exc:
            logger.warning("Command %r aborted: %s", command, exc.message)
            self._abort(record, exc)
        except Exception as exc:
            logger.exception("Unexpected error running %r", command)
            self._abort(record, exc)
        self.log.append(record)
        return record

    async def _run(self, record: ExecutionRecord, session: Session) -> None:
        self._transition(record, OrchestratorState.PLANNING)
        page_hint = record.context.get("page") or cfg.default_page
        enrichment = await self.enricher.enrich(record.command, page_hint)
        record.knowledge_summary = enrichment.summary
        plan = await self.planner.plan(record.command, record.context, enrichment.summary)
        record.plan = plan

        if not isinstance(session, FullSession):
            self._transition(record, OrchestratorState.PLANNED)
            record.success = True
            return

        handle = session.handle
        executor = ExecutionStage(handle, self.mutation_interval)
        last_observation: ObservationResult | None = None

        for step in plan.steps:
            result, observed = await self._run_step(record, plan, step, handle, executor, last_observation)
            record.step_results.append(result)
            if observed is not None:
                last_observation = observed
            if not result.success:
                self._transition(record, OrchestratorState.ABORTED)
                record.success = False
                record.error = result.error or f"Step {step.id} made no successful change"
                record.error_type = "StepFailed"
                logger.info("Aborting %r at step %d: %s", record.command, step.id, record.error)
                return

        self._transition(record, OrchestratorState.COMPLETE)
        record.success = True

    async def _run_step(
        self,
        record: ExecutionRecord,
        plan: Plan,
        step: Step,
        handle: SceneHandle,
        executor: ExecutionStage,
        last_observation: ObservationResult | None,
    ) -> tuple[StepResult, ObservationResult | None]:
        """Returns the step result and the fresh pre-execution observation, if one was taken."""
        result = StepResult(step=step)
        observed: ObservationResult | None = None

        self._transition(record, OrchestratorState.STEP_OBSERVE)
        try:
            direct: list[MutationCall] = step.direct_mutations()
        except ValidationError as exc:
            result.error = f"Step {step.id} has invalid params: {exc.error_count()} error(s)"
            return result, None

        if step.requires_vision or (not direct and last_observation is None):
            query = step.vision_query or (step.description if step.requires_vision else None)
            query = query or initial_query(plan, record.context)
            try:
                observed = await self.observer.observe(query, await handle.screenshot())
            except MalformedObservationError as exc:
                result.error = exc.message
                return result, None
            result.observation = observed
        else:
            result.observation = last_observation

        # Params carried by the plan win over the observation's recommendations.
        batch = direct or list(result.observation.recommended_mutations)

        self._transition(record, OrchestratorState.STEP_EXECUTE)
        result.mutation_outcomes = await executor.apply(batch)

        self._transition(record, OrchestratorState.STEP_VALIDATE)
        if self.settle_delay > 0:
            await asyncio.sleep(self.settle_delay)
        try:
            result.validation = await self.observer.observe(validation_query(step), await handle.screenshot())
        except (MalformedObservationError, ServiceUnavailable) as exc:
            result.validation_error = exc.message
            logger.info("Validation for step %d unavailable: %s", step.id, exc.message)

        result.success = not batch or result.successful_mutations > 0
        if not result.success:
            failures = [o.error for o in result.mutation_outcomes if o.error]
            result.error = f"Step {step.id}: all {len(batch)} mutation(s) failed" + (
                f" ({failures[0]})" if failures else ""
            )
        return result, observed
