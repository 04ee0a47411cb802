"""Tests for the command service boundary and the single session-expiry retry."""
from __future__ import annotations

import pytest

from core.errors import SceneLoadTimeout
from knowledge.enricher import RetrievalEnricher
from knowledge.store import KnowledgeStore
from models.models import CommandResponse
from scene_agent.audit import ExecutionLog
from scene_agent.observer import VisualObservationStage
from scene_agent.orchestrator import Orchestrator
from scene_agent.planner import PlanningStage
from services.command_service import CommandService
from transport.session_registry import SessionMode, SessionRegistry
from transport.session_store import SessionIdentityStore
from tests.test_helpers import (
    FakeCompletionService,
    FakeEmbeddingProvider,
    HandleFactory,
    mutation,
    observation,
    one_step_plan,
)


class ExpiringHandleFactory(HandleFactory):
    """First ``expire_first`` handles die on their first screenshot."""

    def __init__(self, expire_first: int = 1, **kwargs):
        super().__init__(**kwargs)
        self.expire_first = expire_first

    async def __call__(self, target_ref: str, *, ready_timeout: float):
        handle = await super().__call__(target_ref, ready_timeout=ready_timeout)
        if len(self.handles) <= self.expire_first:
            handle.expire_on_screenshot = True
        return handle


def _service(tmp_path, llm: FakeCompletionService, factory: HandleFactory | None = None) -> CommandService:
    registry = SessionRegistry(
        handle_factory=factory or HandleFactory(),
        identity_store=SessionIdentityStore(tmp_path / "sessions.json"),
        ready_timeout=1.0,
    )
    orchestrator = Orchestrator(
        PlanningStage(llm),
        VisualObservationStage(llm),
        RetrievalEnricher(KnowledgeStore(FakeEmbeddingProvider())),
        ExecutionLog(),
        settle_delay=0,
        mutation_interval=0,
    )
    return CommandService(registry, orchestrator)


@pytest.mark.asyncio
async def test_execute_with_target_initialises_session(tmp_path):
    llm = FakeCompletionService(plan=one_step_plan(), observations=[observation(mutation())])
    service = _service(tmp_path, llm)

    response = await service.execute("move the cube up", {}, target_ref="scene-1")

    assert isinstance(response, CommandResponse)
    assert response.success is True
    assert response.data["retried"] is False
    assert response.data["record"]["state"] == "complete"


@pytest.mark.asyncio
async def test_session_expiry_retries_exactly_once(tmp_path):
    factory = ExpiringHandleFactory(expire_first=1, objects=["Cube"])
    llm = FakeCompletionService(plan=one_step_plan(), observations=[observation(mutation())])
    service = _service(tmp_path, llm, factory)
    opened = await service.open_session("scene-1")
    stale_id = opened.data["session_id"]

    response = await service.execute("move the cube up", {}, session_id=stale_id)

    assert response.success is True
    assert response.data["retried"] is True
    assert factory.calls == ["scene-1", "scene-1"]
    assert factory.handles[0].closed is True
    assert response.data["record"]["session_id"] != stale_id


@pytest.mark.asyncio
async def test_second_expiry_is_surfaced(tmp_path):
    factory = ExpiringHandleFactory(expire_first=2, objects=["Cube"])
    llm = FakeCompletionService(plan=one_step_plan())
    service = _service(tmp_path, llm, factory)

    response = await service.execute("move", {}, target_ref="scene-1")

    assert response.success is False
    assert response.details["error_type"] == "SessionExpired"
    assert response.details["retried"] is True
    assert len(factory.calls) == 2


@pytest.mark.asyncio
async def test_unknown_session_id_recovers_via_persisted_target(tmp_path):
    factory = HandleFactory(objects=["Cube"])
    llm = FakeCompletionService(plan=one_step_plan(), observations=[observation(mutation())])
    service = _service(tmp_path, llm, factory)
    opened = await service.open_session("scene-1")
    await service.registry.shutdown()

    response = await service.execute("move", {}, session_id=opened.data["session_id"])

    assert response.success is True
    assert response.data["retried"] is True
    assert factory.calls == ["scene-1", "scene-1"]


@pytest.mark.asyncio
async def test_unknown_session_without_target_is_structured_error(tmp_path):
    service = _service(tmp_path, FakeCompletionService(plan=one_step_plan()))

    response = await service.execute("move", {}, session_id="session_nope")

    assert response.success is False
    assert response.details["code"] == "session_not_found"
    assert "session_nope" in response.error


@pytest.mark.asyncio
async def test_scene_load_timeout_is_structured_error(tmp_path):
    factory = HandleFactory()
    factory.error = SceneLoadTimeout("scene-1", 1.0)
    service = _service(tmp_path, FakeCompletionService(plan=one_step_plan()), factory)

    response = await service.execute("move", {}, target_ref="scene-1")

    assert response.success is False
    assert response.details == {"code": "scene_load_timeout", "retryable": True,
                                "target_ref": "scene-1", "timeout": 1.0}


@pytest.mark.asyncio
async def test_missing_command_or_session(tmp_path):
    service = _service(tmp_path, FakeCompletionService(plan=one_step_plan()))

    assert (await service.execute("   ", {}, target_ref="scene-1")).success is False
    response = await service.execute("move", {})
    assert response.success is False
    assert "session_id or target_ref" in response.error


@pytest.mark.asyncio
async def test_failed_plan_surfaces_error_details(tmp_path):
    service = _service(tmp_path, FakeCompletionService(plan={"nonsense": True}))

    response = await service.execute("move", {}, target_ref="scene-1")

    assert response.success is False
    assert response.details["error_type"] == "MalformedPlanError"
    assert response.details["state"] == "aborted"
    assert response.details["retried"] is False


@pytest.mark.asyncio
async def test_lightweight_execute_returns_plan_only(tmp_path):
    factory = HandleFactory()
    service = _service(tmp_path, FakeCompletionService(plan=one_step_plan()), factory)

    response = await service.execute("move", {}, target_ref="scene-1", mode=SessionMode.LIGHTWEIGHT)

    assert response.success is True
    assert response.message == "Planned 1 step(s)"
    assert factory.calls == []


@pytest.mark.asyncio
async def test_session_lifecycle_responses(tmp_path):
    service = _service(tmp_path, FakeCompletionService())

    first = await service.open_session("scene-1", "lightweight")
    second = await service.open_session("scene-1", "lightweight")
    listed = service.list_sessions()
    closed = await service.close_session(first.data["session_id"])
    closed_again = await service.close_session(first.data["session_id"])

    assert first.success and second.success
    assert second.data["reused"] is True
    assert second.message.startswith("Reused")
    assert len(listed.data["sessions"]) == 1
    assert closed.data == {"closed": True}
    assert closed_again.success is True
    assert closed_again.data == {"closed": False}


@pytest.mark.asyncio
async def test_refine_reruns_last_command_with_feedback(tmp_path):
    llm = FakeCompletionService(plan=one_step_plan())
    service = _service(tmp_path, llm)

    assert (await service.refine("higher")).success is False

    await service.execute("move the cube", {}, target_ref="scene-1", mode="lightweight")
    response = await service.refine("higher")

    assert response.success is True
    assert service.orchestrator.log.last().command == "move the cube (refined: higher)"


@pytest.mark.asyncio
async def test_history_summarises_executions(tmp_path):
    service = _service(tmp_path, FakeCompletionService(plan=one_step_plan()))
    await service.execute("a", {}, target_ref="scene-1", mode="lightweight")
    await service.execute("b", {}, target_ref="scene-1", mode="lightweight")

    data = service.history().data

    assert data["executions"] == 2
    assert data["successful"] == 2
    assert [h["command"] for h in data["history"]] == ["a", "b"]
