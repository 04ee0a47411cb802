"""Tests for the execution log."""
from scene_agent.audit import ExecutionLog
from scene_agent.models import ExecutionRecord, OrchestratorState


def _record(command: str, success: bool) -> ExecutionRecord:
    return ExecutionRecord(
        command=command,
        success=success,
        state=OrchestratorState.COMPLETE if success else OrchestratorState.ABORTED,
    )


def test_in_memory_log_summary():
    log = ExecutionLog()
    log.append(_record("a", True))
    log.append(_record("b", False))

    assert len(log) == 2
    assert log.last().command == "b"
    assert log.summary() == {"executions": 2, "successful": 1, "failed": 1}


def test_empty_log():
    log = ExecutionLog()

    assert log.last() is None
    assert log.summary()["executions"] == 0


def test_file_backed_log_reloads(tmp_path):
    path = tmp_path / "logs" / "executions.jsonl"
    log = ExecutionLog(path)
    log.append(_record("move cube", True))
    log.append(_record("hide sphere", False))

    with path.open("a", encoding="utf-8") as fh:
        fh.write("not json\n\n")

    reloaded = ExecutionLog.from_file(path)

    assert [r.command for r in reloaded.records()] == ["move cube", "hide sphere"]
    assert reloaded.records()[1].state == OrchestratorState.ABORTED


def test_missing_file_gives_empty_log(tmp_path):
    assert len(ExecutionLog.from_file(tmp_path / "absent.jsonl")) == 0
