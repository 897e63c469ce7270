"""Tests for core/execution_log.py."""

from __future__ import annotations

import pytest

from ensemble.core.errors import ExecutionClosedError, ExecutionNotFoundError
from ensemble.core.execution_log import ExecutionLog
from ensemble.models.execution import ExecutionKind, ExecutionStatus


class TestExecutionLog:
    def test_ids_unique(self):
        log = ExecutionLog()
        ids = {log.new_execution_id() for _ in range(500)}
        assert len(ids) == 500
        assert all(i.startswith("exec_") for i in ids)

    def test_lifecycle(self):
        log = ExecutionLog()
        execution = log.start("code-review", ExecutionKind.WORKFLOW, {"steps": 5})
        log.append(execution.id, "step_completed", {"step": "Syntax"})
        log.complete(execution.id, step_results=["r1"], data={"successfulSteps": 1})

        assert execution.status == ExecutionStatus.COMPLETED
        assert execution.end_time >= execution.start_time
        assert execution.step_results == ["r1"]
        history = log.get_history(execution.id)
        assert [e.status for e in history] == ["started", "step_completed", "completed"]
        assert history[0].data == {"steps": 5}

    def test_fail_sanitizes(self):
        log = ExecutionLog()
        execution = log.start("syntax-analyzer", ExecutionKind.AGENT)
        log.fail(execution.id, RuntimeError("401 | key sk-ant-abc123 rejected"))
        assert execution.status == ExecutionStatus.ERROR
        assert "sk-ant-abc123" not in execution.error
        assert log.get_history(execution.id)[-1].data["error"] == execution.error

    def test_terminal_is_closed(self):
        log = ExecutionLog()
        execution = log.start("syntax-analyzer", ExecutionKind.AGENT)
        log.complete(execution.id)
        with pytest.raises(ExecutionClosedError):
            log.append(execution.id, "step_completed")
        with pytest.raises(ExecutionClosedError):
            log.fail(execution.id, "late")

    def test_unknown_execution(self):
        log = ExecutionLog()
        assert log.get_history("exec_missing") == []
        with pytest.raises(ExecutionNotFoundError):
            log.append("exec_missing", "started")
        with pytest.raises(ExecutionNotFoundError) as exc_info:
            log.get("exec_missing")
        assert exc_info.value.execution_id == "exec_missing"

    def test_subscribe_and_unsubscribe(self):
        log = ExecutionLog()
        seen = []
        unsubscribe = log.subscribe(lambda entry: seen.append(entry.status))

        first = log.start("a", ExecutionKind.AGENT)
        log.complete(first.id)
        unsubscribe()
        log.start("b", ExecutionKind.AGENT)

        assert seen == ["started", "completed"]

    def test_listener_errors_isolated(self):
        log = ExecutionLog()
        seen = []

        def broken(entry):
            raise RuntimeError("listener bug")

        log.subscribe(broken)
        log.subscribe(lambda entry: seen.append(entry.status))
        execution = log.start("a", ExecutionKind.AGENT)

        assert seen == ["started"]
        assert log.get_history(execution.id)[0].status == "started"

    def test_entry_cap(self):
        log = ExecutionLog(max_entries=3)
        execution = log.start("wf", ExecutionKind.WORKFLOW)
        for i in range(5):
            log.append(execution.id, "step_completed", {"n": i})
        history = log.get_history(execution.id)
        assert [e.data["n"] for e in history] == [2, 3, 4]

    def test_list_by_target(self):
        log = ExecutionLog()
        log.start("a", ExecutionKind.AGENT)
        log.start("b", ExecutionKind.AGENT)
        log.start("a", ExecutionKind.AGENT)
        assert len(log.list_executions("a")) == 2
        assert len(log.list_executions()) == 3
