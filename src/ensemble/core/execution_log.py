"""Append-only execution log consumed by progress observers."""

from __future__ import annotations

import itertools
import logging
import time
from datetime import datetime
from typing import Any, Callable, Optional

from ..models.execution import Execution, ExecutionKind, ExecutionStatus, LogEntry
from ..utils.sanitize import sanitize_error
from .errors import ExecutionClosedError, ExecutionNotFoundError

logger = logging.getLogger("ensemble.execution_log")

Listener = Callable[[LogEntry], None]


class ExecutionLog:
    def __init__(self, max_entries: int = 1000):
        self.max_entries = max_entries
        self._executions: dict[str, Execution] = {}
        self._listeners: list[Listener] = []
        self._counter = itertools.count(1)

    def new_execution_id(self) -> str:
        # Counter keeps ids unique within the process even within one millisecond
        return f"exec_{int(time.time() * 1000)}_{next(self._counter):06d}"

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for every appended entry. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def start(self, target: str, kind: ExecutionKind, data: Optional[dict] = None) -> Execution:
        execution = Execution(
            id=self.new_execution_id(),
            kind=kind,
            target=target,
            start_time=datetime.now(),
        )
        self._executions[execution.id] = execution
        self.append(execution.id, "started", data)
        return execution

    def append(self, execution_id: str, status: str, data: Optional[dict] = None) -> LogEntry:
        execution = self.get(execution_id)
        if execution.is_terminal:
            raise ExecutionClosedError(execution_id)
        return self._write(execution, status, data)

    def complete(
        self,
        execution_id: str,
        step_results: Optional[list[Any]] = None,
        data: Optional[dict] = None,
    ) -> Execution:
        execution = self.get(execution_id)
        if execution.is_terminal:
            raise ExecutionClosedError(execution_id)
        execution.step_results = list(step_results or [])
        self._finish(execution, ExecutionStatus.COMPLETED)
        self._write(execution, "completed", data)
        return execution

    def fail(self, execution_id: str, error: BaseException | str, data: Optional[dict] = None) -> Execution:
        execution = self.get(execution_id)
        if execution.is_terminal:
            raise ExecutionClosedError(execution_id)
        execution.error = sanitize_error(str(error))
        self._finish(execution, ExecutionStatus.ERROR)
        self._write(execution, "error", {"error": execution.error, **(data or {})})
        return execution

    def get(self, execution_id: str) -> Execution:
        try:
            return self._executions[execution_id]
        except KeyError:
            raise ExecutionNotFoundError(execution_id) from None

    def get_history(self, execution_id: str) -> list[LogEntry]:
        execution = self._executions.get(execution_id)
        return list(execution.entries) if execution else []

    def list_executions(self, target: Optional[str] = None) -> list[Execution]:
        return [e for e in self._executions.values() if target is None or e.target == target]

    @staticmethod
    def _finish(execution: Execution, status: ExecutionStatus) -> None:
        end_time = datetime.now()
        execution.end_time = max(end_time, execution.start_time)
        execution.status = status

    def _write(self, execution: Execution, status: str, data: Optional[dict]) -> LogEntry:
        entry = LogEntry(
            execution_id=execution.id,
            target=execution.target,
            status=status,
            timestamp=datetime.now(),
            data=dict(data or {}),
        )
        execution.entries.append(entry)
        if len(execution.entries) > self.max_entries:
            del execution.entries[0]

        for listener in list(self._listeners):
            try:
                listener(entry)
            except Exception:
                logger.exception("Execution log listener failed")
        return entry
