"""Execution log data models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import Field

from .base import ApiModel


class ExecutionKind(str, Enum):
    AGENT = "agent"
    WORKFLOW = "workflow"


class ExecutionStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


class LogEntry(ApiModel):
    execution_id: str
    target: str
    status: str
    timestamp: datetime
    data: dict = Field(default_factory=dict)


class Execution(ApiModel):
    id: str
    kind: ExecutionKind
    target: str
    start_time: datetime
    end_time: Optional[datetime] = None
    status: ExecutionStatus = ExecutionStatus.RUNNING
    error: Optional[str] = None
    step_results: list[Any] = []
    entries: list[LogEntry] = []

    @property
    def is_terminal(self) -> bool:
        return self.status != ExecutionStatus.RUNNING
