"""Workflow data models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from .agent import AgentExecutionResult
from .base import ApiModel


class ExecutionMode(str, Enum):
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


class WorkflowStep(ApiModel):
    model_config = ConfigDict(frozen=True)

    agent: str
    name: str
    critical: bool = False


class WorkflowDef(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    steps: list[WorkflowStep] = Field(min_length=1)
    mode: ExecutionMode = ExecutionMode.SEQUENTIAL


class WorkflowInfo(ApiModel):
    id: str
    name: str
    description: str
    steps: list[WorkflowStep]
    mode: ExecutionMode


class StepError(ApiModel):
    step: str
    agent: str
    error: str


class CombinedResult(ApiModel):
    workflow: str
    total_steps: int
    completed_steps: int
    summary: str = ""
    recommendations: list[Any] = []
    priority: list[dict] = []
    overall_score: Optional[float] = None


class WorkflowExecutionResult(ApiModel):
    execution_id: str
    workflow: str
    workflow_name: str
    results: list[AgentExecutionResult] = []
    combined: CombinedResult
    errors: list[StepError] = []
    timestamp: datetime
    execution_time: float = 0
