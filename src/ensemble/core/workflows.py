"""Workflow catalog and execution.

A workflow runs a list of agent steps over the same input, either one after
another or all at once, and folds the step results into one combined
summary.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Optional, Union

from ..models.agent import AgentExecutionResult
from ..models.execution import ExecutionKind
from ..models.workflow import (
    CombinedResult,
    ExecutionMode,
    StepError,
    WorkflowDef,
    WorkflowExecutionResult,
    WorkflowInfo,
    WorkflowStep,
)
from .agents import AgentRegistry, build_agent_prompt, parse_agent_response, result_confidence
from .engine import GenerateOptions, GenerationEngine
from .errors import (
    DuplicateWorkflowError,
    OperationCancelledError,
    WorkflowAbortedError,
    WorkflowNotFoundError,
)
from .execution_log import ExecutionLog
from .tasks import gather_settled, raise_if_cancelled

logger = logging.getLogger("ensemble.workflows")

SEVERITY_ORDER = {"critical": 4, "high": 3, "medium": 2, "low": 1}

WORKFLOW_DEFS: dict[str, dict] = {
    "code-review": {
        "name": "Code Review",
        "description": "Comprehensive code analysis and improvement",
        "steps": [
            {"agent": "syntax-analyzer", "name": "Syntax Analysis", "critical": True},
            {"agent": "security-analyzer", "name": "Security Analysis"},
            {"agent": "performance-analyzer", "name": "Performance Analysis"},
            {"agent": "architecture-analyzer", "name": "Architecture Analysis"},
            {"agent": "code-improver", "name": "Code Improvement"},
        ],
        "mode": ExecutionMode.SEQUENTIAL,
    },
    "quick-analysis": {
        "name": "Quick Analysis",
        "description": "Fast code quality assessment",
        "steps": [
            {"agent": "syntax-analyzer", "name": "Syntax Check", "critical": True},
            {"agent": "security-analyzer", "name": "Security Check"},
        ],
        "mode": ExecutionMode.PARALLEL,
    },
    "documentation": {
        "name": "Documentation",
        "description": "Generate comprehensive documentation",
        "steps": [
            {"agent": "architecture-analyzer", "name": "Architecture Analysis"},
            {"agent": "documentation-agent", "name": "Documentation Generation"},
        ],
        "mode": ExecutionMode.SEQUENTIAL,
    },
    "performance-optimization": {
        "name": "Performance Optimization",
        "description": "Identify and fix performance issues",
        "steps": [
            {"agent": "performance-analyzer", "name": "Performance Analysis"},
            {"agent": "code-improver", "name": "Optimization Implementation"},
        ],
        "mode": ExecutionMode.SEQUENTIAL,
    },
}


def default_workflows() -> list[WorkflowDef]:
    return [WorkflowDef(id=workflow_id, **fields) for workflow_id, fields in WORKFLOW_DEFS.items()]


class WorkflowRegistry:
    def __init__(
        self,
        agents: Optional[AgentRegistry] = None,
        workflows: Optional[Iterable[WorkflowDef]] = None,
    ):
        self.agents = agents
        self._workflows: dict[str, WorkflowDef] = {}
        self._custom_ids = itertools.count(1)
        for workflow in workflows or ():
            self.register(workflow)

    def __contains__(self, workflow_id: str) -> bool:
        return workflow_id in self._workflows

    def register(self, workflow: WorkflowDef) -> WorkflowDef:
        if workflow.id in self._workflows:
            raise DuplicateWorkflowError(workflow.id)
        if self.agents is not None:
            for step in workflow.steps:
                self.agents.get(step.agent)
        self._workflows[workflow.id] = workflow
        return workflow

    def register_custom(
        self,
        name: str,
        steps: list[Union[WorkflowStep, dict]],
        description: str = "",
        mode: ExecutionMode = ExecutionMode.SEQUENTIAL,
    ) -> WorkflowDef:
        """Register a session-scoped workflow under a generated ``custom-<n>`` id."""
        workflow_id = f"custom-{next(self._custom_ids)}"
        while workflow_id in self._workflows:
            workflow_id = f"custom-{next(self._custom_ids)}"
        workflow = WorkflowDef(
            id=workflow_id,
            name=name,
            description=description,
            steps=[WorkflowStep.model_validate(s) if isinstance(s, dict) else s for s in steps],
            mode=mode,
        )
        return self.register(workflow)

    def get(self, workflow_id: str) -> WorkflowDef:
        try:
            return self._workflows[workflow_id]
        except KeyError:
            raise WorkflowNotFoundError(workflow_id) from None

    def all(self) -> list[WorkflowDef]:
        return list(self._workflows.values())

    def info(self) -> list[WorkflowInfo]:
        return [
            WorkflowInfo(id=w.id, name=w.name, description=w.description, steps=list(w.steps), mode=w.mode)
            for w in self._workflows.values()
        ]


def generate_workflow_summary(results: list[AgentExecutionResult]) -> str:
    return "\n".join(f"{r.agent_name}: {r.result.summary or 'Analysis completed'}" for r in results)


def extract_recommendations(results: list[AgentExecutionResult]) -> list[Any]:
    recommendations: list[Any] = []
    for r in results:
        recommendations.extend(r.result.collect("recommendations", "suggestions"))
    return recommendations


def prioritize_issues(results: list[AgentExecutionResult]) -> list[dict]:
    """All issues, vulnerabilities and bottlenecks, most severe first."""
    issues: list[dict] = []
    for r in results:
        for item in r.result.collect("issues", "vulnerabilities", "bottlenecks"):
            issues.append(item if isinstance(item, dict) else {"description": item})

    def severity_rank(issue: dict) -> int:
        severity = issue.get("severity")
        return SEVERITY_ORDER.get(severity.lower(), 0) if isinstance(severity, str) else 0

    return sorted(issues, key=severity_rank, reverse=True)


def combine_workflow_results(results: list[AgentExecutionResult], workflow: WorkflowDef) -> CombinedResult:
    combined = CombinedResult(
        workflow=workflow.name,
        total_steps=len(workflow.steps),
        completed_steps=len(results),
        summary=generate_workflow_summary(results),
        recommendations=extract_recommendations(results),
        priority=prioritize_issues(results),
    )

    scores = [r.result.score for r in results]
    if scores and all(s is not None for s in scores):
        combined.overall_score = sum(scores) / len(scores)

    return combined


@dataclass
class RunOptions:
    language: Optional[str] = None
    context: Optional[str] = None
    issues: Optional[Any] = None
    max_retries: int = 3
    cancel_event: Optional[asyncio.Event] = None


class WorkflowEngine:
    def __init__(
        self,
        engine: GenerationEngine,
        agents: AgentRegistry,
        workflows: WorkflowRegistry,
        execution_log: Optional[ExecutionLog] = None,
    ):
        self.engine = engine
        self.agents = agents
        self.workflows = workflows
        self.log = execution_log or ExecutionLog()

    async def run_agent(
        self,
        agent_id: str,
        input: str,
        options: Optional[RunOptions] = None,
    ) -> AgentExecutionResult:
        options = options or RunOptions()
        agent = self.agents.get(agent_id)

        execution = self.log.start(agent.id, ExecutionKind.AGENT, {"input": input[:200]})
        start = time.monotonic()

        try:
            raise_if_cancelled(options.cancel_event)

            def prompt_for(context: str) -> str:
                return build_agent_prompt(agent, input, options.language, context, options.issues)

            # The agent's model binding is fixed; callers only add context.
            # The input is the relevance query when the context is bounded.
            generation = await self.engine.generate(
                input,
                GenerateOptions(
                    capability=agent.capability,
                    context=options.context or "",
                    preferred_model=agent.model,
                    system_prompt=agent.system_prompt,
                    temperature=agent.temperature,
                    max_tokens=agent.max_tokens,
                    max_retries=options.max_retries,
                    build_prompt=prompt_for,
                    cancel_event=options.cancel_event,
                ),
            )
            result = parse_agent_response(generation.response, agent)
        except BaseException as e:
            execution_time = round(time.monotonic() - start, 3)
            self.log.fail(execution.id, e, {"executionTime": execution_time})
            logger.error("Agent %s failed after %ss: %s", agent.id, execution_time, e)
            raise

        execution_time = round(time.monotonic() - start, 3)
        agent_result = AgentExecutionResult(
            execution_id=execution.id,
            agent=agent.id,
            agent_name=agent.name,
            result=result,
            confidence=result_confidence(result),
            model=generation.model,
            timestamp=datetime.now(),
            execution_time=execution_time,
        )
        self.log.complete(
            execution.id,
            step_results=[agent_result],
            data={
                "executionTime": execution_time,
                "result": result.summary or "Analysis completed",
                "parseError": result.parse_error,
            },
        )
        return agent_result

    async def run_workflow(
        self,
        workflow: Union[str, WorkflowDef],
        input: str,
        options: Optional[RunOptions] = None,
    ) -> WorkflowExecutionResult:
        options = options or RunOptions()
        if isinstance(workflow, str):
            workflow = self.workflows.get(workflow)

        execution = self.log.start(
            workflow.id,
            ExecutionKind.WORKFLOW,
            {"workflow": workflow.name, "steps": len(workflow.steps), "mode": workflow.mode.value},
        )
        start = time.monotonic()
        results: list[AgentExecutionResult] = []
        errors: list[StepError] = []

        try:
            if workflow.mode == ExecutionMode.PARALLEL:
                await self._run_parallel(workflow, input, options, execution.id, results, errors)
            else:
                await self._run_sequential(workflow, input, options, execution.id, results, errors)
            combined = combine_workflow_results(results, workflow)
        except BaseException as e:
            execution_time = round(time.monotonic() - start, 3)
            self.log.fail(
                execution.id,
                e,
                {
                    "executionTime": execution_time,
                    "successfulSteps": len(results),
                    "failedSteps": len(errors),
                },
            )
            logger.error("Workflow %s failed after %ss: %s", workflow.id, execution_time, e)
            raise

        execution_time = round(time.monotonic() - start, 3)
        self.log.complete(
            execution.id,
            step_results=list(results),
            data={
                "executionTime": execution_time,
                "successfulSteps": len(results),
                "failedSteps": len(errors),
            },
        )
        logger.info(
            "Workflow %s completed: %d/%d steps in %ss",
            workflow.id, len(results), len(workflow.steps), execution_time,
        )

        return WorkflowExecutionResult(
            execution_id=execution.id,
            workflow=workflow.id,
            workflow_name=workflow.name,
            results=results,
            combined=combined,
            errors=errors,
            timestamp=datetime.now(),
            execution_time=execution_time,
        )

    async def _run_sequential(
        self,
        workflow: WorkflowDef,
        input: str,
        options: RunOptions,
        execution_id: str,
        results: list[AgentExecutionResult],
        errors: list[StepError],
    ) -> None:
        for step in workflow.steps:
            raise_if_cancelled(options.cancel_event)
            try:
                result = await self.run_agent(step.agent, input, options)
            except OperationCancelledError:
                raise
            except Exception as e:
                errors.append(StepError(step=step.name, agent=step.agent, error=str(e)))
                self.log.append(execution_id, "step_failed", {"step": step.name, "error": str(e)})
                if step.critical:
                    raise WorkflowAbortedError(workflow.id, step.name, e, list(results), list(errors)) from e
                continue

            results.append(result)
            self.log.append(
                execution_id,
                "step_completed",
                {"step": step.name, "agentExecutionId": result.execution_id},
            )

    async def _run_parallel(
        self,
        workflow: WorkflowDef,
        input: str,
        options: RunOptions,
        execution_id: str,
        results: list[AgentExecutionResult],
        errors: list[StepError],
    ) -> None:
        outcomes = await gather_settled(
            [self.run_agent(step.agent, input, options) for step in workflow.steps],
            options.cancel_event,
        )
        # Declared step order, not completion order
        for step, outcome in zip(workflow.steps, outcomes):
            if isinstance(outcome, BaseException):
                errors.append(StepError(step=step.name, agent=step.agent, error=str(outcome)))
                self.log.append(execution_id, "step_failed", {"step": step.name, "error": str(outcome)})
            else:
                results.append(outcome)
                self.log.append(
                    execution_id,
                    "step_completed",
                    {"step": step.name, "agentExecutionId": outcome.execution_id},
                )
