"""AI service facade.

Builds the whole orchestration core from one resolved config dict and exposes
the operations callers use: generation, agent and workflow runs, catalog
listings and model statistics.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Callable, Optional, Union

import httpx
from rich.console import Console

from .. import __version__
from ..models.agent import AgentExecutionResult, AgentInfo
from ..models.execution import Execution, LogEntry
from ..models.model import ModelStats
from ..models.provider import GenerationResult
from ..models.workflow import ExecutionMode, WorkflowDef, WorkflowExecutionResult, WorkflowInfo, WorkflowStep
from ..providers.base import build_providers
from .agents import AgentRegistry, default_agents
from .config import CONFIG_DIR, DEFAULT_CONFIG
from .context import ContextManager
from .engine import GenerateOptions, GenerationEngine
from .execution_log import ExecutionLog
from .recovery import ErrorClassifier, RecoveryPolicy
from .registry import ModelRegistry
from .workflows import RunOptions, WorkflowEngine, WorkflowRegistry, default_workflows

logger = logging.getLogger("ensemble.service")

console = Console()


def initialize_project(project_path: Path) -> Path:
    """Create the .ensemble directory with a starter config and agent override dir."""
    ens_dir = Path(project_path) / CONFIG_DIR
    (ens_dir / "agents").mkdir(parents=True, exist_ok=True)

    config_path = ens_dir / "config.yaml"
    if not config_path.exists():
        config_path.write_text(
            "# Ensemble project configuration\n"
            "# Values here are merged over the built-in defaults\n"
            "\n"
            f"ensemble_version: \"{__version__}\"\n"
            "\n"
            "ai:\n"
            "  temperature: 0.7\n"
            "  retry:\n"
            "    max_retries: 3\n"
            "    fallback_model: local-mistral\n",
            encoding="utf-8",
        )

    console.print(f"  [green]Initialized[/green] {CONFIG_DIR}/ in {Path(project_path).name}")
    return ens_dir


class AIService:
    def __init__(
        self,
        config: Optional[dict] = None,
        project_path: Optional[Path] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        registry: Optional[ModelRegistry] = None,
    ):
        self.config = config if config is not None else DEFAULT_CONFIG
        ai_config = self.config.get("ai", {})
        context_config = ai_config.get("context", {})
        retry_config = ai_config.get("retry", {})

        if registry is None:
            registry = ModelRegistry(build_providers(self.config, transport))
            registry.register_many(ai_config.get("models", {}))
        self.registry = registry

        self.context_manager = ContextManager(
            max_context_size=context_config.get("max_context_size", 100000),
            chunk_size=context_config.get("chunk_size", 8000),
            keep_ratio=context_config.get("keep_ratio", 0.3),
        )
        self.max_retries = retry_config.get("max_retries", 3)
        self.engine = GenerationEngine(
            self.registry,
            context_manager=self.context_manager,
            classifier=ErrorClassifier(),
            recovery=RecoveryPolicy(
                fallback_model=retry_config.get("fallback_model", "local-mistral"),
                delays=retry_config.get("delays"),
                max_context_size=self.context_manager.max_context_size,
            ),
            multi_model_count=ai_config.get("multi_model_count", 3),
            default_temperature=ai_config.get("temperature", 0.7),
        )

        self.agents = AgentRegistry(default_agents(project_path))
        self.workflows = WorkflowRegistry(self.agents, default_workflows())
        self.execution_log = ExecutionLog(self.config.get("execution_log", {}).get("max_entries", 1000))
        self.workflow_engine = WorkflowEngine(self.engine, self.agents, self.workflows, self.execution_log)

    def _provider_config(self, model_id: str) -> dict:
        model = self.registry.get(model_id)
        ai_config = self.config.get("ai", {})
        return {
            "temperature": ai_config.get("temperature", 0.7),
            **ai_config.get(model.config.provider.value, {}),
        }

    async def initialize_model(self, model_id: str, provider_config: Optional[dict] = None) -> None:
        if provider_config is None:
            provider_config = self._provider_config(model_id)
        await self.registry.initialize(model_id, provider_config)

    async def initialize_models(
        self,
        model_ids: Optional[list[str]] = None,
        provider_configs: Optional[dict[str, dict]] = None,
    ) -> dict[str, str]:
        """Initialize ``model_ids`` (default: every registered model) concurrently.

        ``provider_configs`` maps a model id to the settings its calls use;
        models without an entry get their provider section of the config.

        Returns a mapping of model id to error message for the ones that
        failed. One model failing never stops the others.
        """
        ids = model_ids if model_ids is not None else [m.id for m in self.registry.all()]
        provider_configs = provider_configs or {}
        outcomes = await asyncio.gather(
            *(self.initialize_model(model_id, provider_configs.get(model_id)) for model_id in ids),
            return_exceptions=True,
        )
        failures = {}
        for model_id, outcome in zip(ids, outcomes):
            if isinstance(outcome, BaseException):
                last_error = self.registry.get(model_id).last_error if model_id in self.registry else None
                failures[model_id] = last_error or str(outcome)
        if failures:
            logger.warning("%d of %d models failed to initialize", len(failures), len(ids))
        return failures

    async def generate(self, prompt: str, options: Optional[GenerateOptions] = None) -> GenerationResult:
        return await self.engine.generate(prompt, options)

    async def run_agent(
        self,
        agent_id: str,
        input: str,
        options: Optional[RunOptions] = None,
    ) -> AgentExecutionResult:
        return await self.workflow_engine.run_agent(agent_id, input, self._run_options(options))

    async def run_workflow(
        self,
        workflow: Union[str, WorkflowDef],
        input: str,
        options: Optional[RunOptions] = None,
    ) -> WorkflowExecutionResult:
        return await self.workflow_engine.run_workflow(workflow, input, self._run_options(options))

    async def analyze_code(self, code: str, language: Optional[str] = None) -> WorkflowExecutionResult:
        return await self.run_workflow(
            "code-review", code, RunOptions(language=language, max_retries=self.max_retries)
        )

    async def improve_code(
        self,
        code: str,
        language: Optional[str] = None,
        issues: Optional[Any] = None,
    ) -> WorkflowExecutionResult:
        """Run ``performance-optimization`` with ``issues`` embedded in every step's prompt."""
        return await self.run_workflow(
            "performance-optimization",
            code,
            RunOptions(language=language, issues=issues, max_retries=self.max_retries),
        )

    def register_custom_workflow(
        self,
        name: str,
        steps: list[Union[WorkflowStep, dict]],
        description: str = "",
        mode: ExecutionMode = ExecutionMode.SEQUENTIAL,
    ) -> str:
        return self.workflows.register_custom(name, steps, description, mode).id

    def get_available_workflows(self) -> list[WorkflowInfo]:
        return self.workflows.info()

    def get_available_agents(self) -> list[AgentInfo]:
        return self.agents.info()

    def get_model_stats(self) -> list[ModelStats]:
        return self.registry.stats()

    def get_execution_history(self, execution_id: str) -> list[LogEntry]:
        return self.execution_log.get_history(execution_id)

    def list_executions(self, target: Optional[str] = None) -> list[Execution]:
        return self.execution_log.list_executions(target)

    def subscribe(self, listener: Callable[[LogEntry], None]) -> Callable[[], None]:
        return self.execution_log.subscribe(listener)

    def get_task_history(self, task_type: str) -> list[dict]:
        return self.context_manager.get_task_history(task_type)

    async def aclose(self) -> None:
        for provider in self.registry.providers.values():
            await provider.aclose()

    def _run_options(self, options: Optional[RunOptions]) -> RunOptions:
        if options is None:
            return RunOptions(max_retries=self.max_retries)
        return options
