"""Shared fixtures for Ensemble tests."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import pytest

from ensemble.core.agents import AgentRegistry, default_agents
from ensemble.core.context import ContextManager
from ensemble.core.engine import GenerationEngine
from ensemble.core.errors import ErrorKind, ProviderCallError
from ensemble.core.execution_log import ExecutionLog
from ensemble.core.recovery import ErrorClassifier, RecoveryPolicy
from ensemble.core.registry import ModelRegistry
from ensemble.core.workflows import WorkflowEngine, WorkflowRegistry, default_workflows
from ensemble.models.model import ModelStatus, ProviderKind
from ensemble.models.provider import CompletionRequest, CompletionResult
from ensemble.providers.base import BaseProvider

ZERO_DELAYS = {"rate_limit": 0, "api_error": 0, "context_too_large": 0}


class FakeProvider(BaseProvider):
    """Provider whose replies are scripted per model id.

    ``script[model_id]`` is a list consumed front to back; the last entry
    repeats. Entries are reply text, a ``CompletionResult`` or an exception
    to raise.
    """

    name = "fake"

    def __init__(self, script: Optional[dict] = None, confidences: Optional[dict] = None):
        super().__init__({}, {"timeout_seconds": 5})
        self.script = script or {}
        self.confidences = confidences or {}
        self.calls: list[CompletionRequest] = []
        self.probe_failures: dict[str, Exception] = {}

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        self.calls.append(request)
        queue = self.script.get(request.model_id)
        if not queue:
            item = f"response from {request.model_id}"
        elif len(queue) > 1:
            item = queue.pop(0)
        else:
            item = queue[0]

        if isinstance(item, Exception):
            raise item
        if isinstance(item, CompletionResult):
            return item
        return CompletionResult(
            success=True,
            content=item,
            tokens_used={"input": 10, "output": 5, "total": 15},
            confidence=self.confidences.get(request.model_id, 0.8),
        )

    async def probe(self, model_id: str, model_name: str, api_config: dict) -> None:
        if model_id in self.probe_failures:
            raise self.probe_failures[model_id]

    def calls_for(self, model_id: str) -> list[CompletionRequest]:
        return [c for c in self.calls if c.model_id == model_id]


def rate_limited(message: str = "429 | slow down") -> ProviderCallError:
    return ProviderCallError(message, kind=ErrorKind.RATE_LIMIT, provider="fake", status_code=429)


def agent_reply(**fields) -> str:
    return "Here is my analysis:\n" + json.dumps(fields)


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def registry(fake_provider: FakeProvider) -> ModelRegistry:
    """Three active models sharing one fake provider."""
    reg = ModelRegistry({kind: fake_provider for kind in ProviderKind})
    reg.register(
        "openai-gpt4o",
        {"provider": "openai", "model": "gpt-4o", "capabilities": ["chat", "code", "analysis"], "priority": 1},
    )
    reg.register(
        "claude-sonnet",
        {"provider": "anthropic", "model": "claude-sonnet", "capabilities": ["chat", "code"], "priority": 3},
    )
    reg.register(
        "local-mistral",
        {
            "provider": "local",
            "model": "mistral:7b",
            "max_tokens": 2048,
            "capabilities": ["chat", "code"],
            "priority": 5,
            "offline": True,
        },
    )
    for model in reg.all():
        reg.set_status(model.id, ModelStatus.ACTIVE)
    return reg


@pytest.fixture
def engine(registry: ModelRegistry) -> GenerationEngine:
    context_manager = ContextManager(max_context_size=1000, chunk_size=100)
    return GenerationEngine(
        registry,
        context_manager=context_manager,
        classifier=ErrorClassifier(),
        recovery=RecoveryPolicy(fallback_model="local-mistral", delays=ZERO_DELAYS, max_context_size=1000),
    )


@pytest.fixture
def workflow_engine(engine: GenerationEngine) -> WorkflowEngine:
    agents = AgentRegistry(default_agents())
    workflows = WorkflowRegistry(agents, default_workflows())
    return WorkflowEngine(engine, agents, workflows, ExecutionLog())


@pytest.fixture
def tmp_project(tmp_path: Path) -> Path:
    """Create a minimal project structure for testing."""
    project = tmp_path / "test-project"
    project.mkdir()
    (project / "main.py").write_text("def add(a, b):\n    return a + b\n", encoding="utf-8")
    return project


@pytest.fixture
def initialized_project(tmp_project: Path) -> Path:
    """Create a project with .ensemble initialized."""
    ens_dir = tmp_project / ".ensemble"
    (ens_dir / "agents").mkdir(parents=True)
    (ens_dir / "config.yaml").write_text(
        "ai:\n  temperature: 0.2\n  retry:\n    max_retries: 1\n",
        encoding="utf-8",
    )
    return tmp_project
