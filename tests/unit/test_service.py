"""Tests for core/service.py."""

from __future__ import annotations

from pathlib import Path

import pytest

from conftest import FakeProvider, agent_reply
from ensemble.core.config import get_effective_config
from ensemble.core.errors import ProviderCallError
from ensemble.core.service import AIService, initialize_project
from ensemble.core.workflows import RunOptions
from ensemble.models.model import ModelStatus, ProviderKind


@pytest.fixture
def service(registry) -> AIService:
    config = get_effective_config(overrides={"ai": {"retry": {"delays": {"rate_limit": 0, "api_error": 0}}}})
    return AIService(config, registry=registry)


class TestConstruction:
    def test_registers_configured_models(self):
        service = AIService(get_effective_config())
        ids = [s.id for s in service.get_model_stats()]
        assert ids == ["openai-gpt4o", "openai-gpt4o-mini", "claude-sonnet", "local-codellama", "local-mistral"]
        assert all(s.status == ModelStatus.INACTIVE for s in service.get_model_stats())
        assert set(service.registry.providers) == set(ProviderKind)

    def test_catalogs(self, service):
        assert len(service.get_available_agents()) == 6
        assert "code-review" in [w.id for w in service.get_available_workflows()]


class TestInitializeModels:
    @pytest.mark.asyncio
    async def test_failures_reported_not_raised(self, service, fake_provider):
        for model in service.registry.all():
            service.registry.set_status(model.id, ModelStatus.INACTIVE)
        fake_provider.probe_failures["claude-sonnet"] = ProviderCallError("401 | invalid x-api-key")

        failures = await service.initialize_models()

        assert list(failures) == ["claude-sonnet"]
        assert service.registry.get("openai-gpt4o").status == ModelStatus.ACTIVE
        assert service.registry.get("claude-sonnet").status == ModelStatus.ERROR

    @pytest.mark.asyncio
    async def test_provider_config_from_sections(self, service):
        await service.initialize_model("openai-gpt4o")
        provider_config = service.registry.get("openai-gpt4o").provider_config
        assert provider_config["api_key_env"] == "OPENAI_API_KEY"
        assert provider_config["temperature"] == 0.7


class TestOperations:
    @pytest.mark.asyncio
    async def test_generate(self, service):
        result = await service.generate("hello")
        assert result.model == "openai-gpt4o"
        assert service.get_task_history("chat")

    @pytest.mark.asyncio
    async def test_improve_code_passes_issues(self, service, fake_provider):
        fake_provider.script["claude-sonnet"] = [agent_reply(improvements=[], suggestions=["rename x"], score=70)]
        result = await service.improve_code("x = 1", language="python", issues=[{"type": "naming"}])

        assert result.workflow == "performance-optimization"
        assert [r.agent for r in result.results] == ["performance-analyzer", "code-improver"]
        assert result.combined.recommendations == ["rename x", "rename x"]
        assert all('"type": "naming"' in c.messages[-1].content for c in fake_provider.calls)

    @pytest.mark.asyncio
    async def test_analyze_code_runs_code_review(self, service):
        result = await service.analyze_code("x = 1", language="python")
        assert result.workflow == "code-review"
        assert result.combined.completed_steps == 5

    @pytest.mark.asyncio
    async def test_initialize_unknown_model(self, service):
        failures = await service.initialize_models(["ghost"])
        assert "ghost" in failures["ghost"]

    @pytest.mark.asyncio
    async def test_custom_workflow(self, service):
        workflow_id = service.register_custom_workflow(
            "Docs only", [{"agent": "documentation-agent", "name": "Docs"}]
        )
        result = await service.run_workflow(workflow_id, "x = 1")
        assert result.workflow == workflow_id
        assert service.list_executions(workflow_id)

    @pytest.mark.asyncio
    async def test_execution_history_and_subscribe(self, service):
        seen = []
        unsubscribe = service.subscribe(lambda entry: seen.append((entry.target, entry.status)))
        result = await service.run_agent("syntax-analyzer", "x = 1", RunOptions(language="python"))
        unsubscribe()

        assert seen == [("syntax-analyzer", "started"), ("syntax-analyzer", "completed")]
        assert [e.status for e in service.get_execution_history(result.execution_id)] == ["started", "completed"]

    @pytest.mark.asyncio
    async def test_aclose(self):
        provider = FakeProvider()
        closed = []

        async def aclose():
            closed.append(True)

        provider.aclose = aclose
        service = AIService(get_effective_config())
        service.registry.providers = {ProviderKind.LOCAL: provider}
        await service.aclose()
        assert closed == [True]


class TestInitializeProject:
    def test_creates_layout(self, tmp_project: Path):
        initialize_project(tmp_project)
        assert (tmp_project / ".ensemble" / "agents").is_dir()
        content = (tmp_project / ".ensemble" / "config.yaml").read_text(encoding="utf-8")
        assert "ensemble_version" in content

    def test_keeps_existing_config(self, initialized_project: Path):
        config_path = initialized_project / ".ensemble" / "config.yaml"
        before = config_path.read_text(encoding="utf-8")
        initialize_project(initialized_project)
        assert config_path.read_text(encoding="utf-8") == before
