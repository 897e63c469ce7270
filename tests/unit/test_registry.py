"""Tests for core/registry.py."""

from __future__ import annotations

import asyncio

import pytest

from ensemble.core.errors import DuplicateModelError, ModelNotFoundError, ProviderCallError
from ensemble.core.registry import ModelRegistry
from ensemble.models.model import Capability, ModelStatus, ProviderKind


class TestRegister:
    def test_register_from_dict(self):
        reg = ModelRegistry()
        state = reg.register("m1", {"provider": "openai", "model": "gpt-4o", "capabilities": ["chat"]})
        assert state.status == ModelStatus.INACTIVE
        assert state.config.provider == ProviderKind.OPENAI
        assert "m1" in reg

    def test_duplicate_rejected(self):
        reg = ModelRegistry()
        reg.register("m1", {"provider": "openai", "model": "gpt-4o"})
        with pytest.raises(DuplicateModelError):
            reg.register("m1", {"provider": "anthropic", "model": "claude"})

    def test_get_unknown(self):
        with pytest.raises(ModelNotFoundError, match="nope"):
            ModelRegistry().get("nope")


class TestInitialize:
    @pytest.mark.asyncio
    async def test_success_marks_active(self, registry, fake_provider):
        registry.set_status("claude-sonnet", ModelStatus.INACTIVE)
        await registry.initialize("claude-sonnet", {"temperature": 0.5})
        model = registry.get("claude-sonnet")
        assert model.status == ModelStatus.ACTIVE
        assert model.provider_config == {"temperature": 0.5}

    @pytest.mark.asyncio
    async def test_failure_marks_error_and_raises(self, registry, fake_provider):
        fake_provider.probe_failures["claude-sonnet"] = ProviderCallError("401 | bad key")
        with pytest.raises(ProviderCallError):
            await registry.initialize("claude-sonnet")
        model = registry.get("claude-sonnet")
        assert model.status == ModelStatus.ERROR
        assert "bad key" in model.last_error

    @pytest.mark.asyncio
    async def test_unknown_model(self, registry):
        with pytest.raises(ModelNotFoundError):
            await registry.initialize("missing")


class TestSelect:
    def test_priority_order(self, registry):
        selected = registry.select(Capability.CHAT, count=3)
        assert [m.id for m in selected] == ["openai-gpt4o", "claude-sonnet", "local-mistral"]

    def test_capability_filter(self, registry):
        selected = registry.select("analysis", count=3)
        assert [m.id for m in selected] == ["openai-gpt4o"]

    def test_preferred_first(self, registry):
        selected = registry.select(Capability.CODE, preferred_id="local-mistral", count=2)
        assert [m.id for m in selected] == ["local-mistral", "openai-gpt4o"]

    def test_preferred_ignored_when_inactive(self, registry):
        registry.set_status("local-mistral", ModelStatus.ERROR)
        selected = registry.select(Capability.CODE, preferred_id="local-mistral")
        assert [m.id for m in selected] == ["openai-gpt4o"]

    def test_inactive_models_excluded(self, registry):
        registry.set_status("openai-gpt4o", ModelStatus.INACTIVE)
        assert registry.select("analysis") == []

    def test_offline_models(self, registry):
        assert [m.id for m in registry.offline_models()] == ["local-mistral"]


class TestCounters:
    @pytest.mark.asyncio
    async def test_concurrent_updates_not_lost(self, registry):
        await asyncio.gather(
            *[registry.record_success("openai-gpt4o") for _ in range(50)],
            *[registry.record_failure("openai-gpt4o", "boom") for _ in range(25)],
        )
        model = registry.get("openai-gpt4o")
        assert model.success_count == 50
        assert model.error_count == 25

    @pytest.mark.asyncio
    async def test_stats(self, registry):
        await registry.record_success("claude-sonnet")
        await registry.record_success("claude-sonnet")
        await registry.record_success("claude-sonnet")
        await registry.record_failure("claude-sonnet", "timeout")

        stats = {s.id: s for s in registry.stats()}
        assert stats["claude-sonnet"].success_rate == 0.75
        assert stats["claude-sonnet"].last_used is not None
        assert stats["openai-gpt4o"].success_rate == 0.0
        assert stats["openai-gpt4o"].last_used is None

    @pytest.mark.asyncio
    async def test_failure_message_sanitized(self, registry):
        await registry.record_failure("openai-gpt4o", "Authorization: Bearer abc.def.ghi failed")
        assert "abc.def.ghi" not in registry.get("openai-gpt4o").last_error
