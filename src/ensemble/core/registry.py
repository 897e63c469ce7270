"""Model registry: configuration and runtime health of named models."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Iterable, Mapping, Optional

from ..models.model import Capability, ModelConfig, ModelState, ModelStats, ModelStatus, ProviderKind
from ..utils.sanitize import sanitize_error
from .errors import DuplicateModelError, ModelNotFoundError

if TYPE_CHECKING:
    from ..providers.base import BaseProvider

logger = logging.getLogger("ensemble.registry")


class ModelRegistry:
    def __init__(self, providers: Optional[Mapping[ProviderKind, "BaseProvider"]] = None):
        self.providers: dict[ProviderKind, BaseProvider] = dict(providers or {})
        self._models: dict[str, ModelState] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def __contains__(self, model_id: str) -> bool:
        return model_id in self._models

    def __len__(self) -> int:
        return len(self._models)

    def register(self, model_id: str, config: ModelConfig | dict) -> ModelState:
        if model_id in self._models:
            raise DuplicateModelError(model_id)
        if isinstance(config, dict):
            config = ModelConfig.model_validate(config)
        state = ModelState(id=model_id, config=config)
        self._models[model_id] = state
        self._locks[model_id] = asyncio.Lock()
        logger.debug("Registered model %s (%s/%s)", model_id, config.provider.value, config.model)
        return state

    def register_many(self, models: Mapping[str, dict]) -> None:
        for model_id, config in models.items():
            self.register(model_id, config)

    def get(self, model_id: str) -> ModelState:
        try:
            return self._models[model_id]
        except KeyError:
            raise ModelNotFoundError(model_id) from None

    def all(self) -> list[ModelState]:
        return list(self._models.values())

    def provider_for(self, model: ModelState) -> "BaseProvider":
        provider = self.providers.get(model.config.provider)
        if provider is None:
            raise ValueError(f"Unsupported provider: {model.config.provider.value}")
        return provider

    async def initialize(self, model_id: str, provider_config: Optional[dict] = None) -> ModelState:
        """Load (local) or connection-test (remote) a model and mark it active.

        On failure the model is left in ``error`` with ``last_error`` set and
        the exception propagates.
        """
        model = self.get(model_id)
        provider_config = provider_config or {}
        try:
            provider = self.provider_for(model)
            await provider.probe(model.id, model.config.model, provider_config)
        except Exception as e:
            model.status = ModelStatus.ERROR
            model.last_error = sanitize_error(str(e))
            logger.warning("Model %s failed to initialize: %s", model_id, model.last_error)
            raise

        model.status = ModelStatus.ACTIVE
        model.provider_config = provider_config
        logger.info("Model %s is active", model_id)
        return model

    def set_status(self, model_id: str, status: ModelStatus) -> None:
        self.get(model_id).status = status

    def select(
        self,
        capability: Capability | str,
        preferred_id: Optional[str] = None,
        count: int = 1,
    ) -> list[ModelState]:
        """Active models supporting ``capability``, best first, at most ``count``."""
        capability = Capability(capability)
        candidates = sorted(
            (m for m in self._models.values() if m.is_active and m.supports(capability)),
            key=lambda m: m.config.priority,
        )

        if preferred_id:
            preferred = next((m for m in candidates if m.id == preferred_id), None)
            if preferred is not None:
                candidates = [preferred] + [m for m in candidates if m.id != preferred_id]

        return candidates[: max(count, 0)]

    def offline_models(self) -> list[ModelState]:
        return sorted(
            (m for m in self._models.values() if m.config.offline),
            key=lambda m: m.config.priority,
        )

    async def record_success(self, model_id: str) -> None:
        model = self.get(model_id)
        async with self._locks[model_id]:
            model.success_count += 1
            model.last_used = datetime.now()
            model.status = ModelStatus.ACTIVE

    async def record_failure(self, model_id: str, error: BaseException | str) -> None:
        model = self.get(model_id)
        async with self._locks[model_id]:
            model.error_count += 1
            model.last_error = sanitize_error(str(error))

    def stats(self, model_ids: Optional[Iterable[str]] = None) -> list[ModelStats]:
        models = [self.get(i) for i in model_ids] if model_ids is not None else self.all()
        results = []
        for model in models:
            total = model.success_count + model.error_count
            results.append(
                ModelStats(
                    id=model.id,
                    provider=model.config.provider,
                    status=model.status,
                    success_rate=model.success_count / total if total else 0.0,
                    last_used=model.last_used,
                    capabilities=list(model.config.capabilities),
                )
            )
        return results
