"""Generation engine: model selection, dispatch, retries and consensus."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from ..models.model import Capability, ModelState
from ..models.provider import ChatMessage, CompletionRequest, GenerationResult
from .consensus import combine_responses
from .context import ContextManager
from .errors import AllModelsFailedError, NoAvailableModelError, OperationCancelledError
from .recovery import ErrorClassifier, RecoveryPolicy
from .registry import ModelRegistry
from .tasks import gather_settled, raise_if_cancelled, sleep_cancellable

logger = logging.getLogger("ensemble.engine")


@dataclass
class GenerateOptions:
    capability: Capability | str = Capability.CHAT
    context: str = ""
    preferred_model: Optional[str] = None
    multi_model: bool = False
    max_retries: int = 3
    system_prompt: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    include_context: bool = True
    # Called on every attempt with the bounded context; its result replaces
    # the prompt and the context is not sent as a separate message
    build_prompt: Optional[Callable[[str], str]] = None
    # Set by recovery after a context_too_large failure
    max_context_size: Optional[int] = None
    reduce_context: bool = False
    cancel_event: Optional[asyncio.Event] = None


def build_messages(prompt: str, context: str = "", system_prompt: Optional[str] = None) -> list[ChatMessage]:
    messages = []
    if system_prompt:
        messages.append(ChatMessage(role="system", content=system_prompt))
    if context:
        messages.append(ChatMessage(role="system", content=f"Context: {context}"))
    messages.append(ChatMessage(role="user", content=prompt))
    return messages


class GenerationEngine:
    def __init__(
        self,
        registry: ModelRegistry,
        context_manager: Optional[ContextManager] = None,
        classifier: Optional[ErrorClassifier] = None,
        recovery: Optional[RecoveryPolicy] = None,
        multi_model_count: int = 3,
        default_temperature: float = 0.7,
    ):
        self.registry = registry
        self.context_manager = context_manager or ContextManager()
        self.classifier = classifier or ErrorClassifier()
        self.recovery = recovery or RecoveryPolicy(max_context_size=self.context_manager.max_context_size)
        self.multi_model_count = multi_model_count
        self.default_temperature = default_temperature

    async def generate(self, prompt: str, options: Optional[GenerateOptions] = None) -> GenerationResult:
        """Generate a response, retrying single-model failures per the recovery policy.

        Selection and cancellation failures are not retried. When retries run
        out the most recent provider error propagates unchanged.
        """
        options = options or GenerateOptions()
        Capability(options.capability)
        attempt = options
        retries_left = options.max_retries

        while True:
            raise_if_cancelled(options.cancel_event)
            try:
                return await self._generate_once(prompt, attempt)
            except (NoAvailableModelError, AllModelsFailedError, OperationCancelledError):
                raise
            except Exception as e:
                kind = self.classifier.classify(e)
                decision = self.recovery.recover(e, kind, attempt, retries_left)
                retries_left -= 1
                logger.warning(
                    "Generation failed (%s): %s. Retrying in %ss (%s, %d retries left)",
                    kind.value, e, decision.delay, decision.action, retries_left,
                )
                await sleep_cancellable(decision.delay, options.cancel_event)
                attempt = decision.options

    async def _generate_once(self, prompt: str, options: GenerateOptions) -> GenerationResult:
        start = time.monotonic()
        capability = Capability(options.capability)

        context = ""
        if options.context and (options.include_context or options.build_prompt is not None):
            if options.reduce_context:
                logger.debug("Reducing context to %s characters", options.max_context_size)
            context = self.context_manager.process(
                options.context, prompt, max_context_size=options.max_context_size
            )
        if options.build_prompt is not None:
            prompt, context = options.build_prompt(context), ""

        count = self.multi_model_count if options.multi_model else 1
        models = self.registry.select(capability, options.preferred_model, count)
        if not models:
            raise NoAvailableModelError(capability.value)

        messages = build_messages(prompt, context, options.system_prompt)
        if options.multi_model:
            result = await self._generate_multi(models, messages, options)
        else:
            result = await self._call_model(models[0], messages, options)

        result.duration_seconds = round(time.monotonic() - start, 3)
        self.context_manager.record_task(
            capability.value,
            {
                "model": result.model,
                "duration_seconds": result.duration_seconds,
                "confidence": result.confidence,
                "multi_model": options.multi_model,
            },
        )
        return result

    async def _generate_multi(
        self,
        models: list[ModelState],
        messages: list[ChatMessage],
        options: GenerateOptions,
    ) -> GenerationResult:
        outcomes = await gather_settled(
            [self._call_model(model, messages, options) for model in models],
            options.cancel_event,
        )

        successes: list[GenerationResult] = []
        failures: list[tuple[str, BaseException]] = []
        for model, outcome in zip(models, outcomes):
            if isinstance(outcome, BaseException):
                failures.append((model.id, outcome))
            else:
                successes.append(outcome)

        raise_if_cancelled(options.cancel_event)
        if not successes:
            raise AllModelsFailedError(failures)

        logger.debug("Multi-model generation: %d/%d models succeeded", len(successes), len(models))
        combined = combine_responses(successes)
        combined.failed_models = [model_id for model_id, _ in failures]
        return combined

    async def _call_model(
        self,
        model: ModelState,
        messages: list[ChatMessage],
        options: GenerateOptions,
    ) -> GenerationResult:
        raise_if_cancelled(options.cancel_event)
        provider = self.registry.provider_for(model)

        max_tokens = model.config.max_tokens
        if options.max_tokens:
            max_tokens = min(options.max_tokens, max_tokens)
        temperature = options.temperature
        if temperature is None:
            temperature = model.provider_config.get("temperature", self.default_temperature)

        request = CompletionRequest(
            model_id=model.id,
            model=model.config.model,
            messages=messages,
            max_tokens=max_tokens,
            temperature=temperature,
            api_config=model.provider_config,
        )

        try:
            completion = await provider.chat(request)
        except Exception as e:
            await self.registry.record_failure(model.id, e)
            logger.warning("Model %s failed: %s", model.id, e)
            raise

        await self.registry.record_success(model.id)
        return GenerationResult(
            response=completion.content or "",
            model=model.id,
            tokens=completion.tokens_used,
            confidence=completion.confidence,
        )
