"""AI provider abstraction.

Adapters translate a provider-agnostic ``CompletionRequest`` into one
provider's wire format. They never retry: the generation engine owns the
retry loop. Failures come back as an unsuccessful ``CompletionResult`` with a
structured ``error_kind`` which ``chat`` turns into a ``ProviderCallError``.
"""

from __future__ import annotations

import os
from typing import Optional, Protocol, runtime_checkable

import httpx

from ..core.errors import ErrorKind, ProviderCallError
from ..models.model import ProviderKind
from ..models.provider import ChatMessage, CompletionRequest, CompletionResult
from ..utils.sanitize import sanitize_error

PROVIDER_SECTIONS = tuple(kind.value for kind in ProviderKind)

CONNECTION_TEST_MESSAGE = "Hello, this is a connection test."

_CONTEXT_MARKERS = (
    "context_length",
    "context length",
    "maximum context",
    "too long",
    "too many tokens",
    "prompt is too long",
)


@runtime_checkable
class AIProvider(Protocol):
    """Protocol that all AI providers must implement."""

    name: str

    async def complete(self, request: CompletionRequest) -> CompletionResult: ...


def classify_http_status(status_code: int, body: str = "") -> ErrorKind:
    """Map an HTTP failure to an error kind at the call site."""
    if status_code == 429:
        return ErrorKind.RATE_LIMIT
    if status_code == 413:
        return ErrorKind.CONTEXT_TOO_LARGE
    lowered = (body or "").lower()
    if status_code == 400 and any(marker in lowered for marker in _CONTEXT_MARKERS):
        return ErrorKind.CONTEXT_TOO_LARGE
    return ErrorKind.API_ERROR


class BaseProvider:
    """Base class with shared config handling and error mapping."""

    name: str = "base"
    API_URL: str = ""
    DEFAULT_KEY_ENV: Optional[str] = None

    def __init__(
        self,
        provider_config: dict,
        common_config: dict,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = provider_config
        self.common = common_config
        self.timeout = common_config.get("timeout_seconds", 120)
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    def _key_env(self, request: CompletionRequest) -> Optional[str]:
        return request.api_config.get("api_key_env") or self.config.get(
            "api_key_env", self.DEFAULT_KEY_ENV
        )

    def _get_api_key(self, request: CompletionRequest) -> Optional[str]:
        if request.api_config.get("api_key"):
            return request.api_config["api_key"]
        env_var = self._key_env(request)
        return os.environ.get(env_var) if env_var else None

    def _url(self, request: CompletionRequest) -> str:
        return request.api_config.get("base_url") or self.config.get("base_url") or self.API_URL

    def _missing_key(self, request: CompletionRequest) -> CompletionResult:
        return CompletionResult(
            success=False,
            error=f"API key not found in environment variable: {self._key_env(request)}",
            error_kind=ErrorKind.API_ERROR.value,
            status_code=401,
        )

    def _http_failure(self, exc: httpx.HTTPStatusError) -> CompletionResult:
        status = exc.response.status_code
        body = exc.response.text
        return CompletionResult(
            success=False,
            error=f"{status} | {body}",
            error_kind=classify_http_status(status, body).value,
            status_code=status,
        )

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        raise NotImplementedError

    async def chat(self, request: CompletionRequest) -> CompletionResult:
        """Run ``complete`` and raise ``ProviderCallError`` on failure."""
        result = await self.complete(request)
        if result.success:
            return result
        raise ProviderCallError(
            sanitize_error(result.error or f"{self.name} call failed"),
            kind=ErrorKind(result.error_kind or ErrorKind.API_ERROR.value),
            provider=self.name,
            status_code=result.status_code,
        )

    async def probe(self, model_id: str, model_name: str, api_config: dict) -> None:
        """Connection test used when a model is initialised."""
        await self.chat(
            CompletionRequest(
                model_id=model_id,
                model=model_name,
                messages=[ChatMessage(role="user", content=CONNECTION_TEST_MESSAGE)],
                max_tokens=16,
                api_config=api_config,
            )
        )

    async def aclose(self) -> None:
        return None


def get_ai_provider(
    config: dict,
    provider_name: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> BaseProvider:
    """Factory for the adapter of one provider kind, configured from ``config``."""
    ai_config = config.get("ai", {})
    provider_config = dict(ai_config.get(provider_name, {}))

    # Common config is the ai section minus provider sub-configs and the model table
    common_config = {
        k: v
        for k, v in ai_config.items()
        if k not in PROVIDER_SECTIONS and k not in ("models", "context", "retry")
    }

    if provider_name == ProviderKind.OPENAI.value:
        from .openai_provider import OpenAIProvider
        return OpenAIProvider(provider_config, common_config, transport)
    elif provider_name == ProviderKind.ANTHROPIC.value:
        from .anthropic import AnthropicProvider
        return AnthropicProvider(provider_config, common_config, transport)
    elif provider_name == ProviderKind.LOCAL.value:
        from .local import LocalProvider
        return LocalProvider(provider_config, common_config, transport)
    else:
        raise ValueError(f"Unknown AI provider: {provider_name}")


def build_providers(
    config: dict,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> dict[ProviderKind, BaseProvider]:
    return {kind: get_ai_provider(config, kind.value, transport) for kind in ProviderKind}
