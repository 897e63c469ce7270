"""Local (offline) model path backed by an Ollama-compatible server.

``LocalModelManager`` keeps one handle per model id. Loading is idempotent
and may spawn the server process when a ``command`` is configured; unloading
evicts the handle, asks the server to drop the weights and terminates any
process the manager started.
"""

from __future__ import annotations

import asyncio
import logging
import shlex
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Union

import httpx

from ..core.errors import ErrorKind, ProviderCallError
from ..models.provider import CompletionRequest, CompletionResult
from .base import BaseProvider, classify_http_status

logger = logging.getLogger("ensemble.local")

DEFAULT_ENDPOINT = "http://localhost:11434"


@dataclass
class LocalModelHandle:
    model_id: str
    model_name: str
    endpoint: str
    process: Optional[asyncio.subprocess.Process] = None
    loaded_at: datetime = field(default_factory=datetime.now)


class LocalModelManager:
    CONFIDENCE = 0.7

    def __init__(
        self,
        local_config: dict,
        timeout: float = 120,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = local_config
        self.endpoint = local_config.get("endpoint", DEFAULT_ENDPOINT)
        self.keep_alive = local_config.get("keep_alive", "30m")
        self.startup_timeout = local_config.get("startup_timeout_seconds", 60)
        self.timeout = timeout
        self._transport = transport
        self._loaded: dict[str, LocalModelHandle] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    def get_loaded_models(self) -> list[str]:
        return list(self._loaded)

    def is_loaded(self, model_id: str) -> bool:
        return model_id in self._loaded

    async def load_model(
        self,
        model_id: str,
        model_name: str,
        provider_config: Optional[dict] = None,
    ) -> LocalModelHandle:
        """Return the cached handle, loading the model on first use."""
        if model_id in self._loaded:
            return self._loaded[model_id]

        lock = self._locks.setdefault(model_id, asyncio.Lock())
        async with lock:
            # A concurrent caller may have finished the load while we waited
            if model_id in self._loaded:
                return self._loaded[model_id]

            provider_config = provider_config or {}
            endpoint = provider_config.get("endpoint") or self.endpoint
            command = provider_config.get("command") or self.config.get("command")

            logger.info("Loading local model %s (%s)", model_id, model_name)
            process = await self._spawn(command) if command else None
            try:
                await self._wait_until_ready(endpoint, wait=process is not None)
                await self._warm_up(endpoint, model_name)
            except BaseException:
                if process is not None:
                    await self._terminate(process)
                raise

            handle = LocalModelHandle(
                model_id=model_id,
                model_name=model_name,
                endpoint=endpoint,
                process=process,
            )
            self._loaded[model_id] = handle
            return handle

    async def generate(self, request: CompletionRequest) -> CompletionResult:
        handle = await self.load_model(request.model_id or request.model, request.model, request.api_config)

        body = {
            "model": handle.model_name,
            "messages": [m.model_dump() for m in request.messages],
            "stream": False,
            "keep_alive": self.keep_alive,
            "options": {
                "temperature": request.temperature,
                "num_predict": request.max_tokens,
            },
        }

        try:
            async with self._client() as client:
                response = await client.post(f"{handle.endpoint.rstrip('/')}/api/chat", json=body)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            raise self._status_error(e) from e
        except httpx.HTTPError as e:
            raise ProviderCallError(f"Local model {handle.model_id} call failed: {e}", provider="local") from e

        input_tokens = data.get("prompt_eval_count", 0)
        output_tokens = data.get("eval_count", 0)
        return CompletionResult(
            success=True,
            content=data.get("message", {}).get("content", ""),
            tokens_used={"input": input_tokens, "output": output_tokens, "total": input_tokens + output_tokens},
            confidence=self.CONFIDENCE,
        )

    async def unload_model(self, model_id: str) -> None:
        """Evict a model. A no-op for ids that were never loaded."""
        handle = self._loaded.pop(model_id, None)
        if handle is None:
            return

        try:
            async with self._client() as client:
                await client.post(
                    f"{handle.endpoint.rstrip('/')}/api/generate",
                    json={"model": handle.model_name, "keep_alive": 0},
                )
        except httpx.HTTPError as e:
            logger.warning("Could not release weights for %s: %s", model_id, e)

        if handle.process is not None:
            await self._terminate(handle.process)
        logger.info("Unloaded local model %s", model_id)

    async def aclose(self) -> None:
        for model_id in list(self._loaded):
            await self.unload_model(model_id)

    async def _spawn(self, command: Union[str, list[str]]) -> asyncio.subprocess.Process:
        argv = shlex.split(command) if isinstance(command, str) else list(command)
        logger.debug("Starting local model server: %s", " ".join(argv))
        return await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )

    async def _wait_until_ready(self, endpoint: str, wait: bool) -> None:
        url = f"{endpoint.rstrip('/')}/api/tags"
        deadline = time.monotonic() + (self.startup_timeout if wait else 0)
        async with self._client() as client:
            while True:
                try:
                    response = await client.get(url)
                    response.raise_for_status()
                    return
                except httpx.HTTPError as e:
                    if time.monotonic() >= deadline:
                        raise ProviderCallError(
                            f"Local model server at {endpoint} is not reachable: {e}",
                            provider="local",
                        ) from e
                await asyncio.sleep(0.5)

    async def _warm_up(self, endpoint: str, model_name: str) -> None:
        try:
            async with self._client() as client:
                response = await client.post(
                    f"{endpoint.rstrip('/')}/api/generate",
                    json={"model": model_name, "keep_alive": self.keep_alive},
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise self._status_error(e) from e

    @staticmethod
    def _status_error(exc: httpx.HTTPStatusError) -> ProviderCallError:
        status = exc.response.status_code
        body = exc.response.text
        return ProviderCallError(
            f"{status} | {body}",
            kind=classify_http_status(status, body),
            provider="local",
            status_code=status,
        )

    @staticmethod
    async def _terminate(process: asyncio.subprocess.Process) -> None:
        if process.returncode is not None:
            return
        process.terminate()
        try:
            await asyncio.wait_for(process.wait(), timeout=10)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()


class LocalProvider(BaseProvider):
    name = "local"

    def __init__(
        self,
        provider_config: dict,
        common_config: dict,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(provider_config, common_config, transport)
        self.manager = LocalModelManager(provider_config, timeout=self.timeout, transport=transport)

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        try:
            return await self.manager.generate(request)
        except ProviderCallError as e:
            return CompletionResult(
                success=False,
                error=str(e),
                error_kind=(e.kind or ErrorKind.API_ERROR).value,
                status_code=e.status_code,
            )

    async def probe(self, model_id: str, model_name: str, api_config: dict) -> None:
        await self.manager.load_model(model_id, model_name, api_config)

    async def aclose(self) -> None:
        await self.manager.aclose()
