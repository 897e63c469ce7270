"""OpenAI chat completions provider."""

from __future__ import annotations

import httpx

from ..models.provider import CompletionRequest, CompletionResult
from .base import BaseProvider


class OpenAIProvider(BaseProvider):
    name = "openai"
    API_URL = "https://api.openai.com/v1/chat/completions"
    DEFAULT_KEY_ENV = "OPENAI_API_KEY"
    CONFIDENCE = 0.8

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        api_key = self._get_api_key(request)
        if not api_key:
            return self._missing_key(request)

        body = {
            "model": request.model,
            "messages": [m.model_dump() for m in request.messages],
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "stream": False,
        }

        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

        try:
            async with self._client() as client:
                response = await client.post(self._url(request), json=body, headers=headers)
                response.raise_for_status()
                data = response.json()

            content = data["choices"][0]["message"]["content"]
            usage = data.get("usage", {})
            tokens = {
                "input": usage.get("prompt_tokens", 0),
                "output": usage.get("completion_tokens", 0),
                "total": usage.get("total_tokens", 0),
            }

            return CompletionResult(
                success=True, content=content, tokens_used=tokens, confidence=self.CONFIDENCE
            )
        except httpx.HTTPStatusError as e:
            return self._http_failure(e)
        except Exception as e:
            return CompletionResult(success=False, error=str(e) or type(e).__name__)
