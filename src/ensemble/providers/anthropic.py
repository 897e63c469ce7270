"""Anthropic Messages API provider."""

from __future__ import annotations

import httpx

from ..models.provider import CompletionRequest, CompletionResult
from .base import BaseProvider


class AnthropicProvider(BaseProvider):
    name = "anthropic"
    API_URL = "https://api.anthropic.com/v1/messages"
    DEFAULT_KEY_ENV = "ANTHROPIC_API_KEY"
    CONFIDENCE = 0.85

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        api_key = self._get_api_key(request)
        if not api_key:
            return self._missing_key(request)

        # System and context messages collapse into the top-level system field
        system_parts = [m.content for m in request.messages if m.role == "system"]
        messages = [
            {"role": m.role, "content": m.content}
            for m in request.messages
            if m.role != "system"
        ]

        body: dict = {
            "model": request.model,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "messages": messages,
        }
        if system_parts:
            body["system"] = "\n\n".join(system_parts)

        headers = {
            "x-api-key": api_key,
            "anthropic-version": self.config.get("anthropic_version", "2023-06-01"),
            "content-type": "application/json",
        }

        try:
            async with self._client() as client:
                response = await client.post(self._url(request), json=body, headers=headers)
                response.raise_for_status()
                data = response.json()

            content = None
            for block in data.get("content", []):
                if block.get("type") == "text":
                    content = block.get("text")
                    break

            usage = data.get("usage", {})
            tokens = {
                "input": usage.get("input_tokens", 0),
                "output": usage.get("output_tokens", 0),
            }
            tokens["total"] = tokens["input"] + tokens["output"]

            return CompletionResult(
                success=True, content=content or "", tokens_used=tokens, confidence=self.CONFIDENCE
            )
        except httpx.HTTPStatusError as e:
            return self._http_failure(e)
        except Exception as e:
            return CompletionResult(success=False, error=str(e) or type(e).__name__)
