"""AI provider data models."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field

from .base import ApiModel


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class CompletionRequest(BaseModel):
    """Provider-agnostic chat completion request."""

    model_id: str = ""
    model: str
    messages: list[ChatMessage]
    max_tokens: int = 4096
    temperature: float = 0.7
    api_config: dict = Field(default_factory=dict)


class CompletionResult(BaseModel):
    success: bool
    content: Optional[str] = None
    tokens_used: Optional[dict] = None
    confidence: float = 0.8
    error: Optional[str] = None
    error_kind: Optional[str] = None
    status_code: Optional[int] = None


class Alternative(ApiModel):
    response: str
    model: str
    confidence: float


class GenerationResult(ApiModel):
    response: str
    model: str
    tokens: Optional[dict] = None
    confidence: float = 0.8
    alternatives: list[Alternative] = []
    consensus: Optional[float] = None
    failed_models: list[str] = []
    duration_seconds: float = 0
