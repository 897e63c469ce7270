"""Model registry data models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from .base import ApiModel


class ProviderKind(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    LOCAL = "local"


class Capability(str, Enum):
    CHAT = "chat"
    CODE = "code"
    ANALYSIS = "analysis"
    COMPLETION = "completion"
    LARGE_CONTEXT = "large-context"


class ModelStatus(str, Enum):
    INACTIVE = "inactive"
    ACTIVE = "active"
    ERROR = "error"


class ModelConfig(BaseModel):
    """Static configuration of a named model."""

    provider: ProviderKind
    model: str
    max_tokens: int = 4096
    context_window: int = 8192
    capabilities: list[Capability] = []
    priority: int = 100
    offline: bool = False


class ModelState(BaseModel):
    """A registered model: its configuration plus runtime health."""

    id: str
    config: ModelConfig
    status: ModelStatus = ModelStatus.INACTIVE
    success_count: int = 0
    error_count: int = 0
    last_used: Optional[datetime] = None
    last_error: Optional[str] = None
    provider_config: dict = Field(default_factory=dict)

    def supports(self, capability: Capability | str) -> bool:
        return Capability(capability) in self.config.capabilities

    @property
    def is_active(self) -> bool:
        return self.status == ModelStatus.ACTIVE


class ModelStats(ApiModel):
    id: str
    provider: ProviderKind
    status: ModelStatus
    success_rate: float = 0.0
    last_used: Optional[datetime] = None
    capabilities: list[Capability] = []
