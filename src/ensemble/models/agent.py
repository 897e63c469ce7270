"""Agent data models and the per-kind result variants."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .base import ApiModel
from .model import Capability

DEFAULT_PROMPT_TEMPLATE = (
    "Analyze the following {language} code:\n\n"
    "{code}\n\n"
    "{context}"
    "Please provide a thorough analysis following the specified format."
)


class AgentKind(str, Enum):
    SYNTAX = "syntax"
    PERFORMANCE = "performance"
    SECURITY = "security"
    IMPROVEMENT = "improvement"
    ARCHITECTURE = "architecture"
    DOCUMENTATION = "documentation"
    GENERIC = "generic"


class AgentDef(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    kind: AgentKind = AgentKind.GENERIC
    system_prompt: str
    prompt_template: str = DEFAULT_PROMPT_TEMPLATE
    model: str
    capability: Capability = Capability.CODE
    temperature: float = 0.7
    max_tokens: int = 2000


class AgentInfo(ApiModel):
    id: str
    name: str
    description: str


class Issue(BaseModel):
    """One issue, vulnerability or bottleneck reported by an agent."""

    model_config = ConfigDict(extra="allow")

    type: Optional[str] = None
    severity: Optional[str] = None

    @field_validator("severity", mode="before")
    @classmethod
    def _normalize_severity(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value


class AgentResultBase(ApiModel):
    model_config = ConfigDict(extra="allow")

    summary: Optional[str] = None
    score: Optional[float] = None
    raw: Optional[str] = None
    parse_error: Optional[str] = None

    def collect(self, *names: str) -> list:
        """Concatenate the list-valued entries ``names`` (typed or extra)."""
        data = self.model_dump()
        collected: list = []
        for name in names:
            value = data.get(name)
            if isinstance(value, list):
                collected.extend(value)
        return collected


class SyntaxResult(AgentResultBase):
    variant: Literal["syntax"] = "syntax"
    issues: list[Issue] = []


class PerformanceResult(AgentResultBase):
    variant: Literal["performance"] = "performance"
    bottlenecks: list[Issue] = []
    optimizations: list[Any] = []


class SecurityResult(AgentResultBase):
    variant: Literal["security"] = "security"
    vulnerabilities: list[Issue] = []
    recommendations: list[Any] = []


class ImprovementResult(AgentResultBase):
    variant: Literal["improvement"] = "improvement"
    improvements: list[Any] = []
    suggestions: list[Any] = []
    overall_quality: Optional[str] = None


class ArchitectureResult(AgentResultBase):
    variant: Literal["architecture"] = "architecture"
    architecture: dict = {}
    modularity: dict = {}
    scalability: dict = {}


class DocumentationResult(AgentResultBase):
    variant: Literal["documentation"] = "documentation"
    documentation: dict = {}
    comments: list[Any] = []
    readme_sections: list[Any] = []


class GenericResult(AgentResultBase):
    variant: Literal["generic"] = "generic"


AgentResult = Annotated[
    Union[
        SyntaxResult,
        PerformanceResult,
        SecurityResult,
        ImprovementResult,
        ArchitectureResult,
        DocumentationResult,
        GenericResult,
    ],
    Field(discriminator="variant"),
]

RESULT_TYPES: dict[AgentKind, type[AgentResultBase]] = {
    AgentKind.SYNTAX: SyntaxResult,
    AgentKind.PERFORMANCE: PerformanceResult,
    AgentKind.SECURITY: SecurityResult,
    AgentKind.IMPROVEMENT: ImprovementResult,
    AgentKind.ARCHITECTURE: ArchitectureResult,
    AgentKind.DOCUMENTATION: DocumentationResult,
    AgentKind.GENERIC: GenericResult,
}


class AgentExecutionResult(ApiModel):
    execution_id: str
    agent: str
    agent_name: str
    result: AgentResult
    confidence: float
    model: Optional[str] = None
    timestamp: datetime
    execution_time: float = 0
