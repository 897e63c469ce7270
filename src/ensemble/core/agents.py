"""Agent definitions, prompt building and response parsing.

Defines the built-in analysis agents. System prompts are bundled markdown
and can be overridden per project in ``.ensemble/agents/<agent-id>.md``.
"""

from __future__ import annotations

import json
import logging
import re
from importlib import resources
from pathlib import Path
from typing import Any, Iterable, Optional

from pydantic import ValidationError

from ..models.agent import RESULT_TYPES, AgentDef, AgentInfo, AgentKind, AgentResultBase
from .config import CONFIG_DIR
from .errors import AgentNotFoundError, DuplicateAgentError, ParseError

logger = logging.getLogger("ensemble.agents")

DEFAULT_SCORE = 75
DEFAULT_CONFIDENCE = 0.8

AGENT_DEFS: dict[str, dict] = {
    "syntax-analyzer": {
        "name": "Syntax Analyzer",
        "description": "Analyzes code for syntax errors, missing imports, and structural issues",
        "kind": AgentKind.SYNTAX,
        "model": "openai-gpt4o",
        "temperature": 0.1,
        "max_tokens": 2000,
    },
    "performance-analyzer": {
        "name": "Performance Analyzer",
        "description": "Identifies performance bottlenecks and suggests optimizations",
        "kind": AgentKind.PERFORMANCE,
        "model": "claude-sonnet",
        "temperature": 0.2,
        "max_tokens": 2500,
    },
    "security-analyzer": {
        "name": "Security Analyzer",
        "description": "Identifies security vulnerabilities and unsafe practices",
        "kind": AgentKind.SECURITY,
        "model": "openai-gpt4o",
        "temperature": 0.1,
        "max_tokens": 2000,
    },
    "code-improver": {
        "name": "Code Improver",
        "description": "Provides improved code versions that fix identified issues",
        "kind": AgentKind.IMPROVEMENT,
        "model": "claude-sonnet",
        "temperature": 0.3,
        "max_tokens": 3000,
    },
    "architecture-analyzer": {
        "name": "Architecture Analyzer",
        "description": "Analyzes code architecture, design patterns, and system structure",
        "kind": AgentKind.ARCHITECTURE,
        "model": "claude-sonnet",
        "temperature": 0.2,
        "max_tokens": 2500,
    },
    "documentation-agent": {
        "name": "Documentation Agent",
        "description": "Generates documentation, comments, and code explanations",
        "kind": AgentKind.DOCUMENTATION,
        "model": "openai-gpt4o",
        "temperature": 0.3,
        "max_tokens": 3000,
    },
}

ALL_AGENT_IDS = list(AGENT_DEFS.keys())

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


def load_agent_instructions(agent_id: str, project_path: Optional[Path] = None) -> str:
    """Load an agent's system prompt.

    Checks project-specific override first, then falls back to bundled data.
    """
    if project_path:
        override = Path(project_path) / CONFIG_DIR / "agents" / f"{agent_id}.md"
        if override.exists():
            return override.read_text(encoding="utf-8")

    try:
        data_pkg = resources.files("ensemble.data.agents")
        return (data_pkg / f"{agent_id}.md").read_text(encoding="utf-8")
    except (FileNotFoundError, ModuleNotFoundError):
        return (
            f"You are the {agent_id} agent. Review the code for issues in your domain.\n"
            'Return JSON: {"summary": "Overall assessment", "score": 0-100}\n'
        )


def default_agents(project_path: Optional[Path] = None) -> list[AgentDef]:
    return [
        AgentDef(id=agent_id, system_prompt=load_agent_instructions(agent_id, project_path), **fields)
        for agent_id, fields in AGENT_DEFS.items()
    ]


class AgentRegistry:
    def __init__(self, agents: Optional[Iterable[AgentDef]] = None):
        self._agents: dict[str, AgentDef] = {}
        for agent in agents or ():
            self.register(agent)

    def __contains__(self, agent_id: str) -> bool:
        return agent_id in self._agents

    def register(self, agent: AgentDef) -> AgentDef:
        if agent.id in self._agents:
            raise DuplicateAgentError(agent.id)
        self._agents[agent.id] = agent
        return agent

    def get(self, agent_id: str) -> AgentDef:
        try:
            return self._agents[agent_id]
        except KeyError:
            raise AgentNotFoundError(agent_id) from None

    def all(self) -> list[AgentDef]:
        return list(self._agents.values())

    def info(self) -> list[AgentInfo]:
        return [AgentInfo(id=a.id, name=a.name, description=a.description) for a in self._agents.values()]


def build_agent_prompt(
    agent: AgentDef,
    code: str,
    language: Optional[str] = None,
    context: Optional[str] = None,
    issues: Optional[Any] = None,
) -> str:
    extra = ""
    if context:
        extra += f"Additional context:\n{context}\n\n"
    if issues:
        extra += f"Known issues to address:\n{json.dumps(issues, indent=2, default=str)}\n\n"
    return agent.prompt_template.format(language=language or "unknown", code=code, context=extra)


def extract_json_object(content: str) -> dict:
    """Parse the outermost ``{...}`` span of ``content``."""
    match = _JSON_OBJECT.search(content or "")
    if not match:
        raise ParseError("No JSON object found in response")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise ParseError(f"Invalid JSON in response: {e}") from e
    if not isinstance(data, dict):
        raise ParseError("Response JSON is not an object")
    return data


def parse_agent_response(content: str, agent: AgentDef) -> AgentResultBase:
    """Parse agent output into its result variant.

    Unparseable output degrades to a summary-only result carrying
    ``parse_error`` instead of failing.
    """
    result_type = RESULT_TYPES[agent.kind]
    variant = result_type.model_fields["variant"].default
    try:
        data = extract_json_object(content)
        try:
            return result_type.model_validate({**data, "variant": variant})
        except ValidationError as e:
            raise ParseError(f"Response does not match the {variant} schema: {e.error_count()} errors") from e
    except ParseError as e:
        logger.info("Agent %s returned unstructured output: %s", agent.id, e)
        return result_type(summary=content, score=DEFAULT_SCORE, raw=content, parse_error=str(e))


def result_confidence(result: AgentResultBase) -> float:
    if result.score is None:
        return DEFAULT_CONFIDENCE
    return min(max(result.score / 100, 0.0), 1.0)
