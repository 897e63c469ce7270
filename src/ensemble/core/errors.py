"""Error taxonomy for the orchestration core."""

from __future__ import annotations

from enum import Enum
from typing import Optional, Sequence


class ErrorKind(str, Enum):
    RATE_LIMIT = "rate_limit"
    CONTEXT_TOO_LARGE = "context_too_large"
    API_ERROR = "api_error"


class EnsembleError(Exception):
    """Base class. ``kind`` is set when the failure class is known at the raise site."""

    kind: Optional[ErrorKind] = None


class ModelNotFoundError(EnsembleError):
    def __init__(self, model_id: str):
        super().__init__(f"Model {model_id} not found")
        self.model_id = model_id


class DuplicateModelError(EnsembleError):
    def __init__(self, model_id: str):
        super().__init__(f"Model {model_id} is already registered")
        self.model_id = model_id


class NoAvailableModelError(EnsembleError):
    def __init__(self, capability: str):
        super().__init__(f"No active model supports capability '{capability}'")
        self.capability = capability


class AllModelsFailedError(EnsembleError):
    def __init__(self, failures: Sequence[tuple[str, BaseException]]):
        detail = "; ".join(f"{model_id}: {exc}" for model_id, exc in failures)
        super().__init__(f"All models failed to generate response ({detail})")
        self.failures = list(failures)


class AgentNotFoundError(EnsembleError):
    def __init__(self, agent_id: str):
        super().__init__(f"Agent {agent_id} not found")
        self.agent_id = agent_id


class DuplicateAgentError(EnsembleError):
    def __init__(self, agent_id: str):
        super().__init__(f"Agent {agent_id} is already registered")
        self.agent_id = agent_id


class WorkflowNotFoundError(EnsembleError):
    def __init__(self, workflow_id: str):
        super().__init__(f"Workflow {workflow_id} not found")
        self.workflow_id = workflow_id


class DuplicateWorkflowError(EnsembleError):
    def __init__(self, workflow_id: str):
        super().__init__(f"Workflow {workflow_id} is already registered")
        self.workflow_id = workflow_id


class ProviderCallError(EnsembleError):
    """Transport or HTTP-level failure reported by a provider adapter."""

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.API_ERROR,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.provider = provider
        self.status_code = status_code


class ParseError(EnsembleError):
    """Agent output could not be parsed. Never escapes ``run_agent``."""


class OperationCancelledError(EnsembleError):
    def __init__(self, message: str = "Operation cancelled"):
        super().__init__(message)


class WorkflowAbortedError(EnsembleError):
    """A critical step failed; the remaining steps were not run.

    ``kind`` is the failed step's own kind, so classifiers see the original
    failure class.
    """

    def __init__(self, workflow_id: str, step: str, cause: BaseException, results: list, errors: list):
        super().__init__(f"Workflow {workflow_id} aborted at critical step '{step}': {cause}")
        self.kind = getattr(cause, "kind", None)
        self.workflow_id = workflow_id
        self.step = step
        self.results = results
        self.errors = errors


class ExecutionClosedError(EnsembleError):
    def __init__(self, execution_id: str):
        super().__init__(f"Execution {execution_id} is already finished")
        self.execution_id = execution_id


class ExecutionNotFoundError(EnsembleError):
    def __init__(self, execution_id: str):
        super().__init__(f"Execution {execution_id} not found")
        self.execution_id = execution_id
