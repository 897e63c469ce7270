"""Error classification and recovery decisions.

The policy is advisory: it decides how the next attempt should differ and
how long to wait first. The generation engine owns the retry loop.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from .errors import ErrorKind

if TYPE_CHECKING:
    from .engine import GenerateOptions

logger = logging.getLogger("ensemble.recovery")

DEFAULT_DELAYS: dict[ErrorKind, float] = {
    ErrorKind.RATE_LIMIT: 60,
    ErrorKind.CONTEXT_TOO_LARGE: 0,
    ErrorKind.API_ERROR: 5,
}


class ErrorClassifier:
    """Maps a failure to an ``ErrorKind``.

    A structured ``kind`` set at the raise site wins; message sniffing is
    only the fallback for opaque upstream errors.
    """

    RATE_LIMIT_MARKERS = ("rate limit", "rate_limit", "ratelimit", "quota", "429")
    CONTEXT_MARKERS = ("context", "token")

    def classify(self, error: BaseException) -> ErrorKind:
        kind = getattr(error, "kind", None)
        if isinstance(kind, ErrorKind):
            return kind

        message = str(error).lower()
        if any(marker in message for marker in self.RATE_LIMIT_MARKERS):
            return ErrorKind.RATE_LIMIT
        if any(marker in message for marker in self.CONTEXT_MARKERS):
            return ErrorKind.CONTEXT_TOO_LARGE
        return ErrorKind.API_ERROR


@dataclass
class RecoveryDecision:
    kind: ErrorKind
    options: "GenerateOptions"
    delay: float = 0
    action: str = "retry"


class RecoveryPolicy:
    def __init__(
        self,
        fallback_model: Optional[str] = "local-mistral",
        delays: Optional[dict] = None,
        max_context_size: int = 100000,
    ):
        self.fallback_model = fallback_model
        self.delays = dict(DEFAULT_DELAYS)
        for key, value in (delays or {}).items():
            self.delays[ErrorKind(key)] = float(value)
        self.max_context_size = max_context_size

    def recover(
        self,
        error: BaseException,
        kind: ErrorKind,
        options: "GenerateOptions",
        remaining_retries: int,
    ) -> RecoveryDecision:
        """Decide the next attempt, or re-raise ``error`` once retries are spent."""
        if remaining_retries <= 0:
            raise error

        if kind == ErrorKind.CONTEXT_TOO_LARGE:
            budget = options.max_context_size or self.max_context_size
            next_options = dataclasses.replace(
                options, reduce_context=True, max_context_size=max(budget // 2, 0)
            )
            action = "reduce_context"
        elif kind == ErrorKind.RATE_LIMIT and self.fallback_model:
            next_options = dataclasses.replace(options, preferred_model=self.fallback_model)
            action = "use_fallback_model"
        else:
            next_options = dataclasses.replace(options)
            action = "retry"

        return RecoveryDecision(
            kind=kind,
            options=next_options,
            delay=self.delays.get(kind, 0),
            action=action,
        )
