"""Tests for core/recovery.py."""

from __future__ import annotations

import pytest

from ensemble.core.engine import GenerateOptions
from ensemble.core.errors import ErrorKind, ProviderCallError
from ensemble.core.recovery import ErrorClassifier, RecoveryPolicy


class TestErrorClassifier:
    def setup_method(self):
        self.classifier = ErrorClassifier()

    def test_structured_kind_wins(self):
        error = ProviderCallError("token budget exhausted", kind=ErrorKind.RATE_LIMIT)
        assert self.classifier.classify(error) == ErrorKind.RATE_LIMIT

    @pytest.mark.parametrize(
        "message, expected",
        [
            ("Rate limit exceeded", ErrorKind.RATE_LIMIT),
            ("You exceeded your current quota", ErrorKind.RATE_LIMIT),
            ("maximum context length is 8192 tokens", ErrorKind.CONTEXT_TOO_LARGE),
            ("too many tokens in request", ErrorKind.CONTEXT_TOO_LARGE),
            ("connection reset by peer", ErrorKind.API_ERROR),
        ],
    )
    def test_message_fallback(self, message, expected):
        assert self.classifier.classify(RuntimeError(message)) == expected


class TestRecoveryPolicy:
    def test_context_too_large_halves_budget(self):
        policy = RecoveryPolicy(max_context_size=1000)
        decision = policy.recover(RuntimeError("x"), ErrorKind.CONTEXT_TOO_LARGE, GenerateOptions(), 2)
        assert decision.action == "reduce_context"
        assert decision.options.reduce_context is True
        assert decision.options.max_context_size == 500

        again = policy.recover(RuntimeError("x"), ErrorKind.CONTEXT_TOO_LARGE, decision.options, 1)
        assert again.options.max_context_size == 250

    def test_rate_limit_switches_to_fallback(self):
        policy = RecoveryPolicy(fallback_model="local-mistral")
        options = GenerateOptions(preferred_model="openai-gpt4o")
        decision = policy.recover(RuntimeError("x"), ErrorKind.RATE_LIMIT, options, 1)
        assert decision.options.preferred_model == "local-mistral"
        assert decision.delay == 60
        # The caller's options are never mutated
        assert options.preferred_model == "openai-gpt4o"

    def test_api_error_plain_retry(self):
        policy = RecoveryPolicy(delays={"api_error": 2})
        options = GenerateOptions(preferred_model="claude-sonnet")
        decision = policy.recover(RuntimeError("x"), ErrorKind.API_ERROR, options, 1)
        assert decision.action == "retry"
        assert decision.delay == 2
        assert decision.options == options
        assert decision.options is not options

    def test_exhausted_retries_reraise(self):
        policy = RecoveryPolicy()
        error = ProviderCallError("503 | unavailable")
        with pytest.raises(ProviderCallError) as exc_info:
            policy.recover(error, ErrorKind.API_ERROR, GenerateOptions(), 0)
        assert exc_info.value is error
