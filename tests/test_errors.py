"""Tests for agent_workflow.errors: taxonomy, provider error classification and wrapping."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import litellm

from agent_workflow.errors import (
    AgentNotRegisteredError,
    DelegationDepthExceededError,
    LLMAuthError,
    LLMContentFilterError,
    LLMError,
    LLMModelNotFoundError,
    LLMQuotaExhaustedError,
    LLMRateLimitError,
    LLMTransientError,
    MaxTurnsExceededError,
    ToolInputError,
    ToolNotRegisteredError,
    TranslationError,
    WorkflowError,
    classify_error,
    retry_transient_errors,
    wrap_error,
)


# ---------------------------------------------------------------------------
# classify_error: litellm exception types
# ---------------------------------------------------------------------------


class TestClassifyLitellmTypes:
    def test_auth_error(self):
        err = litellm.AuthenticationError(
            message="Invalid API key", model="gpt-5-nano", llm_provider="openai"
        )
        assert classify_error(err) is LLMAuthError

    def test_permission_denied(self):
        err = litellm.PermissionDeniedError(
            message="Forbidden", model="gpt-5-nano", llm_provider="openai", response=MagicMock()
        )
        assert classify_error(err) is LLMAuthError

    def test_not_found(self):
        err = litellm.NotFoundError(
            message="Model not found", model="gpt-99", llm_provider="openai"
        )
        assert classify_error(err) is LLMModelNotFoundError

    def test_content_policy(self):
        err = litellm.ContentPolicyViolationError(
            message="Content blocked", model="gpt-5-nano", llm_provider="openai"
        )
        assert classify_error(err) is LLMContentFilterError

    def test_rate_limit_transient(self):
        err = litellm.RateLimitError(
            message="Rate limit exceeded, please retry after 1s",
            model="gpt-5-nano",
            llm_provider="openai",
        )
        assert classify_error(err) is LLMRateLimitError

    def test_rate_limit_quota(self):
        err = litellm.RateLimitError(
            message="You exceeded your current quota, check billing",
            model="gpt-5-nano",
            llm_provider="openai",
        )
        assert classify_error(err) is LLMQuotaExhaustedError

    def test_internal_server_error(self):
        err = litellm.InternalServerError(
            message="Internal server error", model="gpt-5-nano", llm_provider="openai"
        )
        assert classify_error(err) is LLMTransientError

    def test_api_connection_error(self):
        err = litellm.APIConnectionError(
            message="Connection reset", model="gpt-5-nano", llm_provider="openai"
        )
        assert classify_error(err) is LLMTransientError


# ---------------------------------------------------------------------------
# classify_error: string fallback
# ---------------------------------------------------------------------------


class TestClassifyStringFallback:
    def test_quota_string(self):
        assert classify_error(Exception("exceeded your current quota")) is LLMQuotaExhaustedError

    def test_auth_401(self):
        assert classify_error(Exception("Error 401: unauthorized")) is LLMAuthError

    def test_not_found_404(self):
        assert classify_error(Exception("Error 404: model does not exist")) is LLMModelNotFoundError

    def test_content_filter(self):
        assert classify_error(Exception("content policy violation")) is LLMContentFilterError

    def test_rate_limit_string(self):
        assert classify_error(Exception("rate limit exceeded")) is LLMRateLimitError

    def test_timeout_string(self):
        assert classify_error(Exception("Request timed out after 60s")) is LLMTransientError

    def test_unknown(self):
        assert classify_error(Exception("something completely unexpected")) is LLMError


# ---------------------------------------------------------------------------
# wrap_error
# ---------------------------------------------------------------------------


class TestWrapError:
    def test_wrap_generic_exception(self):
        original = litellm.AuthenticationError(
            message="Invalid API key", model="gpt-5-nano", llm_provider="openai"
        )
        wrapped = wrap_error(original)
        assert isinstance(wrapped, LLMAuthError)
        assert wrapped.original is original
        assert "Invalid API key" in str(wrapped)

    def test_wrap_preserves_llm_error(self):
        original = LLMRateLimitError("already wrapped")
        assert wrap_error(original) is original


# ---------------------------------------------------------------------------
# Workflow errors
# ---------------------------------------------------------------------------


class TestWorkflowErrors:
    def test_all_subclass_workflow_error(self):
        for cls in [
            AgentNotRegisteredError,
            ToolNotRegisteredError,
            MaxTurnsExceededError,
            DelegationDepthExceededError,
            TranslationError,
            ToolInputError,
            LLMError,
        ]:
            assert issubclass(cls, WorkflowError)

    def test_messages(self):
        assert str(AgentNotRegisteredError("Planner")) == "Agent 'Planner' is not registered."
        assert str(ToolNotRegisteredError("search")) == "Tool 'search' is not registered."
        assert str(MaxTurnsExceededError(3)) == "Maximum number of agent turns reached (3)."

    def test_max_turns_carries_conversation(self):
        err = MaxTurnsExceededError(2, ["a", "b"])
        assert err.max_turns == 2
        assert err.conversation == ["a", "b"]

    def test_delegation_depth_fields(self):
        err = DelegationDepthExceededError("helper", 6, 5)
        assert (err.agent_name, err.depth, err.max_depth) == ("helper", 6, 5)
        assert "helper" in str(err)

    def test_tool_input_error_is_value_error(self):
        with pytest.raises(ValueError):
            raise ToolInputError("bad prompt")

    def test_original_attribute(self):
        original = ValueError("raw error")
        err = TranslationError("wrapped", original=original)
        assert err.original is original


class TestRetryTransientErrors:
    @pytest.mark.parametrize("cls", [
        LLMQuotaExhaustedError, LLMAuthError, LLMContentFilterError, LLMModelNotFoundError,
    ])
    def test_permanent_errors_not_retried(self, cls):
        assert retry_transient_errors(cls("nope")) is False

    @pytest.mark.parametrize("error", [
        LLMRateLimitError("slow down"),
        LLMTransientError("503"),
        TranslationError("lost link"),
        RuntimeError("boom"),
    ])
    def test_everything_else_retried(self, error):
        assert retry_transient_errors(error) is True
