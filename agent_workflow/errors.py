"""Structured error types for agent_workflow.

Only a handful of these ever escape ``AgentWorkflowManager.run``:

    from agent_workflow.errors import AgentNotRegisteredError, MaxTurnsExceededError

    try:
        result = await manager.run("planner", request)
    except AgentNotRegisteredError:
        # Registry problem: fix the wiring, retrying won't help
        ...
    except MaxTurnsExceededError:
        # Agent kept asking for tools; inspect the conversation on the error
        ...

Tool failures and exhausted generation retries are absorbed into the
returned conversation as text instead of being raised.
"""

from __future__ import annotations

from typing import Any


class WorkflowError(Exception):
    """Base for all agent_workflow errors."""

    def __init__(self, message: str, original: Exception | None = None) -> None:
        super().__init__(message)
        self.original = original


class ConfigurationError(WorkflowError):
    """Missing credentials or an invalid tool configuration document."""


class AgentNotRegisteredError(WorkflowError):
    """Run requested for an agent name the manager does not know."""

    def __init__(self, agent_name: str) -> None:
        super().__init__(f"Agent '{agent_name}' is not registered.")
        self.agent_name = agent_name


class ToolNotRegisteredError(WorkflowError):
    """Agent requested a tool the manager does not know. Fatal for the run."""

    def __init__(self, tool_name: str) -> None:
        super().__init__(f"Tool '{tool_name}' is not registered.")
        self.tool_name = tool_name


class MaxTurnsExceededError(WorkflowError):
    """Turn loop ran out of turns without a tool-call-free reply."""

    def __init__(self, max_turns: int, conversation: list[Any] | None = None) -> None:
        super().__init__(f"Maximum number of agent turns reached ({max_turns}).")
        self.max_turns = max_turns
        self.conversation = conversation or []


class DelegationDepthExceededError(WorkflowError):
    """A tool tried to start a nested run deeper than the configured limit."""

    def __init__(self, agent_name: str, depth: int, max_depth: int) -> None:
        super().__init__(
            f"Delegation to agent '{agent_name}' at depth {depth} exceeds "
            f"the maximum delegation depth of {max_depth}."
        )
        self.agent_name = agent_name
        self.depth = depth
        self.max_depth = max_depth


class RunCancelledError(WorkflowError):
    """The run's cancel event was set."""


class TranslationError(WorkflowError):
    """Provider request/response could not be translated.

    Raised for lost or ambiguous response chaining and for malformed
    response shapes. Fatal for the attempt; the retry executor decides
    whether the turn is attempted again.
    """


class ToolInputError(WorkflowError, ValueError):
    """Tool arguments are missing or have the wrong shape."""


# ---------------------------------------------------------------------------
# Provider errors
# ---------------------------------------------------------------------------


class LLMError(WorkflowError):
    """Base for provider call failures."""


class LLMRateLimitError(LLMError):
    """Transient rate limit (429): retry with backoff."""


class LLMQuotaExhaustedError(LLMError):
    """Permanent quota/billing exhaustion: don't retry, try fallback or abort."""


class LLMAuthError(LLMError):
    """Authentication failed (401/403): API key invalid or forbidden."""


class LLMContentFilterError(LLMError):
    """Content policy violation: request was blocked."""


class LLMTransientError(LLMError):
    """Server error (500/502/503), timeout, connection: retry."""


class LLMModelNotFoundError(LLMError):
    """Model doesn't exist (404)."""


# Patterns that indicate permanent quota exhaustion (not transient rate limit).
_QUOTA_PATTERNS = [
    "quota",
    "billing",
    "insufficient",
    "exceeded your current",
    "plan and billing",
    "account deactivated",
    "account suspended",
]

_PERMANENT_ERRORS: tuple[type[LLMError], ...] = (
    LLMQuotaExhaustedError,
    LLMAuthError,
    LLMContentFilterError,
    LLMModelNotFoundError,
)


def _litellm_error_types(module: Any, names: tuple[str, ...]) -> tuple[type[BaseException], ...]:
    """Resolve optional litellm exception classes without static attribute coupling."""
    out: list[type[BaseException]] = []
    for name in names:
        candidate = getattr(module, name, None)
        if isinstance(candidate, type) and issubclass(candidate, BaseException):
            out.append(candidate)
    return tuple(out)


def classify_error(error: Exception) -> type[LLMError]:
    """Classify any exception into an LLMError subtype.

    Uses litellm exception types first, falls back to string matching.
    """
    import litellm as _lt

    auth_types = _litellm_error_types(_lt, ("AuthenticationError", "PermissionDeniedError"))
    if auth_types and isinstance(error, auth_types):
        return LLMAuthError

    not_found_types = _litellm_error_types(_lt, ("NotFoundError",))
    if not_found_types and isinstance(error, not_found_types):
        return LLMModelNotFoundError

    content_types = _litellm_error_types(_lt, ("ContentPolicyViolationError",))
    if content_types and isinstance(error, content_types):
        return LLMContentFilterError

    budget_types = _litellm_error_types(_lt, ("BudgetExceededError",))
    if budget_types and isinstance(error, budget_types):
        return LLMQuotaExhaustedError

    rate_types = _litellm_error_types(_lt, ("RateLimitError",))
    if rate_types and isinstance(error, rate_types):
        error_str = str(error).lower()
        if any(p in error_str for p in _QUOTA_PATTERNS):
            return LLMQuotaExhaustedError
        return LLMRateLimitError

    transient_types = _litellm_error_types(
        _lt,
        (
            "InternalServerError",
            "ServiceUnavailableError",
            "APIConnectionError",
            "BadGatewayError",
            "Timeout",
        ),
    )
    if transient_types and isinstance(error, transient_types):
        return LLMTransientError

    # Fallback: string pattern matching
    error_str = str(error).lower()

    if any(p in error_str for p in _QUOTA_PATTERNS):
        return LLMQuotaExhaustedError
    if "401" in error_str or "authentication" in error_str or "unauthorized" in error_str:
        return LLMAuthError
    if "403" in error_str or "forbidden" in error_str or "permission" in error_str:
        return LLMAuthError
    if "404" in error_str or "not found" in error_str or "does not exist" in error_str:
        return LLMModelNotFoundError
    if "content" in error_str and ("policy" in error_str or "filter" in error_str):
        return LLMContentFilterError
    if "rate" in error_str and "limit" in error_str:
        return LLMRateLimitError
    if any(p in error_str for p in ("timeout", "timed out", "connection", "500", "502", "503", "server error")):
        return LLMTransientError

    return LLMError


def wrap_error(error: Exception) -> LLMError:
    """Wrap an exception in the appropriate LLMError subclass.

    If the error is already an LLMError, returns it unchanged.
    """
    if isinstance(error, LLMError):
        return error
    cls = classify_error(error)
    return cls(str(error), original=error)


def retry_transient_errors(error: BaseException) -> bool:
    """Retry predicate that gives up on permanent provider failures.

    Pass as ``RetryPolicy(retry_predicate=retry_transient_errors)`` to stop
    burning attempts on bad keys, exhausted quota, blocked content, or a
    model name that does not exist.
    """
    return not isinstance(error, _PERMANENT_ERRORS)
