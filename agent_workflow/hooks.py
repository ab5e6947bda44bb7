"""Observability hooks fired at run, provider, retry, and tool boundaries."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from agent_workflow.messages import ToolCall, ToolExecutionResult, WorkflowResult


@dataclass
class WorkflowHooks:
    """Optional callbacks for logging, metrics, or tracing.

    All fields are optional: set only the ones you need::

        hooks = WorkflowHooks(
            on_tool_start=lambda call: print(f"-> {call.name}"),
            on_retry=lambda agent, attempt, err: print(f"{agent} #{attempt}: {err}"),
        )
        manager = AgentWorkflowManager(hooks=hooks)

    Attributes:
        on_run_start: ``(agent_name, depth) → None``. Fired when a run (top-level
            or delegated) begins.
        on_run_end: ``(agent_name, WorkflowResult) → None``. Fired when a run
            returns normally.
        on_provider_request: ``(agent_name, request, attempt) → None``. Fired by
            ``ResponsesAgent`` before each provider call.
        on_provider_response: ``(agent_name, response_id) → None``. Fired after a
            provider response has been translated.
        on_retry: ``(agent_name, attempt, error) → None``. Fired for each failed
            generate attempt that the retry policy accepted.
        on_tool_start: ``(ToolCall) → None``. Fired before a tool is invoked.
        on_tool_end: ``(ToolCall, ToolExecutionResult) → None``. Fired with the
            tool's result, including converted failures.
    """

    on_run_start: Callable[[str, int], None] | None = None
    on_run_end: Callable[[str, "WorkflowResult"], None] | None = None
    on_provider_request: Callable[[str, dict[str, Any], int], None] | None = None
    on_provider_response: Callable[[str, str | None], None] | None = None
    on_retry: Callable[[str, int, Exception], None] | None = None
    on_tool_start: Callable[["ToolCall"], None] | None = None
    on_tool_end: Callable[["ToolCall", "ToolExecutionResult"], None] | None = None
