"""Bounded retry around a single agent generate call.

Exhausting the attempts does not raise: the last error is folded into a
synthetic assistant message that ends the run, so callers always get a
conversation they can inspect.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Sequence

from agent_workflow.config import DEFAULT_MAX_ATTEMPTS
from agent_workflow.errors import RunCancelledError
from agent_workflow.messages import AgentRunResult, Message

if TYPE_CHECKING:
    from agent_workflow.agent import Agent, AgentCapabilities
    from agent_workflow.hooks import WorkflowHooks
    from agent_workflow.tools import ToolDefinition

logger = logging.getLogger(__name__)


def _retry_everything(error: Exception) -> bool:
    return True


@dataclass(frozen=True)
class RetryPolicy:
    """How many times a generate call is attempted and which errors qualify.

    Attributes:
        max_attempts: Total attempts, at least 1.
        delay_between_attempts: Seconds slept before every attempt after
            the first.
        retry_predicate: ``(error) → bool``. Returning False aborts the run
            with that error. Defaults to retrying everything; pass
            ``agent_workflow.errors.retry_transient_errors`` to make auth,
            quota and content-filter failures fatal.
    """

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    delay_between_attempts: float = 0.0
    retry_predicate: Callable[[Exception], bool] | None = None

    def __post_init__(self) -> None:
        if self.max_attempts <= 0:
            raise ValueError("Max attempts must be greater than zero.")
        if self.delay_between_attempts < 0:
            raise ValueError("Delay cannot be negative.")

    def should_retry(self, error: Exception) -> bool:
        predicate = self.retry_predicate or _retry_everything
        return predicate(error)


def exhausted_message(agent_name: str, attempts: int, error: Exception) -> Message:
    """Assistant message recording that every attempt failed."""
    return Message.from_text(
        "assistant",
        f"Error: agent '{agent_name}' failed after {attempts} attempts. Details: {error}",
        author=agent_name,
    )


async def _sleep(delay: float, cancel_event: asyncio.Event | None) -> None:
    if cancel_event is None:
        await asyncio.sleep(delay)
        return
    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return
    raise RunCancelledError("Run cancelled during retry delay.")


async def execute_with_retry(
    agent: "Agent",
    conversation: Sequence[Message],
    tools: Sequence["ToolDefinition"],
    policy: RetryPolicy,
    *,
    capabilities: "AgentCapabilities | None" = None,
    cancel_event: asyncio.Event | None = None,
    hooks: "WorkflowHooks | None" = None,
) -> AgentRunResult:
    """Call ``agent.generate`` until it succeeds or the policy gives up.

    Raises:
        RunCancelledError: ``cancel_event`` was set before an attempt or
            during the delay between attempts.
        Exception: whatever ``generate`` raised when ``policy`` declined to
            retry it.
    """
    name = agent.descriptor.name
    on_attempt = capabilities.on_retry_attempt if capabilities is not None else None
    last_error: Exception | None = None

    for attempt in range(1, policy.max_attempts + 1):
        if cancel_event is not None and cancel_event.is_set():
            raise RunCancelledError(f"Run of agent '{name}' was cancelled.")
        if on_attempt is not None:
            on_attempt(attempt)
        if attempt > 1 and policy.delay_between_attempts > 0:
            await _sleep(policy.delay_between_attempts, cancel_event)

        try:
            result = await agent.generate(conversation, tools)
        except Exception as exc:
            if not policy.should_retry(exc):
                raise
            last_error = exc
            logger.warning(
                "Agent %s attempt %d/%d failed: %s",
                name, attempt, policy.max_attempts, exc,
            )
            if hooks and hooks.on_retry:
                hooks.on_retry(name, attempt, exc)
            continue

        if attempt > 1:
            logger.info("Agent %s succeeded after %d attempts", name, attempt)
        return result

    assert last_error is not None
    logger.warning(
        "Agent %s failed after %d attempts; recording the error in the conversation",
        name, policy.max_attempts,
    )
    return AgentRunResult(exhausted_message(name, policy.max_attempts, last_error))
