"""Agent contract and the Responses API backed agent.

An agent is anything with a ``descriptor`` and an async ``generate``. What an
agent can do beyond that (restrict its tool set, observe retry attempts) is
declared through ``AgentCapabilities`` rather than discovered by type checks;
the orchestrator keeps the capabilities in the agent's registration record.
"""

from __future__ import annotations

import asyncio
import json as _json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Protocol, Sequence, runtime_checkable

from agent_workflow.hooks import WorkflowHooks
from agent_workflow.messages import AgentRunResult, Message
from agent_workflow.provider import ResponsesClient
from agent_workflow.tools import ToolDefinition
from agent_workflow.translator import ResponsesTranslator, TranslatorState

logger = logging.getLogger(__name__)

# Models whose reasoning/verbosity hints are filled in when left unset
_MODEL_DEFAULTS: dict[str, tuple[str | None, str | None]] = {
    "gpt-5-nano": ("minimal", "low"),
}


@dataclass(frozen=True)
class AgentDescriptor:
    """Immutable definition of a provider-backed agent.

    Attributes:
        name: Registry name (matched case-insensitively).
        instructions: Sent as the request's ``instructions`` on every call.
        model: Provider model id.
        temperature, top_p, max_output_tokens: Optional sampling parameters.
        system_prompt: Prepended as a system item to every request.
        reasoning_effort, verbosity: Provider hints. Inferred from ``model``
            when None (``gpt-5-nano`` → ``"minimal"`` / ``"low"``).
    """

    name: str
    instructions: str
    model: str
    temperature: float | None = None
    top_p: float | None = None
    max_output_tokens: int | None = None
    system_prompt: str | None = None
    reasoning_effort: str | None = None
    verbosity: str | None = None

    def __post_init__(self) -> None:
        for field_name in ("name", "instructions", "model"):
            value = getattr(self, field_name)
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"Agent descriptor {field_name} cannot be empty.")
        effort, verbosity = _MODEL_DEFAULTS.get(self.model.lower(), (None, None))
        if self.reasoning_effort is None:
            object.__setattr__(self, "reasoning_effort", effort)
        if self.verbosity is None:
            object.__setattr__(self, "verbosity", verbosity)


@dataclass(frozen=True)
class AgentCapabilities:
    """Optional behaviour an agent declares at registration.

    Attributes:
        scoped_tool_names: Tool names the agent may see. None or empty means
            the whole registry.
        on_retry_attempt: ``(attempt_number) → None``, called before every
            generate attempt (1-based).
        release_tool_calls: ``(call_ids) → None``, called when a run raises
            before the outputs of the agent's last tool calls were sent.
    """

    scoped_tool_names: frozenset[str] | None = None
    on_retry_attempt: Callable[[int], None] | None = None
    release_tool_calls: Callable[[Sequence[str]], None] | None = None

    def __post_init__(self) -> None:
        if self.scoped_tool_names is not None:
            object.__setattr__(
                self, "scoped_tool_names", frozenset(n.lower() for n in self.scoped_tool_names),
            )


@runtime_checkable
class Agent(Protocol):
    """Produces an optional reply plus tool calls for a conversation."""

    @property
    def descriptor(self) -> AgentDescriptor: ...

    async def generate(
        self,
        conversation: Sequence[Message],
        tools: Sequence[ToolDefinition],
    ) -> AgentRunResult: ...


class ResponsesAgent:
    """Agent backed by a Responses API client.

    Holds the translator state for everything this instance has sent, so a
    retried or continued call only submits what is new. Generate calls are
    serialised on an instance lock; give each independent conversation its
    own instance if they must run in parallel.
    """

    def __init__(
        self,
        client: ResponsesClient,
        descriptor: AgentDescriptor,
        tool_names: Iterable[str] | None = None,
        *,
        hooks: WorkflowHooks | None = None,
    ) -> None:
        if client is None:
            raise ValueError("client is required")
        if descriptor is None:
            raise ValueError("descriptor is required")
        self._client = client
        self._descriptor = descriptor
        self._tool_names = frozenset(n.lower() for n in (tool_names or ()))
        self._hooks = hooks
        self._translator = ResponsesTranslator(descriptor, TranslatorState())
        self._lock = asyncio.Lock()
        self._attempt = 1

    @property
    def descriptor(self) -> AgentDescriptor:
        return self._descriptor

    @property
    def tool_names(self) -> frozenset[str]:
        return self._tool_names

    @property
    def translator_state(self) -> TranslatorState:
        return self._translator.state

    @property
    def capabilities(self) -> AgentCapabilities:
        return AgentCapabilities(
            scoped_tool_names=self._tool_names or None,
            on_retry_attempt=self.notify_retry_attempt,
            release_tool_calls=self.release_tool_calls,
        )

    def notify_retry_attempt(self, attempt: int) -> None:
        self._attempt = attempt

    def release_tool_calls(self, call_ids: Sequence[str]) -> None:
        self._translator.release(call_ids)
        logger.debug("%s: released %d unanswered tool call(s)", self._descriptor.name, len(call_ids))

    async def generate(
        self,
        conversation: Sequence[Message],
        tools: Sequence[ToolDefinition],
    ) -> AgentRunResult:
        if conversation is None:
            raise ValueError("conversation is required")
        if tools is None:
            raise ValueError("tools is required")

        name = self._descriptor.name
        async with self._lock:
            prepared = self._translator.build_request(conversation, tools)
            attempt = self._attempt
            if attempt <= 1:
                if logger.isEnabledFor(logging.DEBUG):
                    logger.debug(
                        "Sending request payload for %s (attempt #1):\n%s",
                        name, _json.dumps(prepared.payload, indent=2, ensure_ascii=False, default=str),
                    )
            else:
                logger.debug("Retry attempt #%d for %s: reusing request payload from attempt #1", attempt, name)
            if self._hooks and self._hooks.on_provider_request:
                self._hooks.on_provider_request(name, prepared.payload, attempt)

            response = await self._client.create_response(prepared.payload)
            result = self._translator.parse_response(response)
            self._translator.commit(prepared)

        response_id = _response_id(response)
        logger.debug(
            "%s: response %s → %d tool call(s), text=%s",
            name, response_id, len(result.tool_calls), result.assistant_message is not None,
        )
        if self._hooks and self._hooks.on_provider_response:
            self._hooks.on_provider_response(name, response_id)
        return result


def _response_id(response: Any) -> str | None:
    if isinstance(response, dict):
        return response.get("id")
    return getattr(response, "id", None)
