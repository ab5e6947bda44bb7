"""Translation between the conversation model and the Responses API.

The Responses API keeps conversation state server-side: a request may name
a ``previous_response_id`` and then only needs to carry what is new since
that response. For a tool-calling turn that means the function outputs
answering the calls the previous response made, nothing else.

``ResponsesTranslator`` owns the bookkeeping that makes this work:

- ``pending_links``: call id → id of the response that issued the call.
  Filled while parsing a response, consumed when the call's output is sent.
- ``submitted_call_ids``: call ids whose outputs were already sent. A
  conversation replayed on a later turn or retried attempt never resends them.
- ``tool_names``: sanitized → original tool name for the current call only.

One translator serves one conversation at a time; ``ResponsesAgent`` holds a
lock around each build/send/parse cycle.
"""

from __future__ import annotations

import json as _json
import logging
import re
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Sequence

from agent_workflow.errors import TranslationError
from agent_workflow.messages import (
    AgentRunResult,
    Message,
    TextContent,
    ToolCall,
    ToolResultContent,
)

if TYPE_CHECKING:
    from agent_workflow.agent import AgentDescriptor
    from agent_workflow.tools import ToolDefinition

logger = logging.getLogger(__name__)

_INVALID_TOOL_NAME_CHARS = re.compile(r"[^A-Za-z0-9_-]")

_TEXT_PART_TYPES = frozenset({"output_text", "text"})
_TOOL_CALL_TYPES = frozenset({"function_call", "tool_call"})


# ---------------------------------------------------------------------------
# Tool names
# ---------------------------------------------------------------------------


def sanitize_tool_name(name: str) -> str:
    """Map a tool name onto the provider alphabet (letters, digits, '-', '_')."""
    sanitized = _INVALID_TOOL_NAME_CHARS.sub("_", name)
    return sanitized or "tool"


def build_tool_name_map(names: Sequence[str]) -> dict[str, str]:
    """Return ``sanitized → original`` with collisions suffixed ``_2``, ``_3``, ...

    Suffixes are assigned in the order the names are given, so the same tool
    list always yields the same mapping.
    """
    mapping: dict[str, str] = {}
    for original in names:
        base = sanitize_tool_name(original)
        candidate = base
        suffix = 2
        while candidate in mapping:
            candidate = f"{base}_{suffix}"
            suffix += 1
        mapping[candidate] = original
    return mapping


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------


@dataclass
class TranslatorState:
    """Chaining and idempotency bookkeeping for one agent instance."""

    pending_links: dict[str, str] = field(default_factory=dict)
    submitted_call_ids: set[str] = field(default_factory=set)
    tool_names: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class PreparedRequest:
    """A provider request plus the call ids it submits."""

    payload: dict[str, Any]
    submitted_call_ids: tuple[str, ...] = ()
    previous_response_id: str | None = None


def _get(obj: Any, name: str, default: Any = None) -> Any:
    """Read a field from a dict or an attribute-style (litellm/pydantic) object."""
    if isinstance(obj, Mapping):
        return obj.get(name, default)
    return getattr(obj, name, default)


def parse_arguments(raw: Any) -> Any:
    """Decode a tool call's argument payload.

    Providers send either a JSON-encoded string or an already-decoded JSON
    value. Missing or blank payloads decode to an empty object.
    """
    if raw is None:
        return {}
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8")
    if isinstance(raw, str):
        if not raw.strip():
            return {}
        try:
            return _json.loads(raw)
        except _json.JSONDecodeError as exc:
            raise TranslationError(
                f"Tool call arguments are not valid JSON: {raw[:200]!r}", original=exc,
            ) from exc
    return raw


# ---------------------------------------------------------------------------
# Translator
# ---------------------------------------------------------------------------


class ResponsesTranslator:
    """Builds Responses API requests and parses responses for one agent."""

    def __init__(self, descriptor: "AgentDescriptor", state: TranslatorState | None = None) -> None:
        self.descriptor = descriptor
        self.state = state or TranslatorState()

    # -- requests ---------------------------------------------------------

    def build_request(
        self,
        conversation: Sequence[Message],
        tools: Sequence["ToolDefinition"],
    ) -> PreparedRequest:
        """Translate *conversation* into a request carrying only what is new.

        Raises:
            TranslationError: an unsent tool output has no recorded upstream
                response, or the unsent outputs answer more than one response.
        """
        self.state.tool_names = build_tool_name_map([t.name for t in tools])
        sanitized_by_original = {orig: san for san, orig in self.state.tool_names.items()}

        outputs = self._unsubmitted_outputs(conversation)
        previous_response_id = self._resolve_anchor([c.tool_call_id for _, c in outputs])
        output_ids = {c.tool_call_id for _, c in outputs}
        delta_start = outputs[0][0] if previous_response_id is not None else 0

        items: list[dict[str, Any]] = []
        if self.descriptor.system_prompt:
            items.append(_message_item("system", [self.descriptor.system_prompt]))

        emitted: set[str] = set()
        submitted: list[str] = []
        for index, message in enumerate(conversation):
            if index >= delta_start and message.role != "tool":
                texts = [c.text for c in message.content if isinstance(c, TextContent) and c.text]
                if texts:
                    items.append(_message_item(message.role, texts))
            for content in message.content:
                if not isinstance(content, ToolResultContent):
                    continue
                call_id = content.tool_call_id
                if call_id not in output_ids or call_id in emitted:
                    continue
                emitted.add(call_id)
                submitted.append(call_id)
                items.append({
                    "type": "function_call_output",
                    "call_id": call_id,
                    "output": content.output,
                })

        payload: dict[str, Any] = {
            "model": self.descriptor.model,
            "instructions": self.descriptor.instructions,
            "input": items,
        }
        if previous_response_id is not None:
            payload["previous_response_id"] = previous_response_id
        if self.descriptor.temperature is not None:
            payload["temperature"] = self.descriptor.temperature
        if self.descriptor.top_p is not None:
            payload["top_p"] = self.descriptor.top_p
        if self.descriptor.max_output_tokens is not None:
            payload["max_output_tokens"] = self.descriptor.max_output_tokens
        if tools:
            payload["tools"] = [t.to_responses_tool(sanitized_by_original[t.name]) for t in tools]
        if self.descriptor.reasoning_effort:
            payload["reasoning"] = {"effort": self.descriptor.reasoning_effort}
        if self.descriptor.verbosity:
            payload["text"] = {"verbosity": self.descriptor.verbosity}

        return PreparedRequest(
            payload=payload,
            submitted_call_ids=tuple(submitted),
            previous_response_id=previous_response_id,
        )

    def _unsubmitted_outputs(
        self, conversation: Sequence[Message],
    ) -> list[tuple[int, ToolResultContent]]:
        found: list[tuple[int, ToolResultContent]] = []
        seen: set[str] = set()
        for index, message in enumerate(conversation):
            for content in message.tool_results:
                call_id = content.tool_call_id
                if call_id in self.state.submitted_call_ids or call_id in seen:
                    continue
                seen.add(call_id)
                found.append((index, content))
        return found

    def _resolve_anchor(self, call_ids: list[str]) -> str | None:
        if not call_ids:
            return None
        anchors: set[str] = set()
        for call_id in call_ids:
            response_id = self.state.pending_links.get(call_id)
            if response_id is None:
                raise TranslationError(
                    f"No upstream response recorded for tool call '{call_id}'; "
                    "response chaining state was lost."
                )
            anchors.add(response_id)
        if len(anchors) > 1:
            raise TranslationError(
                "Tool outputs answer more than one upstream response "
                f"({', '.join(sorted(anchors))}); they cannot be merged into one request."
            )
        return anchors.pop()

    def commit(self, prepared: PreparedRequest) -> None:
        """Mark the request's tool outputs as delivered."""
        for call_id in prepared.submitted_call_ids:
            self.state.submitted_call_ids.add(call_id)
            self.state.pending_links.pop(call_id, None)

    def release(self, call_ids: Sequence[str]) -> None:
        """Forget the upstream links of calls whose outputs will never be sent."""
        for call_id in call_ids:
            self.state.pending_links.pop(call_id, None)

    # -- responses --------------------------------------------------------

    def parse_response(self, response: Any) -> AgentRunResult:
        """Translate a provider response into an assistant message and tool calls.

        Tool calls are reverse-mapped to their original names and linked to
        the response id so the next request can continue from it.

        Raises:
            TranslationError: the response shape is malformed.
        """
        if response is None:
            raise TranslationError("Provider returned no response.")
        response_id = _get(response, "id")
        output = _get(response, "output")
        if output is None:
            output = []
        if not isinstance(output, (list, tuple)):
            raise TranslationError(
                f"Response output must be a list, got {type(output).__name__}."
            )

        segments: list[str] = []
        tool_calls: list[ToolCall] = []
        for item in output:
            item_type = _get(item, "type")
            if item_type == "message":
                content = _get(item, "content")
                if content is None:
                    content = []
                if not isinstance(content, (list, tuple)):
                    raise TranslationError("Message output item content must be a list.")
                for part in content:
                    part_type = _get(part, "type")
                    if part_type in _TEXT_PART_TYPES:
                        text = _get(part, "text")
                        if isinstance(text, str) and text.strip():
                            segments.append(text)
                    elif part_type in _TOOL_CALL_TYPES:
                        tool_calls.append(self._parse_tool_call(part))
            elif item_type in _TOOL_CALL_TYPES:
                tool_calls.append(self._parse_tool_call(item))
            else:
                logger.debug("Ignoring response output item of type %r", item_type)

        if tool_calls:
            if not isinstance(response_id, str) or not response_id:
                raise TranslationError(
                    "Response requested tool calls but carries no response id to continue from."
                )
            for call in tool_calls:
                self.state.pending_links[call.call_id] = response_id

        assistant_message = None
        if segments:
            assistant_message = Message.from_text(
                "assistant", "\n".join(segments), author=self.descriptor.name,
            )
        return AgentRunResult(assistant_message, tool_calls)

    def _parse_tool_call(self, item: Any) -> ToolCall:
        name = _get(item, "name")
        if not isinstance(name, str) or not name.strip():
            raise TranslationError("Function call output item is missing a name.")
        call_id = _get(item, "call_id")
        if not isinstance(call_id, str) or not call_id.strip():
            call_id = f"call_{uuid.uuid4().hex}"
        original = self.state.tool_names.get(name, name)
        return ToolCall(original, call_id, parse_arguments(_get(item, "arguments")))


def _message_item(role: str, texts: list[str]) -> dict[str, Any]:
    part_type = "output_text" if role == "assistant" else "input_text"
    return {
        "type": "message",
        "role": role,
        "content": [{"type": part_type, "text": text} for text in texts],
    }
