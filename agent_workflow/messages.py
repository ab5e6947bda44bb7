"""Conversation data model.

Messages are immutable; a conversation is a list of messages that is
only ever appended to.
"""

from __future__ import annotations

import json as _json
from dataclasses import dataclass, field
from typing import Any, Union

ROLES: frozenset[str] = frozenset({"user", "assistant", "tool", "system"})


@dataclass(frozen=True)
class TextContent:
    text: str

    def __post_init__(self) -> None:
        if not isinstance(self.text, str):
            raise TypeError("text must be a string")


@dataclass(frozen=True)
class ToolResultContent:
    """Output of one tool call, tied to the call that requested it."""

    tool_call_id: str
    output: str
    is_error: bool = False

    def __post_init__(self) -> None:
        if not self.tool_call_id or not self.tool_call_id.strip():
            raise ValueError("Tool call id cannot be empty.")
        if not isinstance(self.output, str):
            raise TypeError("output must be a string")


Content = Union[TextContent, ToolResultContent]


@dataclass(frozen=True)
class Message:
    """One conversation entry. Content order is significant."""

    role: str
    content: tuple[Content, ...] = ()
    author: str | None = None

    def __post_init__(self) -> None:
        if self.role not in ROLES:
            raise ValueError(f"Unknown role {self.role!r}; expected one of {sorted(ROLES)}.")
        # Accept any iterable of content but always store a tuple.
        object.__setattr__(self, "content", tuple(self.content))

    @classmethod
    def from_text(cls, role: str, text: str, author: str | None = None) -> "Message":
        return cls(role, (TextContent(text),), author)

    @classmethod
    def from_tool_result(cls, tool_call_id: str, output: str, is_error: bool = False) -> "Message":
        return cls("tool", (ToolResultContent(tool_call_id, output, is_error),))

    @property
    def text(self) -> str:
        """Text segments joined with newlines; empty for tool-result messages."""
        return "\n".join(c.text for c in self.content if isinstance(c, TextContent))

    @property
    def tool_results(self) -> list[ToolResultContent]:
        return [c for c in self.content if isinstance(c, ToolResultContent)]


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation requested by an agent.

    ``arguments`` is the decoded JSON document exactly as the model sent it;
    nothing here validates it against the tool's schema.
    """

    name: str
    call_id: str
    arguments: Any = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValueError("Tool name cannot be empty.")
        if not self.call_id or not self.call_id.strip():
            raise ValueError("Call id cannot be empty.")

    @property
    def arguments_json(self) -> str:
        return _json.dumps(self.arguments, ensure_ascii=False)


@dataclass(frozen=True)
class ToolExecutionResult:
    """What a tool hands back: output text plus an error flag."""

    call_id: str
    output: str
    is_error: bool = False

    def to_message(self) -> Message:
        return Message.from_tool_result(self.call_id, self.output, self.is_error)


@dataclass(frozen=True)
class AgentRequest:
    messages: tuple[Message, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "messages", tuple(self.messages))

    @classmethod
    def from_text(cls, text: str, role: str = "user") -> "AgentRequest":
        return cls((Message.from_text(role, text),))


@dataclass(frozen=True)
class AgentRunResult:
    """Outcome of one generate call: an optional reply plus requested tool calls."""

    assistant_message: Message | None = None
    tool_calls: tuple[ToolCall, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "tool_calls", tuple(self.tool_calls))


@dataclass
class WorkflowResult:
    """Result of ``AgentWorkflowManager.run``.

    Attributes:
        final_message: Last assistant message of a tool-call-free turn, or
            None when the agent never produced text on that turn.
        conversation: Full conversation including the request messages and
            every appended assistant and tool message.
    """

    final_message: Message | None
    conversation: list[Message] = field(default_factory=list)

    @property
    def final_text(self) -> str | None:
        return self.final_message.text if self.final_message is not None else None
