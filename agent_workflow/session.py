"""Conversation accumulator for repeated exchanges with one agent."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Iterable

from agent_workflow.messages import AgentRequest, Message, WorkflowResult

if TYPE_CHECKING:
    from agent_workflow.workflow import AgentWorkflowManager


class AgentSession:
    """Keeps the running conversation between calls to ``send``.

    Each ``send`` appends the new user message, runs the agent over the whole
    conversation and adopts the conversation the run returns (which includes
    any tool and assistant turns).
    """

    def __init__(
        self,
        manager: "AgentWorkflowManager",
        agent_name: str,
        initial_conversation: Iterable[Message] | None = None,
    ) -> None:
        if manager is None:
            raise ValueError("manager is required")
        if not agent_name or not agent_name.strip():
            raise ValueError("Agent name cannot be empty.")
        self._manager = manager
        self.agent_name = agent_name
        self._conversation: list[Message] = list(initial_conversation or ())
        self.last_result: WorkflowResult | None = None

    @property
    def conversation(self) -> tuple[Message, ...]:
        return tuple(self._conversation)

    async def send(
        self,
        message: str | Message,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> WorkflowResult:
        if message is None:
            raise ValueError("message is required")
        if isinstance(message, str):
            message = Message.from_text("user", message)

        self._conversation.append(message)
        result = await self._manager.run(
            self.agent_name, AgentRequest(self._conversation), cancel_event=cancel_event,
        )
        self._conversation = list(result.conversation)
        self.last_result = result
        return result

    def get_latest_assistant_message(self) -> Message | None:
        if self.last_result is None:
            return None
        return self.last_result.final_message

    def get_latest_assistant_text(self) -> str | None:
        message = self.get_latest_assistant_message()
        if message is None:
            return None
        return message.text
