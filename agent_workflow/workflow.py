"""Multi-turn orchestration of agents and tools.

Usage:
    from agent_workflow import AgentWorkflowManager, AgentRequest

    manager = AgentWorkflowManager(max_turns=8)
    manager.register_agent(planner)
    manager.register_tool(FunctionTool(lookup_order))
    result = await manager.run("planner", AgentRequest.from_text("Where is order 42?"))
    print(result.final_text)

Each turn asks the agent for a reply (through the retry executor), appends
it, and, if the reply requested tools, runs them concurrently and appends
their results in call order. A tool may start a nested run against another
agent through its invocation context; nested runs are bounded by
``max_delegation_depth``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from agent_workflow.agent import Agent, AgentCapabilities
from agent_workflow.config import (
    DEFAULT_MAX_DELEGATION_DEPTH,
    DEFAULT_MAX_TURNS,
    WorkflowConfig,
)
from agent_workflow.errors import (
    AgentNotRegisteredError,
    DelegationDepthExceededError,
    MaxTurnsExceededError,
    RunCancelledError,
    ToolNotRegisteredError,
    WorkflowError,
)
from agent_workflow.hooks import WorkflowHooks
from agent_workflow.messages import AgentRequest, Message, ToolCall, ToolExecutionResult, WorkflowResult
from agent_workflow.retry import RetryPolicy, execute_with_retry
from agent_workflow.tools import Tool, ToolDefinition, ToolInvocationContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AgentRegistration:
    """An agent plus the capabilities it was registered with."""

    agent: Agent
    capabilities: AgentCapabilities


def tool_error_output(tool_name: str, error: Exception) -> str:
    """Text recorded as the tool result when a tool raises."""
    if isinstance(error, (ValueError, WorkflowError)):
        return str(error)
    return f"Tool '{tool_name}' failed: {error}"


class AgentWorkflowManager:
    """Registry of agents and tools plus the turn loop that drives them.

    Registration is expected to happen once at startup; it is not safe to
    register while runs are in flight.
    """

    def __init__(
        self,
        max_turns: int = DEFAULT_MAX_TURNS,
        retry_policy: RetryPolicy | None = None,
        *,
        max_delegation_depth: int = DEFAULT_MAX_DELEGATION_DEPTH,
        hooks: WorkflowHooks | None = None,
    ) -> None:
        if max_turns <= 0:
            raise ValueError("Max turns must be greater than zero.")
        if max_delegation_depth < 0:
            raise ValueError("Max delegation depth cannot be negative.")
        self.max_turns = max_turns
        self.retry_policy = retry_policy or RetryPolicy()
        self.max_delegation_depth = max_delegation_depth
        self.hooks = hooks
        self._agents: dict[str, AgentRegistration] = {}
        self._tools: dict[str, Tool] = {}

    @classmethod
    def from_config(
        cls, config: WorkflowConfig, hooks: WorkflowHooks | None = None,
    ) -> "AgentWorkflowManager":
        return cls(
            max_turns=config.max_turns,
            retry_policy=RetryPolicy(
                max_attempts=config.max_attempts,
                delay_between_attempts=config.retry_delay,
            ),
            max_delegation_depth=config.max_delegation_depth,
            hooks=hooks,
        )

    # -- registries -------------------------------------------------------

    def register_agent(self, agent: Agent, *, capabilities: AgentCapabilities | None = None) -> None:
        """Register (or replace) an agent under its case-insensitive name.

        Capabilities default to the agent's own ``capabilities`` attribute
        when it has one, else to none.
        """
        if agent is None:
            raise ValueError("agent is required")
        if capabilities is None:
            capabilities = getattr(agent, "capabilities", None) or AgentCapabilities()
        key = agent.descriptor.name.lower()
        if key in self._agents:
            logger.debug("Replacing registered agent %s", agent.descriptor.name)
        self._agents[key] = AgentRegistration(agent, capabilities)

    def register_tool(self, tool: Tool) -> None:
        """Register (or replace) a tool under its case-insensitive name."""
        if tool is None:
            raise ValueError("tool is required")
        key = tool.name.lower()
        if key in self._tools:
            logger.debug("Replacing registered tool %s", tool.name)
        self._tools[key] = tool

    @property
    def agent_names(self) -> list[str]:
        return [r.agent.descriptor.name for r in self._agents.values()]

    @property
    def tool_names(self) -> list[str]:
        return [t.name for t in self._tools.values()]

    def get_tool(self, name: str) -> Tool | None:
        return self._tools.get(name.lower())

    def resolve_tools(self, capabilities: AgentCapabilities) -> list[ToolDefinition]:
        """Tool definitions visible to an agent, in registration order."""
        scoped = capabilities.scoped_tool_names
        if scoped:
            return [t.definition for key, t in self._tools.items() if key in scoped]
        return [t.definition for t in self._tools.values()]

    # -- runs -------------------------------------------------------------

    async def run(
        self,
        agent_name: str,
        request: AgentRequest,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> WorkflowResult:
        """Run an agent until it replies without requesting tools.

        Raises:
            AgentNotRegisteredError: ``agent_name`` is unknown.
            ToolNotRegisteredError: the agent requested an unknown tool.
            MaxTurnsExceededError: ``max_turns`` turns passed without a
                tool-call-free reply.
            DelegationDepthExceededError: nested runs went deeper than
                ``max_delegation_depth``.
            RunCancelledError: ``cancel_event`` was set.
        """
        return await self._run(agent_name, request, cancel_event, depth=0)

    async def _run(
        self,
        agent_name: str,
        request: AgentRequest,
        cancel_event: asyncio.Event | None,
        depth: int,
    ) -> WorkflowResult:
        registration = self._agents.get(agent_name.lower())
        if registration is None:
            raise AgentNotRegisteredError(agent_name)
        if depth > self.max_delegation_depth:
            raise DelegationDepthExceededError(agent_name, depth, self.max_delegation_depth)

        name = registration.agent.descriptor.name
        conversation: list[Message] = list(request.messages)
        tools = self.resolve_tools(registration.capabilities)

        logger.info("Starting run of %s (depth=%d, %d tool(s) visible)", name, depth, len(tools))
        if self.hooks and self.hooks.on_run_start:
            self.hooks.on_run_start(name, depth)

        # Call ids of the agent's latest tool turn; their outputs go out on the next turn
        unanswered: list[str] = []
        try:
            return await self._turns(registration, conversation, tools, cancel_event, depth, unanswered)
        except BaseException:
            release = registration.capabilities.release_tool_calls
            if unanswered and release is not None:
                release(tuple(unanswered))
            raise

    async def _turns(
        self,
        registration: AgentRegistration,
        conversation: list[Message],
        tools: list[ToolDefinition],
        cancel_event: asyncio.Event | None,
        depth: int,
        unanswered: list[str],
    ) -> WorkflowResult:
        agent = registration.agent
        name = agent.descriptor.name

        async def call_agent(target: str, nested: AgentRequest) -> WorkflowResult:
            return await self._run(target, nested, cancel_event, depth + 1)

        for turn in range(1, self.max_turns + 1):
            if cancel_event is not None and cancel_event.is_set():
                raise RunCancelledError(f"Run of agent '{name}' was cancelled.")

            run_result = await execute_with_retry(
                agent,
                tuple(conversation),
                tools,
                self.retry_policy,
                capabilities=registration.capabilities,
                cancel_event=cancel_event,
                hooks=self.hooks,
            )

            if run_result.assistant_message is not None:
                conversation.append(run_result.assistant_message)
            unanswered[:] = [call.call_id for call in run_result.tool_calls]

            if not run_result.tool_calls:
                result = WorkflowResult(run_result.assistant_message, conversation)
                logger.info("Run of %s finished after %d turn(s)", name, turn)
                if self.hooks and self.hooks.on_run_end:
                    self.hooks.on_run_end(name, result)
                return result

            # Resolve every tool before starting any of them
            resolved: list[tuple[Tool, ToolCall]] = []
            for call in run_result.tool_calls:
                tool = self._tools.get(call.name.lower())
                if tool is None:
                    raise ToolNotRegisteredError(call.name)
                resolved.append((tool, call))

            logger.info(
                "%s turn %d: dispatching %d tool call(s): %s",
                name, turn, len(resolved), ", ".join(call.name for _, call in resolved),
            )
            tasks = [
                asyncio.ensure_future(self._invoke_tool(
                    tool,
                    ToolInvocationContext(call, call_agent, depth=depth, cancel_event=cancel_event),
                ))
                for tool, call in resolved
            ]
            try:
                results = await asyncio.gather(*tasks)
            except BaseException:
                # A fatal error in one tool ends the run; stop its siblings first
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
                raise
            conversation.extend(r.to_message() for r in results)

        raise MaxTurnsExceededError(self.max_turns, conversation)

    async def _invoke_tool(self, tool: Tool, context: ToolInvocationContext) -> ToolExecutionResult:
        call = context.tool_call
        if self.hooks and self.hooks.on_tool_start:
            self.hooks.on_tool_start(call)
        logger.debug("Invoking tool %s (call_id=%s) with arguments: %s", tool.name, call.call_id, call.arguments_json)
        try:
            result = await tool.invoke(context)
        except (DelegationDepthExceededError, RunCancelledError):
            raise
        except Exception as exc:
            logger.warning("Tool %s (call_id=%s) raised: %s", tool.name, call.call_id, exc, exc_info=True)
            result = ToolExecutionResult(call.call_id, tool_error_output(tool.name, exc), is_error=True)
        else:
            logger.debug(
                "Tool %s (call_id=%s) returned (error=%s): %s",
                tool.name, call.call_id, result.is_error, result.output,
            )
        if self.hooks and self.hooks.on_tool_end:
            self.hooks.on_tool_end(call, result)
        return result

