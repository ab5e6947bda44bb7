"""Tool contract, invocation context, and built-in tools.

Plain Python functions become tools through ``FunctionTool``; the schema is
generated from type hints and the docstring:

    async def lookup_order(order_id: str, include_items: bool = False) -> dict:
        '''Fetch an order by id.'''
        ...

    manager.register_tool(FunctionTool(lookup_order))

``AgentProxyTool`` forwards a prompt to another registered agent and returns
that agent's final reply, which is how agents delegate to each other.
"""

from __future__ import annotations

import asyncio
import inspect
import json as _json
import logging
from dataclasses import dataclass, field
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Protocol,
    Union,
    get_args,
    get_origin,
    get_type_hints,
    runtime_checkable,
)

from agent_workflow.errors import ToolInputError
from agent_workflow.messages import AgentRequest, Message, ToolCall, ToolExecutionResult

if TYPE_CHECKING:
    from agent_workflow.messages import WorkflowResult

logger = logging.getLogger(__name__)

DEFAULT_TOOL_RESULT_MAX_LENGTH: int = 50_000
"""Maximum character length for a single tool result. Longer results are truncated."""

NO_FINAL_MESSAGE_OUTPUT = "Agent completed without a final message."

CONTEXT_PARAMETER = "context"
"""Parameter name through which FunctionTool injects the invocation context."""

AgentCaller = Callable[[str, AgentRequest], Awaitable["WorkflowResult"]]


# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ToolDefinition:
    """Provider-agnostic description of a tool, advertised to agents each turn."""

    name: str
    description: str
    parameters: dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValueError("Tool name cannot be empty.")
        if self.parameters is None:
            raise ValueError(f"Tool '{self.name}' is missing a parameters schema.")

    def to_responses_tool(self, name: str | None = None) -> dict[str, Any]:
        """Render as a Responses API function tool, optionally under another name."""
        return {
            "type": "function",
            "name": name or self.name,
            "description": self.description or "",
            "parameters": self.parameters,
        }


@dataclass
class ToolInvocationContext:
    """Everything a tool gets at invocation time.

    ``call_agent`` starts a full nested run against another registered
    agent, one delegation level below the run that dispatched this tool.
    """

    tool_call: ToolCall
    agent_caller: AgentCaller
    depth: int = 0
    cancel_event: asyncio.Event | None = None

    @property
    def arguments(self) -> Any:
        return self.tool_call.arguments

    async def call_agent(self, agent_name: str, request: AgentRequest) -> "WorkflowResult":
        return await self.agent_caller(agent_name, request)

    def result(self, output: str, is_error: bool = False) -> ToolExecutionResult:
        return ToolExecutionResult(self.tool_call.call_id, output, is_error)


@runtime_checkable
class Tool(Protocol):
    """A named capability an agent can invoke."""

    @property
    def name(self) -> str: ...

    @property
    def definition(self) -> ToolDefinition: ...

    async def invoke(self, context: ToolInvocationContext) -> ToolExecutionResult: ...


def truncate(text: str, max_length: int) -> str:
    """Truncate text if it exceeds max_length, appending a notice."""
    if len(text) <= max_length:
        return text
    return text[:max_length] + f"\n... [truncated at {max_length} chars]"


# ---------------------------------------------------------------------------
# Schema generation from Python callables
# ---------------------------------------------------------------------------

# Python type → JSON Schema type
_TYPE_MAP: dict[type, str] = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
}


def _type_to_json_schema(tp: Any) -> dict[str, Any]:
    """Convert a Python type annotation to a JSON Schema fragment.

    Supports: str, int, float, bool, list[X], dict, Optional[X].
    Raises ValueError for unsupported types.
    """
    origin = get_origin(tp)
    args = get_args(tp)

    # Optional[X] → unwrap to X (nullable not needed for function calling)
    if origin is Union:
        non_none = [a for a in args if a is not type(None)]
        if len(non_none) == 1:
            return _type_to_json_schema(non_none[0])

    if origin is list or tp is list:
        schema: dict[str, Any] = {"type": "array"}
        if args:
            schema["items"] = _type_to_json_schema(args[0])
        return schema

    if origin is dict or tp is dict:
        return {"type": "object"}

    if tp in _TYPE_MAP:
        return {"type": _TYPE_MAP[tp]}

    raise ValueError(
        f"Unsupported type annotation: {tp!r}. "
        f"Supported: str, int, float, bool, list[X], dict, Optional[X]."
    )


def callable_to_tool_definition(
    fn: Callable[..., Any],
    *,
    name: str | None = None,
    description: str | None = None,
) -> ToolDefinition:
    """Build a ToolDefinition from a callable's signature and docstring.

    Every parameter except ``context`` must carry a type annotation.
    The description defaults to the docstring's first line.
    """
    sig = inspect.signature(fn)
    try:
        hints = get_type_hints(fn)
    except Exception:
        hints = {}

    properties: dict[str, Any] = {}
    required: list[str] = []

    for param_name, param in sig.parameters.items():
        if param_name in ("self", "cls", CONTEXT_PARAMETER):
            continue
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            continue
        if param_name not in hints:
            raise ValueError(
                f"Parameter {param_name!r} of {fn.__name__!r} has no type annotation. "
                f"All parameters must be typed for schema generation."
            )

        prop = _type_to_json_schema(hints[param_name])
        if param.default is not inspect.Parameter.empty:
            prop["default"] = param.default
        else:
            required.append(param_name)
        properties[param_name] = prop

    if description is None:
        description = ""
        if fn.__doc__:
            first_line = fn.__doc__.strip().split("\n")[0].strip()
            if first_line:
                description = first_line

    parameters: dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        parameters["required"] = required

    return ToolDefinition(name or fn.__name__, description, parameters)


# ---------------------------------------------------------------------------
# Built-in tools
# ---------------------------------------------------------------------------


class FunctionTool:
    """Expose a sync or async Python callable as a tool.

    String return values are passed through; anything else is JSON-encoded.
    A parameter named ``context`` receives the ToolInvocationContext, so a
    plain function can delegate through ``context.call_agent``.
    """

    def __init__(
        self,
        fn: Callable[..., Any],
        *,
        name: str | None = None,
        description: str | None = None,
        max_output_length: int = DEFAULT_TOOL_RESULT_MAX_LENGTH,
    ) -> None:
        self._fn = fn
        self._signature = inspect.signature(fn)
        self._wants_context = CONTEXT_PARAMETER in self._signature.parameters
        self._max_output_length = max_output_length
        self.definition = callable_to_tool_definition(fn, name=name, description=description)

    @property
    def name(self) -> str:
        return self.definition.name

    async def invoke(self, context: ToolInvocationContext) -> ToolExecutionResult:
        arguments = context.arguments
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise ToolInputError(
                f"Tool '{self.name}' expects a JSON object of arguments, "
                f"got {type(arguments).__name__}."
            )

        kwargs = dict(arguments)
        if self._wants_context:
            kwargs[CONTEXT_PARAMETER] = context
        try:
            self._signature.bind(**kwargs)
        except TypeError as exc:
            raise ToolInputError(f"Invalid arguments for tool '{self.name}': {exc}") from exc

        if inspect.iscoroutinefunction(self._fn):
            raw_result = await self._fn(**kwargs)
        else:
            raw_result = self._fn(**kwargs)

        if isinstance(raw_result, ToolExecutionResult):
            return raw_result
        if isinstance(raw_result, str):
            output = raw_result
        else:
            output = _json.dumps(raw_result, ensure_ascii=False, default=str)
        return context.result(truncate(output, self._max_output_length))


class AgentProxyTool:
    """Tool that forwards a prompt to another agent and returns its reply."""

    DEFAULT_PARAMETERS: dict[str, Any] = {
        "type": "object",
        "properties": {
            "prompt": {
                "type": "string",
                "description": "User prompt that will be forwarded to the delegated agent.",
            },
        },
        "required": ["prompt"],
        "additionalProperties": False,
    }

    def __init__(
        self,
        name: str,
        description: str,
        target_agent: str,
        parameters: dict[str, Any] | None = None,
    ) -> None:
        if not target_agent or not target_agent.strip():
            raise ValueError("Target agent name cannot be empty.")
        self.target_agent = target_agent
        self.definition = ToolDefinition(name, description, parameters or self.DEFAULT_PARAMETERS)

    @property
    def name(self) -> str:
        return self.definition.name

    async def invoke(self, context: ToolInvocationContext) -> ToolExecutionResult:
        arguments = context.arguments
        prompt = arguments.get("prompt") if isinstance(arguments, dict) else None
        if not isinstance(prompt, str):
            raise ToolInputError("The delegated agent tool requires a string 'prompt' argument.")

        logger.debug(
            "Delegating from tool %s (call_id=%s) to agent %s at depth %d",
            self.name, context.tool_call.call_id, self.target_agent, context.depth + 1,
        )
        request = AgentRequest((Message.from_text("user", prompt),))
        result = await context.call_agent(self.target_agent, request)
        if result.final_message is None:
            return context.result(NO_FINAL_MESSAGE_OUTPUT)
        return context.result(result.final_message.text)
