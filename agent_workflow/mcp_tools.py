"""Tools backed by MCP servers, declared in a JSON or YAML config file.

Config file shape::

    tools:
      - name: search_docs
        description: Search the product documentation.
        server: docs
        endpoint: https://mcp.example.com/docs
        headers:
          Authorization: "Bearer ${ENV:DOCS_TOKEN}"
        parameters:
          type: object
          properties:
            query: {type: string}
      - name: list_files
        server: fs
        process: npx
        args: ["-y", "@modelcontextprotocol/server-filesystem", "."]
        parameters: {type: object, properties: {}}

Usage:
    descriptors = load_tool_config("tools.yaml")
    async with McpSessionToolClient(descriptors) as client:
        for descriptor in descriptors:
            manager.register_tool(McpTool(descriptor, client))
        result = await manager.run("assistant", request)
"""

from __future__ import annotations

import asyncio
import json as _json
import logging
from contextlib import AsyncExitStack
from pathlib import Path
from typing import Any, Protocol, Sequence, runtime_checkable
from urllib.parse import urlsplit, urlunsplit

import yaml
from mcp import ClientSession
from mcp.client.stdio import StdioServerParameters, stdio_client
from mcp.client.streamable_http import streamablehttp_client
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from agent_workflow.config import expand_env_placeholders, load_dotenv_values
from agent_workflow.errors import ConfigurationError, WorkflowError
from agent_workflow.messages import ToolExecutionResult
from agent_workflow.tools import ToolDefinition, ToolInvocationContext

logger = logging.getLogger(__name__)

DEFAULT_MCP_INIT_TIMEOUT: float = 30.0
"""Seconds to wait for an MCP server to finish the initialize handshake."""


class McpToolCallError(WorkflowError):
    """The MCP server reported the tool call as failed."""


# ---------------------------------------------------------------------------
# Descriptors
# ---------------------------------------------------------------------------


class McpToolDescriptor(BaseModel):
    """One tool entry from the config file."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    name: str = Field(min_length=1)
    description: str = ""
    server: str | None = None
    command: str | None = None
    transport: str | None = None
    endpoint: str | None = None
    headers: dict[str, str] | None = None
    process: str | None = None
    args: list[str] | None = None
    parameters: dict[str, Any] | None = None

    @model_validator(mode="after")
    def _check_required(self) -> "McpToolDescriptor":
        if not self.name.strip():
            raise ValueError("MCP tool descriptor is missing a name.")
        if self.parameters is None:
            raise ValueError(f"MCP tool '{self.name}' is missing a parameters schema.")
        if not (self.endpoint or "").strip() and not (self.process or "").strip():
            raise ValueError(
                f"MCP tool '{self.name}' must specify either an endpoint or a process definition."
            )
        return self

    @property
    def remote_name(self) -> str:
        """Name of the tool on the MCP server."""
        return self.command or self.name

    @property
    def session_key(self) -> str:
        """Descriptors with the same key share one MCP session."""
        if self.server and self.server.strip():
            return self.server
        return self.endpoint or self.name


def _read_config(path: Path) -> Any:
    text = path.read_text()
    suffix = path.suffix.lower()
    try:
        if suffix == ".json":
            return _json.loads(text)
        if suffix in {".yaml", ".yml"}:
            return yaml.safe_load(text)
    except (ValueError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Could not parse MCP tool config {path}: {exc}", original=exc) from exc
    raise ConfigurationError(
        f"Unsupported MCP tool config extension {suffix!r} for {path}. Use .json, .yaml, or .yml."
    )


def load_tool_config(path: str | Path) -> list[McpToolDescriptor]:
    """Load and validate every tool descriptor in a config file.

    Raises:
        FileNotFoundError: ``path`` does not exist.
        ConfigurationError: the file cannot be parsed or a descriptor is invalid.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"MCP tool configuration file not found: {path}")

    data = _read_config(path)
    if data is None:
        return []
    if not isinstance(data, dict):
        raise ConfigurationError(f"MCP tool config root must be a mapping. Got: {type(data).__name__}")
    entries = data.get("tools") or []
    if not isinstance(entries, list):
        raise ConfigurationError("MCP tool config 'tools' must be a list.")

    descriptors: list[McpToolDescriptor] = []
    for index, entry in enumerate(entries):
        try:
            descriptors.append(McpToolDescriptor.model_validate(entry))
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid MCP tool descriptor #{index} in {path}: {exc}", original=exc) from exc
    logger.info("Loaded %d MCP tool descriptor(s) from %s", len(descriptors), path)
    return descriptors


def try_load_tool_config(path: str | Path) -> list[McpToolDescriptor]:
    """Like ``load_tool_config`` but returns [] when the file is missing."""
    if not Path(path).exists():
        return []
    return load_tool_config(path)


# ---------------------------------------------------------------------------
# Tool
# ---------------------------------------------------------------------------


@runtime_checkable
class McpToolClient(Protocol):
    async def invoke(self, descriptor: McpToolDescriptor, arguments: dict[str, Any]) -> str: ...


class McpTool:
    """Tool that forwards its arguments to an MCP server.

    Client failures are reported as error results, not raised.
    """

    def __init__(self, descriptor: McpToolDescriptor, client: McpToolClient) -> None:
        if descriptor is None:
            raise ValueError("descriptor is required")
        if client is None:
            raise ValueError("client is required")
        self.descriptor = descriptor
        self._client = client
        self.definition = ToolDefinition(
            descriptor.name,
            descriptor.description,
            descriptor.parameters or {"type": "object"},
        )

    @property
    def name(self) -> str:
        return self.descriptor.name

    async def invoke(self, context: ToolInvocationContext) -> ToolExecutionResult:
        arguments = context.arguments if isinstance(context.arguments, dict) else {}
        try:
            output = await self._client.invoke(self.descriptor, arguments)
        except Exception as exc:
            logger.warning("MCP tool %s failed: %s", self.name, exc)
            return context.result(f"MCP tool '{self.name}' failed: {exc}", is_error=True)
        return context.result(output)


# ---------------------------------------------------------------------------
# MCP SDK client
# ---------------------------------------------------------------------------


def normalize_endpoint(endpoint: str) -> str:
    """Rewrite ``ws://``/``wss://`` endpoints to ``http://``/``https://``."""
    parts = urlsplit(endpoint)
    scheme = parts.scheme.lower()
    if scheme not in {"http", "https", "ws", "wss"} or not parts.netloc:
        raise ConfigurationError(f"MCP endpoint '{endpoint}' is not a valid absolute URL.")
    if scheme == "wss":
        return urlunsplit(parts._replace(scheme="https"))
    if scheme == "ws":
        return urlunsplit(parts._replace(scheme="http"))
    return endpoint


def render_call_result(result: Any) -> str:
    """Concatenate the text content items of an MCP ``CallToolResult``."""
    parts = []
    for item in getattr(result, "content", None) or []:
        text = getattr(item, "text", None)
        if text is not None:
            parts.append(text)
    return "\n".join(parts)


class McpSessionToolClient:
    """McpToolClient holding one MCP session per server key.

    Sessions are opened on entry, one per distinct ``session_key`` among the
    descriptors, and closed on exit. Endpoint descriptors connect over
    streamable HTTP; process descriptors are spawned over stdio.
    """

    def __init__(
        self,
        descriptors: Sequence[McpToolDescriptor],
        *,
        init_timeout: float = DEFAULT_MCP_INIT_TIMEOUT,
    ) -> None:
        self.descriptors = list(descriptors)
        self.init_timeout = init_timeout
        self.sessions: dict[str, Any] = {}
        self._stack: AsyncExitStack | None = None

    async def __aenter__(self) -> "McpSessionToolClient":
        self._stack = AsyncExitStack()
        await self._stack.__aenter__()
        dotenv = load_dotenv_values()
        try:
            for descriptor in self.descriptors:
                key = descriptor.session_key
                if key in self.sessions:
                    continue
                self.sessions[key] = await self._open_session(descriptor, dotenv)
        except BaseException:
            await self.__aexit__(None, None, None)
            raise
        logger.info("McpSessionToolClient: opened %d session(s)", len(self.sessions))
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if self._stack:
            await self._stack.__aexit__(*exc)
            self._stack = None
            self.sessions = {}

    async def _open_session(self, descriptor: McpToolDescriptor, dotenv: dict[str, str]) -> Any:
        assert self._stack is not None
        if descriptor.endpoint:
            url = normalize_endpoint(expand_env_placeholders(descriptor.endpoint, dotenv))
            headers = {
                key: expand_env_placeholders(value, dotenv)
                for key, value in (descriptor.headers or {}).items()
            }
            logger.debug("Connecting to MCP endpoint %s for %s", url, descriptor.session_key)
            read_stream, write_stream, _ = await self._stack.enter_async_context(
                streamablehttp_client(url, headers=headers or None)
            )
        else:
            params = StdioServerParameters(command=descriptor.process, args=descriptor.args or [])
            logger.debug("Spawning MCP server %s for %s", descriptor.process, descriptor.session_key)
            read_stream, write_stream = await self._stack.enter_async_context(stdio_client(params))

        session = await self._stack.enter_async_context(ClientSession(read_stream, write_stream))
        await asyncio.wait_for(session.initialize(), timeout=self.init_timeout)
        return session

    async def invoke(self, descriptor: McpToolDescriptor, arguments: dict[str, Any]) -> str:
        session = self.sessions.get(descriptor.session_key)
        if session is None:
            raise McpToolCallError(
                f"No open MCP session for '{descriptor.session_key}'; "
                "use the client as an async context manager with this descriptor."
            )
        result = await session.call_tool(descriptor.remote_name, arguments)
        output = render_call_result(result)
        if getattr(result, "isError", False):
            raise McpToolCallError(output or f"MCP tool '{descriptor.remote_name}' reported an error.")
        return output
