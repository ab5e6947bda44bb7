"""Interactive console session with a single Responses API agent.

Usage:
    python -m agent_workflow                                # gpt-5-nano, no tools
    python -m agent_workflow --model gpt-5-mini --instructions "Answer in French."
    python -m agent_workflow --tools tools.yaml             # MCP tools from a config file
    python -m agent_workflow --verbose                      # log requests and tool calls

An empty line ends the session. The API key comes from --api-key,
OPENAI_API_KEY, or a .env file.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from contextlib import AsyncExitStack

from agent_workflow.agent import AgentDescriptor, ResponsesAgent
from agent_workflow.config import WorkflowConfig
from agent_workflow.errors import WorkflowError
from agent_workflow.mcp_tools import McpSessionToolClient, McpTool, try_load_tool_config
from agent_workflow.provider import LiteLLMResponsesClient
from agent_workflow.session import AgentSession
from agent_workflow.workflow import AgentWorkflowManager

DEFAULT_AGENT_NAME = "console-agent"
DEFAULT_INSTRUCTIONS = "Provide concise answers."


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m agent_workflow",
        description="Chat with a Responses API agent from the terminal.",
    )
    parser.add_argument("--model", default="gpt-5-nano", help="Provider model id")
    parser.add_argument("--name", default=DEFAULT_AGENT_NAME, help="Agent name")
    parser.add_argument("--instructions", default=DEFAULT_INSTRUCTIONS, help="Agent instructions")
    parser.add_argument("--system-prompt", help="Optional system prompt sent with every request")
    parser.add_argument("--tools", metavar="PATH", help="MCP tool config file (.json, .yaml, .yml)")
    parser.add_argument("--api-key", help="Provider API key (default: OPENAI_API_KEY or .env)")
    parser.add_argument("--verbose", action="store_true", help="Log requests and tool calls")
    return parser


def _print_turn(result, start: int) -> None:
    for message in result.conversation[start:]:
        for content in message.tool_results:
            marker = "tool error" if content.is_error else "tool"
            print(f"[{marker} {content.tool_call_id}] {content.output}")
    text = result.final_text
    print(text if text else "(no reply)")


async def run_console(args: argparse.Namespace) -> int:
    config = WorkflowConfig.from_env()
    client = LiteLLMResponsesClient.from_config(config, api_key=args.api_key)
    descriptor = AgentDescriptor(
        name=args.name,
        instructions=args.instructions,
        model=args.model,
        system_prompt=args.system_prompt,
    )
    manager = AgentWorkflowManager.from_config(config)
    descriptors = try_load_tool_config(args.tools) if args.tools else []

    async with AsyncExitStack() as stack:
        if descriptors:
            mcp_client = await stack.enter_async_context(McpSessionToolClient(descriptors))
            for tool_descriptor in descriptors:
                manager.register_tool(McpTool(tool_descriptor, mcp_client))
        agent = ResponsesAgent(client, descriptor, [d.name for d in descriptors])
        manager.register_agent(agent)
        session = AgentSession(manager, descriptor.name)

        print(f"Session open with {descriptor.name} ({descriptor.model}). Empty line to quit.")
        while True:
            try:
                line = await asyncio.to_thread(input, "> ")
            except EOFError:
                break
            if not line.strip():
                break
            start = len(session.conversation) + 1
            try:
                result = await session.send(line)
            except WorkflowError as exc:
                print(f"Error: {exc}", file=sys.stderr)
                continue
            _print_turn(result, start)
    return 0


def main() -> None:
    args = build_parser().parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        sys.exit(asyncio.run(run_console(args)))
    except WorkflowError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
