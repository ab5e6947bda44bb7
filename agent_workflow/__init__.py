"""Multi-agent workflows over the OpenAI Responses API.

Agents reply to a conversation and may request tools; the workflow manager
runs the tools (concurrently, including tools that delegate to other
agents) and loops until an agent answers without requesting any.

Usage:
    from agent_workflow import (
        AgentDescriptor, AgentProxyTool, AgentRequest, AgentWorkflowManager,
        LiteLLMResponsesClient, ResponsesAgent,
    )

    client = LiteLLMResponsesClient(api_key="sk-...")
    manager = AgentWorkflowManager()
    manager.register_agent(ResponsesAgent(client, AgentDescriptor("helper", "Answer briefly.", "gpt-5-nano")))
    manager.register_agent(ResponsesAgent(
        client,
        AgentDescriptor("primary", "Coordinate; delegate lookups.", "gpt-5-nano"),
        tool_names=["delegate"],
    ))
    manager.register_tool(AgentProxyTool("delegate", "Ask the helper agent.", "helper"))

    result = await manager.run("primary", AgentRequest.from_text("Hello"))
    print(result.final_text)
"""

from agent_workflow.agent import Agent, AgentCapabilities, AgentDescriptor, ResponsesAgent
from agent_workflow.config import WorkflowConfig, resolve_api_key
from agent_workflow.errors import (
    AgentNotRegisteredError,
    ConfigurationError,
    DelegationDepthExceededError,
    LLMAuthError,
    LLMContentFilterError,
    LLMError,
    LLMModelNotFoundError,
    LLMQuotaExhaustedError,
    LLMRateLimitError,
    LLMTransientError,
    MaxTurnsExceededError,
    RunCancelledError,
    ToolInputError,
    ToolNotRegisteredError,
    TranslationError,
    WorkflowError,
    retry_transient_errors,
)
from agent_workflow.hooks import WorkflowHooks
from agent_workflow.mcp_tools import (
    McpSessionToolClient,
    McpTool,
    McpToolCallError,
    McpToolClient,
    McpToolDescriptor,
    load_tool_config,
    try_load_tool_config,
)
from agent_workflow.messages import (
    AgentRequest,
    AgentRunResult,
    Message,
    TextContent,
    ToolCall,
    ToolExecutionResult,
    ToolResultContent,
    WorkflowResult,
)
from agent_workflow.provider import LiteLLMResponsesClient, ResponsesClient
from agent_workflow.retry import RetryPolicy
from agent_workflow.session import AgentSession
from agent_workflow.tools import (
    AgentProxyTool,
    FunctionTool,
    Tool,
    ToolDefinition,
    ToolInvocationContext,
)
from agent_workflow.translator import ResponsesTranslator, TranslatorState
from agent_workflow.workflow import AgentWorkflowManager

__all__ = [
    "Agent",
    "AgentCapabilities",
    "AgentDescriptor",
    "AgentNotRegisteredError",
    "AgentProxyTool",
    "AgentRequest",
    "AgentRunResult",
    "AgentSession",
    "AgentWorkflowManager",
    "ConfigurationError",
    "DelegationDepthExceededError",
    "FunctionTool",
    "LLMAuthError",
    "LLMContentFilterError",
    "LLMError",
    "LLMModelNotFoundError",
    "LLMQuotaExhaustedError",
    "LLMRateLimitError",
    "LLMTransientError",
    "LiteLLMResponsesClient",
    "MaxTurnsExceededError",
    "McpSessionToolClient",
    "McpTool",
    "McpToolCallError",
    "McpToolClient",
    "McpToolDescriptor",
    "Message",
    "ResponsesAgent",
    "ResponsesClient",
    "ResponsesTranslator",
    "RetryPolicy",
    "RunCancelledError",
    "TextContent",
    "Tool",
    "ToolCall",
    "ToolDefinition",
    "ToolExecutionResult",
    "ToolInputError",
    "ToolInvocationContext",
    "ToolNotRegisteredError",
    "ToolResultContent",
    "TranslationError",
    "TranslatorState",
    "WorkflowConfig",
    "WorkflowError",
    "WorkflowHooks",
    "WorkflowResult",
    "load_tool_config",
    "resolve_api_key",
    "retry_transient_errors",
    "try_load_tool_config",
]
