"""Responses API transport.

``ResponsesAgent`` talks to the provider through the ``ResponsesClient``
protocol so tests (and alternative transports) can stand in for it. The
default implementation routes through ``litellm.aresponses()``.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

import litellm

from agent_workflow.config import DEFAULT_REQUEST_TIMEOUT, WorkflowConfig, resolve_api_key
from agent_workflow.errors import wrap_error

logger = logging.getLogger(__name__)

# Silence litellm's noisy default logging
litellm.suppress_debug_info = True


@runtime_checkable
class ResponsesClient(Protocol):
    """Sends one Responses API request and returns the raw response."""

    async def create_response(self, request: dict[str, Any]) -> Any: ...


class LiteLLMResponsesClient:
    """ResponsesClient backed by ``litellm.aresponses``.

    Every failure is re-raised as an ``LLMError`` subclass (see
    ``agent_workflow.errors.classify_error``) so retry predicates can tell
    transient failures from permanent ones.
    """

    def __init__(
        self,
        *,
        api_key: str | None = None,
        api_base: str | None = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        self.api_key = api_key
        self.api_base = api_base
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: WorkflowConfig, *, api_key: str | None = None) -> "LiteLLMResponsesClient":
        return cls(
            api_key=resolve_api_key(api_key),
            api_base=config.api_base,
            timeout=config.request_timeout,
        )

    async def create_response(self, request: dict[str, Any]) -> Any:
        call_kwargs = dict(request)  # Don't mutate caller's dict
        call_kwargs["timeout"] = self.timeout
        if self.api_key is not None:
            call_kwargs["api_key"] = self.api_key
        if self.api_base is not None:
            call_kwargs["api_base"] = self.api_base
        try:
            response = await litellm.aresponses(**call_kwargs)
        except Exception as exc:
            raise wrap_error(exc) from exc
        logger.debug(
            "Responses API call: model=%s response_id=%s status=%s",
            request.get("model"),
            getattr(response, "id", None),
            getattr(response, "status", None),
        )
        return response
