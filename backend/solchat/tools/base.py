"""Shared plumbing for tool adapters that call external HTTP providers."""
import logging
from typing import Any, Dict, Optional

import httpx

from solchat.config import Settings
from solchat.llm.messages import ToolResult

logger = logging.getLogger(__name__)


class ToolAdapter:
    """Translates tool parameters into provider calls.

    `execute` never raises for provider problems: transport errors, timeouts,
    non-2xx responses and empty payloads all come back as `ToolResult.failure`.
    """

    name = "tool"

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self._transport = transport

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.settings.tool_timeout, transport=self._transport)

    async def execute(self, parameters: Dict[str, Any]) -> ToolResult:
        raise NotImplementedError


def describe_http_error(provider: str, e: Exception) -> str:
    """Short provider-neutral message for a failed HTTP call."""
    if isinstance(e, httpx.TimeoutException):
        return f"{provider} request timed out"
    if isinstance(e, httpx.HTTPStatusError):
        return f"{provider} API error: {e.response.status_code} {e.response.reason_phrase}".rstrip()
    if isinstance(e, httpx.RequestError):
        return f"{provider} network error: {e.__class__.__name__}"
    return f"{provider} error: {e}"
