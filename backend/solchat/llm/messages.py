"""Conversation turns, tool invocations, tool results and progress events."""
import asyncio
import json
import logging
from typing import Any, Dict, List, Literal, Optional, Protocol, Union

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class Turn(BaseModel):
    """One conversation turn. `tool` marks output injected by the backend, not the user."""
    role: Literal["user", "assistant", "tool"]
    content: Union[str, Dict[str, Any], List[Any]]

    def text(self) -> str:
        if isinstance(self.content, str):
            return self.content
        return json.dumps(self.content)


class ToolInvocation(BaseModel):
    """A tool call proposed by the model. An empty tool name means no tool was selected."""
    tool: str = ""
    parameters: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def none(cls) -> "ToolInvocation":
        return cls()

    @property
    def is_empty(self) -> bool:
        return not self.tool


class ToolResult(BaseModel):
    """Outcome of one adapter call: either a JSON payload or a failure message."""
    success: bool
    payload: Any = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, payload: Any) -> "ToolResult":
        return cls(success=True, payload=payload)

    @classmethod
    def failure(cls, message: str) -> "ToolResult":
        return cls(success=False, error=message)

    def to_json(self) -> str:
        if self.success:
            return json.dumps(self.payload, default=str)
        return json.dumps({"error": self.error})


class ProgressEvent(BaseModel):
    state: Literal["call", "result", "error"]
    toolCallId: str
    toolName: str
    args: str
    result: Optional[str] = None


class ProgressSink(Protocol):
    def emit(self, event: ProgressEvent) -> None:
        ...


class ProgressRecorder:
    """Keeps every emitted event in order, optionally forwarding to another sink."""

    def __init__(self, forward: Optional[ProgressSink] = None):
        self.events: List[ProgressEvent] = []
        self._forward = forward

    def emit(self, event: ProgressEvent) -> None:
        self.events.append(event)
        if self._forward is None:
            return
        try:
            self._forward.emit(event)
        except Exception as e:
            # Progress is telemetry only; a broken client stream must not stop the pass
            logger.warning(f"[PROGRESS] Failed to forward {event.state} event for {event.toolName}: {e}")


class QueueSink:
    """Pushes events onto an asyncio queue for a streaming response to drain."""

    def __init__(self, queue: "asyncio.Queue[ProgressEvent]"):
        self.queue = queue

    def emit(self, event: ProgressEvent) -> None:
        self.queue.put_nowait(event)
