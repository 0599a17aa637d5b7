"""One tool pass per user turn: select, parse, validate, dispatch, synthesize.

The pass never edits the conversation it is given. It returns the turns the
caller should append (tool output plus an instruction for the answering
model) and the progress events it emitted along the way.
"""
import json
import logging
import uuid
from enum import Enum
from typing import List, Optional, Sequence

from pydantic import BaseModel, Field

from solchat.llm.agent import ModelClient
from solchat.llm.messages import (
    ProgressEvent,
    ProgressRecorder,
    ProgressSink,
    ToolInvocation,
    ToolResult,
    Turn,
)
from solchat.llm.parser import extract_tool_name, parse_completion
from solchat.llm.selection import SelectionFailure, select_tool
from solchat.llm.tools import ToolRegistry, ToolValidationError, dispatch_tool

logger = logging.getLogger(__name__)

ANSWER_INSTRUCTION = (
    "Based on the tool output and our previous conversation, please provide a comprehensive answer "
    "to my original question about the Solana ecosystem. Ensure you synthesize the information and "
    "cite sources if they were part of the tool output."
)


class PassState(str, Enum):
    IDLE = "idle"
    SELECTING = "selecting"
    PARSING = "parsing"
    NO_TOOL = "no_tool"
    VALIDATING = "validating"
    DISPATCHING = "dispatching"
    SYNTHESIZING = "synthesizing"
    DONE = "done"
    FAILED = "failed"


class ToolPassResult(BaseModel):
    turns_to_append: List[Turn] = Field(default_factory=list)
    progress_events: List[ProgressEvent] = Field(default_factory=list)
    state: PassState = PassState.DONE
    invocation: Optional[ToolInvocation] = None
    result: Optional[ToolResult] = None
    path: List[PassState] = Field(default_factory=list)

    @property
    def tool_used(self) -> bool:
        return bool(self.turns_to_append)


def new_tool_call_id() -> str:
    return f"call_{uuid.uuid4().hex[:16]}"


def synthesize_turns(tool_name: str, result_json: str) -> List[Turn]:
    return [
        Turn(role="assistant", content=f"[Tool Used: {tool_name}] Output:\n{result_json}"),
        Turn(role="user", content=ANSWER_INSTRUCTION),
    ]


async def run_tool_pass(
    conversation: Sequence[Turn],
    tools_enabled: bool,
    model_id: str,
    *,
    registry: ToolRegistry,
    client: ModelClient,
    sink: Optional[ProgressSink] = None,
    window: int = 3,
) -> ToolPassResult:
    """Run at most one tool for the latest user turn."""
    path = [PassState.IDLE]
    if not tools_enabled:
        return ToolPassResult(state=PassState.DONE, path=path + [PassState.DONE])

    recorder = ProgressRecorder(forward=sink)

    path.append(PassState.SELECTING)
    try:
        text = await select_tool(conversation, registry, client, window=window)
    except SelectionFailure as e:
        logger.warning(f"[TOOL PASS] Tool selection failed for model={model_id}, continuing without tool: {e}")
        return ToolPassResult(state=PassState.FAILED, path=path + [PassState.FAILED])

    path.append(PassState.PARSING)
    name = extract_tool_name(text)
    invocation = parse_completion(text, registry.get(name)) if name else ToolInvocation.none()
    if invocation.is_empty:
        logger.info(f"[TOOL PASS] No tool selected by model={model_id}")
        return ToolPassResult(state=PassState.DONE, invocation=invocation,
                              path=path + [PassState.NO_TOOL, PassState.DONE])

    tool_call_id = new_tool_call_id()
    args_json = json.dumps(invocation.parameters)

    path.append(PassState.VALIDATING)
    try:
        invocation = registry.validate(invocation.tool, invocation.parameters)
    except ToolValidationError as e:
        logger.warning(f"[TOOL CALL] Rejected {invocation.tool} call {tool_call_id}: {e}")
        result = ToolResult.failure(str(e))
        result_json = result.to_json()
        recorder.emit(ProgressEvent(state="error", toolCallId=tool_call_id, toolName=invocation.tool,
                                    args=args_json, result=result_json))
        return ToolPassResult(
            turns_to_append=synthesize_turns(invocation.tool, result_json),
            progress_events=recorder.events,
            state=PassState.FAILED,
            invocation=invocation,
            result=result,
            path=path + [PassState.FAILED],
        )

    path.append(PassState.DISPATCHING)
    args_json = json.dumps(invocation.parameters)
    recorder.emit(ProgressEvent(state="call", toolCallId=tool_call_id, toolName=invocation.tool, args=args_json))
    logger.info(f"[TOOL CALL] {invocation.tool} id={tool_call_id} args={args_json}")
    try:
        result = await dispatch_tool(registry, invocation)
    except Exception as e:
        logger.error(f"[TOOL CALL] Error executing tool {invocation.tool}: {e}", exc_info=True)
        result = ToolResult.failure(f"Failed to execute tool {invocation.tool}: {e}")

    path.append(PassState.SYNTHESIZING)
    result_json = result.to_json()
    recorder.emit(ProgressEvent(state="result" if result.success else "error", toolCallId=tool_call_id,
                                toolName=invocation.tool, args=args_json, result=result_json))
    logger.info(f"[TOOL RESULT] {invocation.tool} id={tool_call_id} success={result.success} chars={len(result_json)}")

    return ToolPassResult(
        turns_to_append=synthesize_turns(invocation.tool, result_json),
        progress_events=recorder.events,
        state=PassState.DONE,
        invocation=invocation,
        result=result,
        path=path + [PassState.DONE],
    )
