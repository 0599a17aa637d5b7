"""Router for the chat endpoints."""
import asyncio
import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from solchat.config import Settings, get_settings
from solchat.llm.agent import ModelClient, ModelProviderError, get_model_client
from solchat.llm.answer import generate_answer
from solchat.llm.messages import ProgressEvent, QueueSink, Turn
from solchat.llm.orchestrator import ToolPassResult, run_tool_pass
from solchat.llm.tools import build_default_registry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/llm", tags=["llm"])


class ChatRequest(BaseModel):
    messages: List[Turn]
    model: Optional[str] = None
    searchMode: bool = True


class ToolPassResponse(BaseModel):
    turnsToAppend: List[Turn]
    progressEvents: List[ProgressEvent]


def _stream_line(event_type: str, data: Any) -> str:
    return json.dumps({"type": event_type, "data": data}) + "\n"


def _resolve_client(request: ChatRequest, settings: Settings) -> ModelClient:
    if not request.messages:
        raise HTTPException(status_code=400, detail="Please provide at least one message.")
    model_id = request.model or settings.default_model
    try:
        return get_model_client(model_id, settings)
    except ModelProviderError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


async def _run_pass(request: ChatRequest, settings: Settings, client: ModelClient, sink=None) -> ToolPassResult:
    model_id = request.model or settings.default_model
    return await run_tool_pass(
        request.messages,
        request.searchMode,
        model_id,
        registry=build_default_registry(settings, model_id),
        client=client,
        sink=sink,
        window=settings.selection_window,
    )


@router.post("/tool-pass", response_model=ToolPassResponse)
async def handle_tool_pass(request: ChatRequest, settings: Settings = Depends(get_settings)):
    """Run one tool pass and return the turns to append, without generating an answer."""
    client = _resolve_client(request, settings)
    result = await _run_pass(request, settings, client)
    return ToolPassResponse(turnsToAppend=result.turns_to_append, progressEvents=result.progress_events)


@router.post("/chat")
async def handle_chat(request: ChatRequest, settings: Settings = Depends(get_settings)):
    """Stream tool progress events followed by the final answer as newline-delimited JSON."""
    client = _resolve_client(request, settings)
    return StreamingResponse(_chat_events(request, settings, client), media_type="application/x-ndjson")


async def _chat_events(request: ChatRequest, settings: Settings, client: ModelClient) -> AsyncIterator[str]:
    queue: "asyncio.Queue[ProgressEvent]" = asyncio.Queue()
    pass_task = asyncio.ensure_future(_run_pass(request, settings, client, sink=QueueSink(queue)))
    try:
        while True:
            getter = asyncio.ensure_future(queue.get())
            done, _ = await asyncio.wait({getter, pass_task}, return_when=asyncio.FIRST_COMPLETED)
            if getter in done:
                yield _stream_line("tool_call", getter.result().model_dump())
                continue
            getter.cancel()
            break
        while not queue.empty():
            yield _stream_line("tool_call", queue.get_nowait().model_dump())
        result = pass_task.result()
    finally:
        # Client went away before the pass finished
        if not pass_task.done():
            pass_task.cancel()

    turns: List[Turn] = list(request.messages) + result.turns_to_append
    try:
        answer = await generate_answer(turns, client, tool_used=result.tool_used)
    except ModelProviderError as e:
        logger.error(f"[CHAT] Answer generation failed: {e}")
        yield _stream_line("error", {"message": "Sorry, I couldn't generate an answer.", "detail": str(e)})
        return
    yield _stream_line("text", answer)
    finish: Dict[str, Any] = {"toolUsed": result.tool_used, "state": result.state.value}
    yield _stream_line("finish", finish)
