"""Ask the model which tool, if any, should run for the latest user turn."""
import logging
from datetime import datetime
from typing import Any, Dict, Optional, Sequence

from solchat.llm.agent import ModelClient, ModelProviderError
from solchat.llm.messages import Turn
from solchat.llm.tools import MARKET_DATA_TOOL, SEARCH_TOOL, ToolRegistry

logger = logging.getLogger(__name__)


class SelectionFailure(Exception):
    """The tool-choice model call failed; the pass continues without a tool."""


def build_response_schema(registry: ToolRegistry) -> Dict[str, Any]:
    """JSON schema for providers that support structured output."""
    properties: Dict[str, Any] = {}
    for name in registry.names():
        for spec in registry.get(name).parameters:
            properties.setdefault(spec.name, {"type": "string", "description": spec.description})
    return {
        "type": "object",
        "properties": {
            "tool": {"type": "string", "description": f"One of: {', '.join(registry.names())}, or empty for no tool"},
            "parameters": {"type": "object", "properties": properties},
        },
        "required": ["tool"],
    }


def build_selection_instruction(
    registry: ToolRegistry,
    now: Optional[datetime] = None,
    structured: bool = False,
) -> str:
    now = now or datetime.now()
    current = now.strftime("%B %d, %Y at %I:%M %p")
    search = registry.get(SEARCH_TOOL)
    max_results = search.param("max_results").default if search and search.param("max_results") else 10

    if structured:
        response_format = """Respond ONLY with a JSON object.
If using a tool: {"tool": "tool_name", "parameters": {"parameter_name": "value"}}
If no tool is needed: {"tool": "", "parameters": {}}
List values such as include_domains are comma-separated strings."""
    else:
        response_format = f"""Respond ONLY in XML format.
If using a tool:
<tool_call>
  <tool>tool_name</tool>
  <parameters>
    <query>search query text for '{SEARCH_TOOL}' tool</query>
    <max_results>{max_results}</max_results>
    <search_depth>basic</search_depth>
  </parameters>
</tool_call>
Use one element per parameter, named exactly like the parameter. List values such as
include_domains are comma-separated, e.g. solana.com,nosana.io.

If no tool is needed, respond with:
<tool_call><tool></tool></tool_call>"""

    return f"""You are an intelligent assistant specializing in the Solana ecosystem.
Your task is to analyze the user's latest query in the conversation and decide if a tool is needed.
Current date and time: {current}.

Available tools:
{registry.render_catalog()}

Rules:
- Choose at most one tool.
- If the conversation already answers the query, choose no tool.
- Use '{MARKET_DATA_TOOL}' only for current price, volume, market cap, supply or holders of a specific token.
- If the token mint address is not known yet, use '{SEARCH_TOOL}' first to find it
  (e.g. "[symbol] token mint address solana") instead of calling '{MARKET_DATA_TOOL}' with a guessed address.
- Prioritize official sources and documentation when crafting search queries. For "What is $NOS?",
  a good query is "Nosana $NOS project overview solana".

{response_format}
"""


async def select_tool(
    turns: Sequence[Turn],
    registry: ToolRegistry,
    client: ModelClient,
    window: int = 3,
    now: Optional[datetime] = None,
) -> str:
    """Return the raw model completion describing the chosen tool.

    Only the last `window` turns are sent to bound the prompt size.
    """
    structured = bool(getattr(client, "supports_structured_output", False))
    instruction = build_selection_instruction(registry, now=now, structured=structured)
    tail = list(turns)[-window:] if window > 0 else list(turns)
    try:
        text = await client.complete(
            instruction,
            tail,
            response_schema=build_response_schema(registry) if structured else None,
        )
    except ModelProviderError as e:
        logger.error(f"[TOOL SELECTION] Model call failed: {e}")
        raise SelectionFailure(str(e)) from e
    logger.info(f"[TOOL SELECTION] model={getattr(client, 'model_id', '?')} turns={len(tail)} response_chars={len(text)}")
    return text
