"""Turn a tool-selection completion into a ToolInvocation.

The model answers either with a markup block

    <tool_call>
      <tool>search</tool>
      <parameters>
        <query>Nosana $NOS overview</query>
        <max_results>10</max_results>
      </parameters>
    </tool_call>

or, when the provider supports structured output, with a JSON object
`{"tool": "search", "parameters": {...}}`. Every function here is pure and
never raises: anything that cannot be read as a tool call becomes the
"no tool" invocation.
"""
import html
import json
import logging
import re
from typing import Any, Dict, Optional

from solchat.llm.messages import ToolInvocation
from solchat.llm.tools import ToolSchema, coerce_value

logger = logging.getLogger(__name__)

_COMMENT_RE = re.compile(r"<!--.*?(?:-->|$)", re.DOTALL)
_BLOCK_RE = re.compile(r"<tool_call\s*>(.*?)(?:</tool_call\s*>|$)", re.DOTALL | re.IGNORECASE)
_TOOL_RE = re.compile(r"<tool\s*>(.*?)</tool\s*>", re.DOTALL | re.IGNORECASE)
_PARAMS_RE = re.compile(r"<parameters\s*>(.*?)(?:</parameters\s*>|$)", re.DOTALL | re.IGNORECASE)
_FIELD_RE = re.compile(r"<([A-Za-z_][\w\-]*)\s*>(.*?)</\1\s*>", re.DOTALL)
_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$")


def _tool_block(text: str) -> Optional[str]:
    if not text:
        return None
    match = _BLOCK_RE.search(_COMMENT_RE.sub("", text))
    return match.group(1) if match else None


def _apply_schema(raw: Dict[str, Any], schema: Optional[ToolSchema]) -> Dict[str, Any]:
    """Coerce matched fields; absent optional fields take defaults, absent required ones stay absent."""
    if schema is None:
        return {k: v for k, v in raw.items() if v not in (None, "")}
    parameters: Dict[str, Any] = {}
    for spec in schema.parameters:
        value = raw.get(spec.name)
        if value is not None and value != "":
            parameters[spec.name] = coerce_value(spec, value)
        elif spec.default is not None:
            parameters[spec.name] = spec.default
    return parameters


def _load_json_object(text: str) -> Optional[Dict[str, Any]]:
    candidate = _FENCE_RE.sub("", (text or "").strip())
    if not candidate.startswith("{"):
        return None
    try:
        data = json.loads(candidate)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def extract_tool_name(text: str) -> str:
    """Tool name only, so the caller can look up the schema before parsing parameters."""
    data = _load_json_object(text)
    if data is not None:
        tool = data.get("tool")
        return tool.strip() if isinstance(tool, str) else ""
    block = _tool_block(text)
    if block is None:
        return ""
    match = _TOOL_RE.search(block)
    return html.unescape(match.group(1)).strip() if match else ""


def parse_tool_call(text: str, schema: Optional[ToolSchema] = None) -> ToolInvocation:
    """Parse the markup form of a tool call."""
    block = _tool_block(text)
    if block is None:
        return ToolInvocation.none()
    match = _TOOL_RE.search(block)
    tool = html.unescape(match.group(1)).strip() if match else ""
    if not tool:
        return ToolInvocation.none()

    raw: Dict[str, Any] = {}
    params_match = _PARAMS_RE.search(block)
    if params_match:
        for name, value in _FIELD_RE.findall(params_match.group(1)):
            raw[name] = html.unescape(value).strip()
    return ToolInvocation(tool=tool, parameters=_apply_schema(raw, schema))


def parse_structured_tool_call(text: str, schema: Optional[ToolSchema] = None) -> ToolInvocation:
    """Parse the JSON (structured output) form of a tool call."""
    data = _load_json_object(text)
    if data is None:
        return ToolInvocation.none()
    tool = data.get("tool")
    if not isinstance(tool, str) or not tool.strip():
        return ToolInvocation.none()
    raw = data.get("parameters")
    if not isinstance(raw, dict):
        raw = {}
    return ToolInvocation(tool=tool.strip(), parameters=_apply_schema(raw, schema))


def parse_completion(text: str, schema: Optional[ToolSchema] = None) -> ToolInvocation:
    """Dispatch to the JSON or markup parser depending on what the model produced."""
    try:
        if _load_json_object(text) is not None:
            return parse_structured_tool_call(text, schema)
        return parse_tool_call(text, schema)
    except Exception as e:
        logger.warning(f"[TOOL PARSE] Treating unreadable completion as no tool: {e}")
        return ToolInvocation.none()
