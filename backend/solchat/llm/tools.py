"""Tool schemas and dispatch logic for LLM agent."""
import logging
import math
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from solchat.config import Settings
from solchat.llm.messages import ToolInvocation
from solchat.tools.base import ToolAdapter
from solchat.tools.market_data import MarketDataAdapter
from solchat.tools.retrieve import RetrieveAdapter
from solchat.tools.search import SearchAdapter

logger = logging.getLogger(__name__)

SEARCH_TOOL = "search"
RETRIEVE_TOOL = "retrieve"
MARKET_DATA_TOOL = "getSolanaTokenMarketDataTool"


class ToolValidationError(ValueError):
    """Raised when an invocation does not satisfy its tool's parameter contract."""


class ParamSpec(BaseModel):
    name: str
    type: Literal["string", "number", "string_list"] = "string"
    required: bool = False
    default: Any = None
    description: str = ""


class ToolSchema(BaseModel):
    """Base schema for tool definitions."""
    name: str
    description: str
    parameters: List[ParamSpec] = Field(default_factory=list)
    # Each group lists parameters of which at least one must be present
    require_one_of: List[List[str]] = Field(default_factory=list)

    def param(self, name: str) -> Optional[ParamSpec]:
        for spec in self.parameters:
            if spec.name == name:
                return spec
        return None


def coerce_value(spec: ParamSpec, raw: Any) -> Any:
    """Coerce a raw (usually textual) value to the parameter's declared type."""
    if spec.type == "number":
        if isinstance(raw, bool):
            return spec.default
        if isinstance(raw, int):
            return raw
        try:
            text = str(raw).strip()
            value = int(text) if text.lstrip("-").isdigit() else float(text)
        except (TypeError, ValueError):
            return spec.default
        # float() accepts "inf" and "nan"
        if isinstance(value, float) and not math.isfinite(value):
            return spec.default
        return value
    if spec.type == "string_list":
        if isinstance(raw, (list, tuple)):
            return [str(item).strip() for item in raw if str(item).strip()]
        return [part.strip() for part in str(raw).split(",") if part.strip()]
    if isinstance(raw, str):
        return raw.strip()
    return str(raw)


def _is_present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, (str, list)) and len(value) == 0:
        return False
    return True


def search_schema(default_max_results: int = 10) -> ToolSchema:
    return ToolSchema(
        name=SEARCH_TOOL,
        description="Use for finding general information, project details, news, documentation "
                    "or token mint addresses about Solana projects, tokens, or concepts.",
        parameters=[
            ParamSpec(name="query", required=True, description="The search query text"),
            ParamSpec(name="max_results", type="number", default=default_max_results,
                      description="The maximum number of results to return"),
            ParamSpec(name="search_depth", default="basic",
                      description="The depth of the search: 'basic' or 'advanced'"),
            ParamSpec(name="include_domains", type="string_list", default=[],
                      description="Comma-separated list of domains to restrict the search to"),
            ParamSpec(name="exclude_domains", type="string_list", default=[],
                      description="Comma-separated list of domains to exclude from the search"),
        ],
    )


def retrieve_schema() -> ToolSchema:
    return ToolSchema(
        name=RETRIEVE_TOOL,
        description="Retrieve content from the web for a specific URL, e.g. a whitepaper or "
                    "detailed blog post found by a previous search.",
        parameters=[
            ParamSpec(name="url", required=True, description="The URL to retrieve content from"),
        ],
    )


def market_data_schema() -> ToolSchema:
    return ToolSchema(
        name=MARKET_DATA_TOOL,
        description="Fetches current market data (price, volume, market cap, supply, holders) for a "
                    "specific Solana token from Birdeye (price/trading) and Solscan (supply/holders).",
        parameters=[
            ParamSpec(name="tokenSymbol",
                      description="The ticker symbol of the Solana token (e.g., '$NOS', 'USDC')"),
            ParamSpec(name="tokenMintAddress",
                      description="The SPL token mint address. Either symbol or mint address "
                                  "should be provided; mint address is preferred"),
        ],
        require_one_of=[["tokenSymbol", "tokenMintAddress"]],
    )


class ToolRegistry:
    """Tools keyed by name, each with its parameter contract and adapter."""

    def __init__(self):
        self._schemas: Dict[str, ToolSchema] = {}
        self._adapters: Dict[str, ToolAdapter] = {}

    def register(self, schema: ToolSchema, adapter: ToolAdapter) -> None:
        if schema.name in self._schemas:
            raise ValueError(f"Tool '{schema.name}' is already registered")
        self._schemas[schema.name] = schema
        self._adapters[schema.name] = adapter

    def names(self) -> List[str]:
        return list(self._schemas)

    def get(self, name: str) -> Optional[ToolSchema]:
        return self._schemas.get(name)

    def adapter(self, name: str) -> Optional[ToolAdapter]:
        return self._adapters.get(name)

    def describe(self, name: str) -> Dict[str, Any]:
        schema = self._schemas.get(name)
        if schema is None:
            raise KeyError(name)
        return {
            "description": schema.description,
            "parameters": [
                {"name": p.name, "required": p.required, "description": p.description}
                for p in schema.parameters
            ],
        }

    def validate(self, name: str, raw_parameters: Dict[str, Any]) -> ToolInvocation:
        """Check presence rules and coerce values; defaults fill absent optional fields."""
        schema = self._schemas.get(name)
        if schema is None:
            raise ToolValidationError(f"Tool '{name}' is not implemented.")

        parameters: Dict[str, Any] = {}
        for spec in schema.parameters:
            value = raw_parameters.get(spec.name)
            if _is_present(value):
                parameters[spec.name] = coerce_value(spec, value)
            elif spec.default is not None:
                parameters[spec.name] = spec.default

        missing = [p.name for p in schema.parameters if p.required and not _is_present(parameters.get(p.name))]
        if missing:
            raise ToolValidationError(f"Missing required parameter(s) for {name}: {', '.join(missing)}")
        for group in schema.require_one_of:
            if not any(_is_present(parameters.get(field)) for field in group):
                raise ToolValidationError(f"Either {' or '.join(group)} must be provided for {name}.")

        return ToolInvocation(tool=name, parameters=parameters)

    def render_catalog(self) -> str:
        """Plain-text description of every tool, for the selection prompt."""
        blocks = []
        for index, schema in enumerate(self._schemas.values(), start=1):
            lines = [f"{index}. {schema.name}: {schema.description}"]
            for spec in schema.parameters:
                flags = "required" if spec.required else "optional"
                if spec.default not in (None, []):
                    flags += f", default {spec.default}"
                lines.append(f"   - {spec.name} ({spec.type}, {flags}): {spec.description}")
            for group in schema.require_one_of:
                lines.append(f"   At least one of {', '.join(group)} must be provided.")
            blocks.append("\n".join(lines))
        return "\n".join(blocks)


def default_max_results_for(model_id: str, settings: Settings) -> int:
    # Local models get a smaller result set to keep the answer prompt short
    return 5 if "ollama" in (model_id or "") else settings.default_max_results


def build_default_registry(settings: Settings, model_id: str = "") -> ToolRegistry:
    """Return the registry of tools available to the LLM agent."""
    registry = ToolRegistry()
    registry.register(search_schema(default_max_results_for(model_id, settings)), SearchAdapter(settings))
    registry.register(retrieve_schema(), RetrieveAdapter(settings))
    registry.register(market_data_schema(), MarketDataAdapter(settings))
    logger.debug(f"[TOOLS] Registered tools: {registry.names()}")
    return registry


async def dispatch_tool(registry: ToolRegistry, invocation: ToolInvocation):
    """Dispatch a validated tool call to the matching adapter."""
    adapter = registry.adapter(invocation.tool)
    if adapter is None:
        raise ToolValidationError(f"Tool '{invocation.tool}' is not implemented.")
    return await adapter.execute(invocation.parameters)
