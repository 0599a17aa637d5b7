"""Tests for the tool registry and the provider adapters in solchat/tools/.

Provider HTTP traffic is served by httpx.MockTransport, so these tests never
leave the process.
"""
import json

import httpx
import pytest

from solchat.config import Settings
from solchat.llm.tools import (
    ToolRegistry,
    ToolValidationError,
    build_default_registry,
    coerce_value,
    market_data_schema,
    retrieve_schema,
    search_schema,
    ParamSpec,
)
from solchat.tools.base import ToolAdapter
from solchat.tools.market_data import MarketDataAdapter
from solchat.tools.retrieve import RetrieveAdapter
from solchat.tools.search import SearchAdapter, normalize_images, pad_query

NOS_MINT = "nosXBVoaCTtYdLvKY6Csb4AC8JCdQKKAaWYtx2ZMoo7"


def mock_transport(handler):
    calls = []

    def wrapped(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return handler(request)

    return httpx.MockTransport(wrapped), calls


class TestRegistry:

    def setup_method(self):
        self.registry = ToolRegistry()
        self.registry.register(search_schema(), ToolAdapter(Settings()))
        self.registry.register(retrieve_schema(), ToolAdapter(Settings()))
        self.registry.register(market_data_schema(), ToolAdapter(Settings()))

    def test_describe(self):
        described = self.registry.describe("retrieve")
        assert "URL" in described["description"]
        assert described["parameters"] == [
            {"name": "url", "required": True, "description": "The URL to retrieve content from"}
        ]

    def test_describe_unknown_tool(self):
        with pytest.raises(KeyError):
            self.registry.describe("videoSearch")

    def test_duplicate_registration_rejected(self):
        with pytest.raises(ValueError):
            self.registry.register(search_schema(), ToolAdapter(Settings()))

    def test_validate_applies_defaults(self):
        invocation = self.registry.validate("search", {"query": "Jupiter aggregator"})
        assert invocation.parameters["max_results"] == 10
        assert invocation.parameters["search_depth"] == "basic"
        assert invocation.parameters["include_domains"] == []

    def test_validate_missing_required(self):
        with pytest.raises(ToolValidationError, match="query"):
            self.registry.validate("search", {"max_results": 5})

    def test_validate_one_of(self):
        with pytest.raises(ToolValidationError, match="tokenSymbol or tokenMintAddress"):
            self.registry.validate("getSolanaTokenMarketDataTool", {"tokenSymbol": ""})
        assert self.registry.validate("getSolanaTokenMarketDataTool", {"tokenSymbol": "$NOS"}).parameters == {"tokenSymbol": "$NOS"}
        assert self.registry.validate("getSolanaTokenMarketDataTool", {"tokenMintAddress": NOS_MINT}).tool == "getSolanaTokenMarketDataTool"

    def test_validate_unknown_tool(self):
        with pytest.raises(ToolValidationError, match="not implemented"):
            self.registry.validate("videoSearch", {"query": "solana"})

    def test_render_catalog_lists_every_tool(self):
        catalog = self.registry.render_catalog()
        for name in ("search", "retrieve", "getSolanaTokenMarketDataTool"):
            assert name in catalog
        assert "At least one of tokenSymbol, tokenMintAddress" in catalog
        assert "query (string, required)" in catalog

    def test_coerce_value(self):
        number = ParamSpec(name="n", type="number", default=10)
        listing = ParamSpec(name="l", type="string_list", default=[])
        assert coerce_value(number, "12") == 12
        assert coerce_value(number, "2.5") == 2.5
        assert coerce_value(number, "lots") == 10
        assert coerce_value(listing, "a.io, b.io") == ["a.io", "b.io"]
        assert coerce_value(listing, ["a.io", " "]) == ["a.io"]
        assert coerce_value(number, "inf") == 10
        assert coerce_value(number, "-inf") == 10
        assert coerce_value(number, "nan") == 10
        assert coerce_value(number, float("inf")) == 10

    def test_default_registry_smaller_results_for_ollama(self):
        registry = build_default_registry(Settings(), "ollama:llama3")
        assert registry.get("search").param("max_results").default == 5
        registry = build_default_registry(Settings(), "gemini:gemini-1.5-flash")
        assert registry.get("search").param("max_results").default == 10
        assert set(registry.names()) == {"search", "retrieve", "getSolanaTokenMarketDataTool"}


class TestSearchAdapter:

    @pytest.mark.asyncio
    async def test_search_payload_and_results(self):
        def handler(request):
            body = json.loads(request.content)
            assert request.url.path == "/search"
            assert body["query"] == "SOL  "
            assert body["max_results"] == 5
            assert body["include_domains"] == ["solana.com"]
            return httpx.Response(200, json={
                "results": [{"title": "Solana", "url": "https://solana.com", "content": "Fast chain", "score": 0.9}],
                "images": [
                    {"url": "https://img.io/a b.png", "description": "logo"},
                    {"url": "https://img.io/c.png", "description": ""},
                    "https://img.io/plain.png",
                ],
            })

        transport, calls = mock_transport(handler)
        adapter = SearchAdapter(Settings(tavily_api_key="tvly"), transport=transport)
        result = await adapter.execute({"query": "SOL", "max_results": 3, "include_domains": ["solana.com"]})

        assert result.success
        assert len(calls) == 1
        assert result.payload["results"] == [{"title": "Solana", "url": "https://solana.com", "content": "Fast chain"}]
        assert result.payload["images"] == [{"url": "https://img.io/a%20b.png", "description": "logo"}]

    @pytest.mark.asyncio
    async def test_default_domains_used_when_not_overridden(self):
        seen = {}

        def handler(request):
            seen.update(json.loads(request.content))
            return httpx.Response(200, json={"results": [{"title": "t", "url": "u", "content": "c"}], "images": []})

        transport, _ = mock_transport(handler)
        settings = Settings(tavily_api_key="tvly", search_domains=["nosana.io"])
        await SearchAdapter(settings, transport=transport).execute({"query": "Nosana GPU grid"})
        assert seen["include_domains"] == ["nosana.io"]
        assert seen["search_depth"] == "basic"

    @pytest.mark.asyncio
    async def test_empty_results_are_failure(self):
        transport, _ = mock_transport(lambda request: httpx.Response(200, json={"results": [], "images": []}))
        result = await SearchAdapter(Settings(tavily_api_key="tvly"), transport=transport).execute({"query": "zzzzzz"})
        assert not result.success
        assert "No search results" in result.error

    @pytest.mark.asyncio
    async def test_timeout_is_failure(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        transport, _ = mock_transport(handler)
        result = await SearchAdapter(Settings(tavily_api_key="tvly"), transport=transport).execute({"query": "solana news"})
        assert not result.success
        assert result.error == "Tavily request timed out"

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        result = await SearchAdapter(Settings()).execute({"query": "solana news"})
        assert not result.success
        assert "not configured" in result.error

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [["oops"], {"results": "oops"}, {"results": 5}, "just text"])
    async def test_unexpected_body_is_failure(self, body):
        transport, _ = mock_transport(lambda request: httpx.Response(200, json=body))
        result = await SearchAdapter(Settings(tavily_api_key="tvly"), transport=transport).execute({"query": "solana news"})
        assert not result.success
        assert result.error.startswith("Tavily")

    @pytest.mark.asyncio
    async def test_non_finite_max_results_is_failure(self):
        transport, calls = mock_transport(lambda request: httpx.Response(200, json={"results": []}))
        adapter = SearchAdapter(Settings(tavily_api_key="tvly"), transport=transport)
        result = await adapter.execute({"query": "solana news", "max_results": float("inf")})
        assert not result.success
        assert calls == []

    def test_images_with_bad_shapes_are_dropped(self):
        assert normalize_images({"url": "x"}) == []
        assert normalize_images([{"url": 5, "description": "logo"}]) == []

    def test_pad_query(self):
        assert pad_query("NOS") == "NOS  "
        assert pad_query("Nosana") == "Nosana"


class TestRetrieveAdapter:

    @pytest.mark.asyncio
    async def test_jina_backend_when_key_configured(self):
        def handler(request):
            assert request.url.host == "r.jina.ai"
            assert str(request.url).endswith("nosana.io/blog")
            return httpx.Response(200, json={"data": {"title": "Blog", "content": "x" * 20000, "url": "https://nosana.io/blog"}})

        transport, calls = mock_transport(handler)
        adapter = RetrieveAdapter(Settings(jina_api_key="jina", tavily_api_key="tvly"), transport=transport)
        result = await adapter.execute({"url": "https://nosana.io/blog"})

        assert result.success
        assert len(calls) == 1
        page = result.payload["results"][0]
        assert page["title"] == "Blog"
        assert len(page["content"]) == 10000
        assert result.payload["images"] == []

    @pytest.mark.asyncio
    async def test_tavily_extract_backend(self):
        def handler(request):
            assert request.url.path == "/extract"
            assert json.loads(request.content)["urls"] == ["https://jup.ag/docs"]
            return httpx.Response(200, json={"results": [{"url": "https://jup.ag/docs", "raw_content": "Jupiter docs " * 20}]})

        transport, _ = mock_transport(handler)
        result = await RetrieveAdapter(Settings(tavily_api_key="tvly"), transport=transport).execute({"url": "https://jup.ag/docs"})
        page = result.payload["results"][0]
        assert result.success
        assert page["title"] == page["content"][:100]

    @pytest.mark.asyncio
    async def test_server_error_is_failure(self):
        transport, _ = mock_transport(lambda request: httpx.Response(500, json={"error": "boom"}))
        result = await RetrieveAdapter(Settings(jina_api_key="jina"), transport=transport).execute({"url": "https://nosana.io"})
        assert not result.success
        assert result.error == "Failed to retrieve content from the URL or no content found."

    @pytest.mark.asyncio
    async def test_empty_content_is_failure(self):
        transport, _ = mock_transport(lambda request: httpx.Response(200, json={"data": {"title": "t", "content": ""}}))
        result = await RetrieveAdapter(Settings(jina_api_key="jina"), transport=transport).execute({"url": "https://nosana.io"})
        assert not result.success

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [{"data": "text"}, ["oops"], {"data": {"content": 5}}, {"data": None}])
    async def test_unexpected_jina_body_is_failure(self, body):
        transport, _ = mock_transport(lambda request: httpx.Response(200, json=body))
        result = await RetrieveAdapter(Settings(jina_api_key="jina"), transport=transport).execute({"url": "https://nosana.io"})
        assert not result.success
        assert result.error == "Failed to retrieve content from the URL or no content found."

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [{"results": ["x"]}, ["oops"], {"results": "x"}, {"results": [{"raw_content": ["a"]}]}])
    async def test_unexpected_extract_body_is_failure(self, body):
        transport, _ = mock_transport(lambda request: httpx.Response(200, json=body))
        result = await RetrieveAdapter(Settings(tavily_api_key="tvly"), transport=transport).execute({"url": "https://jup.ag/docs"})
        assert not result.success


def market_handler(birdeye_status=200, solscan_status=200):
    def handler(request):
        if request.url.host == "public-api.birdeye.so":
            if birdeye_status != 200:
                return httpx.Response(birdeye_status)
            if request.url.path == "/defi/price":
                return httpx.Response(200, json={"data": {"value": 0.61}})
            return httpx.Response(200, json={"data": {"v24hUSD": 1200000, "liquidity": 350000, "mc": 52000000}})
        if solscan_status != 200:
            return httpx.Response(solscan_status)
        return httpx.Response(200, json={"supply": "100000000", "holder": 31000, "marketCapFD": 61000000})
    return handler


class TestMarketDataAdapter:

    @pytest.mark.asyncio
    async def test_both_sources_succeed(self):
        transport, calls = mock_transport(market_handler())
        adapter = MarketDataAdapter(Settings(birdeye_api_key="be"), transport=transport)
        result = await adapter.execute({"tokenSymbol": "$NOS", "tokenMintAddress": NOS_MINT})

        assert result.success
        assert len(calls) == 3
        assert result.payload["birdeye"]["price"] == 0.61
        assert result.payload["birdeye"]["url"] == f"https://birdeye.so/token/{NOS_MINT}?chain=solana"
        assert result.payload["solscan"]["holders"] == 31000
        assert result.payload["solscan"]["totalSupply"] == 100000000
        assert result.payload["errors"] == []
        assert result.payload["lastUpdated"]

    @pytest.mark.asyncio
    async def test_one_source_fails(self):
        transport, _ = mock_transport(market_handler(birdeye_status=500))
        adapter = MarketDataAdapter(Settings(birdeye_api_key="be"), transport=transport)
        result = await adapter.execute({"tokenMintAddress": NOS_MINT})

        assert result.success
        assert "error" in result.payload["birdeye"]
        assert result.payload["solscan"]["circulatingSupply"] == 100000000
        assert len(result.payload["errors"]) == 1
        assert "Birdeye" in result.payload["errors"][0]

    @pytest.mark.asyncio
    async def test_all_sources_fail(self):
        transport, _ = mock_transport(market_handler(birdeye_status=500, solscan_status=503))
        adapter = MarketDataAdapter(Settings(birdeye_api_key="be"), transport=transport)
        result = await adapter.execute({"tokenMintAddress": NOS_MINT})

        assert not result.success
        assert "Birdeye API error: 500" in result.error
        assert "Solscan API error: 503" in result.error

    @pytest.mark.asyncio
    async def test_symbol_only_needs_mint_address(self):
        transport, calls = mock_transport(market_handler())
        adapter = MarketDataAdapter(Settings(birdeye_api_key="be"), transport=transport)
        result = await adapter.execute({"tokenSymbol": "$NOS"})

        assert not result.success
        assert calls == []
        assert "Birdeye: mint address required" in result.error
        assert "Solscan: mint address required" in result.error

    @pytest.mark.asyncio
    async def test_no_identifier(self):
        result = await MarketDataAdapter(Settings()).execute({})
        assert not result.success

    @pytest.mark.asyncio
    async def test_birdeye_request_error_keeps_solscan(self):
        def handler(request):
            if request.url.path == "/defi/token_overview":
                raise httpx.ConnectError("refused", request=request)
            return market_handler()(request)

        transport, _ = mock_transport(handler)
        adapter = MarketDataAdapter(Settings(birdeye_api_key="be"), transport=transport)
        result = await adapter.execute({"tokenMintAddress": NOS_MINT})

        assert result.success
        assert result.payload["birdeye"]["error"] == "Birdeye network error: ConnectError"
        assert result.payload["solscan"]["holders"] == 31000

    @pytest.mark.asyncio
    async def test_birdeye_unexpected_body(self):
        def handler(request):
            if request.url.host == "public-api.birdeye.so":
                return httpx.Response(200, json={"data": "text"})
            return market_handler()(request)

        transport, _ = mock_transport(handler)
        adapter = MarketDataAdapter(Settings(birdeye_api_key="be"), transport=transport)
        result = await adapter.execute({"tokenMintAddress": NOS_MINT})

        assert result.success
        assert "error" in result.payload["birdeye"]
