"""Solana token market data aggregated from Birdeye and Solscan."""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from .base import ToolAdapter, describe_http_error
from solchat.llm.messages import ToolResult

logger = logging.getLogger(__name__)


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _drop_none(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


class MarketDataAdapter(ToolAdapter):
    """Fans out to every market-data provider and merges whatever comes back.

    A provider failure is recorded as an `error` entry next to the data of the
    providers that succeeded. The call only fails as a whole when all providers
    failed and there is neither a price nor a supply figure to report.
    """

    name = "getSolanaTokenMarketDataTool"

    async def execute(self, parameters: Dict[str, Any]) -> ToolResult:
        symbol = parameters.get("tokenSymbol") or None
        mint = parameters.get("tokenMintAddress") or None
        if not symbol and not mint:
            return ToolResult.failure("Tool execution error: Token symbol or mint address is required.")

        logger.info(f"[MARKET DATA] Fetching market data symbol={symbol} mint={mint}")
        birdeye, solscan = await asyncio.gather(
            self.fetch_birdeye(symbol, mint),
            self.fetch_solscan(symbol, mint),
        )
        sources = (birdeye, solscan)
        errors: List[str] = [source["error"] for source in sources if source.get("error")]

        has_price = _number(birdeye.get("price")) is not None
        has_supply = any(_number(solscan.get(k)) is not None for k in ("circulatingSupply", "totalSupply"))
        if len(errors) == len(sources) and not has_price and not has_supply:
            logger.warning(f"[MARKET DATA] All sources failed for symbol={symbol} mint={mint}: {errors}")
            return ToolResult.failure(f"Failed to fetch significant market data. Errors: {'; '.join(errors)}")

        return ToolResult.ok({
            "tokenSymbol": symbol,
            "tokenMintAddress": mint,
            "birdeye": birdeye,
            "solscan": solscan,
            "errors": errors,
            "lastUpdated": datetime.now(timezone.utc).isoformat(),
        })

    async def fetch_birdeye(self, symbol: Optional[str], mint: Optional[str]) -> Dict[str, Any]:
        """Price, 24h volume, liquidity and market cap. Needs a mint address."""
        if not mint:
            return {"error": "Birdeye: mint address required for precise data.", "source": "Birdeye"}
        if not self.settings.birdeye_api_key:
            return {"error": "Birdeye API key not configured.", "source": "Birdeye"}

        headers = {"X-API-KEY": self.settings.birdeye_api_key, "x-chain": "solana"}
        base = self.settings.birdeye_base_url
        try:
            async with self.client() as client:
                responses = await asyncio.gather(
                    client.get(f"{base}/defi/price", params={"address": mint}, headers=headers),
                    client.get(f"{base}/defi/token_overview", params={"address": mint}, headers=headers),
                    return_exceptions=True,
                )
                for outcome in responses:
                    if isinstance(outcome, BaseException):
                        raise outcome
                price_resp, overview_resp = responses
                price_resp.raise_for_status()
                overview_resp.raise_for_status()
                price = price_resp.json().get("data") or {}
                overview = overview_resp.json().get("data") or {}
                if not isinstance(price, dict) or not isinstance(overview, dict):
                    raise ValueError("unexpected response shape")
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            message = describe_http_error("Birdeye", e)
            logger.error(f"[MARKET DATA] {message} mint={mint}")
            return {"error": message, "source": "Birdeye"}

        return _drop_none({
            "price": _number(price.get("value")),
            "volume24h": _number(overview.get("v24hUSD")),
            "liquidity": _number(overview.get("liquidity")),
            "mc": _number(overview.get("mc") or overview.get("marketCap")),
            "source": "Birdeye API",
            "url": f"https://birdeye.so/token/{mint}?chain=solana",
        })

    async def fetch_solscan(self, symbol: Optional[str], mint: Optional[str]) -> Dict[str, Any]:
        """Supply, holders and fully diluted market cap. Needs a mint address."""
        if not mint:
            return {"error": "Solscan: mint address required for precise data.", "source": "Solscan"}

        try:
            async with self.client() as client:
                response = await client.get(
                    f"{self.settings.solscan_base_url}/token/meta",
                    params={"tokenAddress": mint},
                )
                response.raise_for_status()
                data = response.json() or {}
                if not isinstance(data, dict):
                    raise ValueError("unexpected response shape")
        except (httpx.HTTPError, ValueError) as e:
            message = describe_http_error("Solscan", e)
            logger.error(f"[MARKET DATA] {message} mint={mint}")
            return {"error": message, "source": "Solscan"}

        # Solscan reports a single supply figure
        supply = _number(data.get("supply"))
        return _drop_none({
            "marketCap": _number(data.get("marketCapFD")),
            "circulatingSupply": supply,
            "totalSupply": supply,
            "holders": data.get("holder"),
            "source": "Solscan API",
            "url": f"https://solscan.io/token/{mint}",
        })
