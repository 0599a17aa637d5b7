"""Web search through the Tavily API."""
import logging
import re
from typing import Any, Dict, List

import httpx

from .base import ToolAdapter, describe_http_error
from solchat.llm.messages import ToolResult

logger = logging.getLogger(__name__)

# Tavily rejects queries shorter than this
MIN_QUERY_LENGTH = 5
MIN_MAX_RESULTS = 5


def sanitize_url(url: str) -> str:
    return re.sub(r"\s+", "%20", url.strip())


def pad_query(query: str) -> str:
    if len(query) < MIN_QUERY_LENGTH:
        return query + " " * (MIN_QUERY_LENGTH - len(query))
    return query


def normalize_images(images: List[Any]) -> List[Dict[str, str]]:
    """Keep only images that carry a description, with sanitized URLs."""
    normalized = []
    if not isinstance(images, list):
        return normalized
    for image in images:
        if not isinstance(image, dict):
            continue
        description = image.get("description")
        url = image.get("url")
        if not isinstance(url, str) or not url or not description:
            continue
        normalized.append({"url": sanitize_url(url), "description": description})
    return normalized


class SearchAdapter(ToolAdapter):
    name = "search"

    async def execute(self, parameters: Dict[str, Any]) -> ToolResult:
        query = parameters.get("query") or ""
        max_results = parameters.get("max_results") or self.settings.default_max_results
        search_depth = parameters.get("search_depth") or "basic"
        if search_depth not in ("basic", "advanced"):
            search_depth = "basic"
        include_domains = parameters.get("include_domains") or list(self.settings.search_domains)
        exclude_domains = parameters.get("exclude_domains") or []

        if not query.strip():
            return ToolResult.failure("Search query missing.")
        if not self.settings.tavily_api_key:
            return ToolResult.failure("Tavily API key not configured.")

        try:
            data = await self.http_search(query, int(max_results), search_depth, include_domains, exclude_domains)
        except (httpx.HTTPError, ValueError, OverflowError) as e:
            message = describe_http_error("Tavily", e)
            logger.error(f"[SEARCH] {message} query='{query[:100]}'")
            return ToolResult.failure(message)

        results = [
            {"title": r.get("title", ""), "url": r.get("url", ""), "content": r.get("content", "")}
            for r in data.get("results") or []
            if isinstance(r, dict)
        ]
        if not results:
            logger.warning(f"[SEARCH] No results for query='{query[:100]}'")
            return ToolResult.failure(f"No search results found for '{query}'.")

        logger.info(f"[SEARCH] {len(results)} results for query='{query[:100]}' depth={search_depth}")
        return ToolResult.ok({
            "query": query,
            "results": results,
            "images": normalize_images(data.get("images")),
            "number_of_results": len(results),
        })

    async def http_search(
        self,
        query: str,
        max_results: int,
        search_depth: str,
        include_domains: List[str],
        exclude_domains: List[str],
    ) -> Dict[str, Any]:
        payload = {
            "api_key": self.settings.tavily_api_key,
            "query": pad_query(query),
            "max_results": max(max_results, MIN_MAX_RESULTS),
            "search_depth": search_depth,
            "include_images": True,
            "include_image_descriptions": True,
            "include_answers": True,
            "include_domains": include_domains,
            "exclude_domains": exclude_domains,
        }
        async with self.client() as client:
            response = await client.post(f"{self.settings.tavily_base_url}/search", json=payload)
            response.raise_for_status()
            data = response.json()
        if not isinstance(data, dict):
            raise ValueError("unexpected response shape")
        if not isinstance(data.get("results"), (list, type(None))):
            raise ValueError("unexpected results shape")
        return data
