"""Page content retrieval through Jina Reader or Tavily Extract."""
import logging
from typing import Any, Dict, Optional

import httpx

from .base import ToolAdapter, describe_http_error
from solchat.llm.messages import ToolResult

logger = logging.getLogger(__name__)


class RetrieveAdapter(ToolAdapter):
    """Jina Reader is used when a Jina key is configured, Tavily Extract otherwise."""

    name = "retrieve"

    @property
    def backend(self) -> str:
        return "jina" if self.settings.jina_api_key else "tavily"

    async def execute(self, parameters: Dict[str, Any]) -> ToolResult:
        url = (parameters.get("url") or "").strip()
        if not url:
            return ToolResult.failure("URL missing.")

        fetch = self.fetch_jina if self.backend == "jina" else self.fetch_tavily
        provider = "Jina Reader" if self.backend == "jina" else "Tavily Extract"
        try:
            page = await fetch(url)
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            logger.error(f"[RETRIEVE] {describe_http_error(provider, e)} url={url}")
            page = None

        if not page:
            return ToolResult.failure("Failed to retrieve content from the URL or no content found.")

        logger.info(f"[RETRIEVE] {provider} returned {len(page['content'])} chars for {url}")
        return ToolResult.ok({"query": "", "results": [page], "images": []})

    async def fetch_jina(self, url: str) -> Optional[Dict[str, str]]:
        headers = {
            "Accept": "application/json",
            "X-With-Generated-Alt": "true",
            "Authorization": f"Bearer {self.settings.jina_api_key}",
        }
        async with self.client() as client:
            response = await client.get(f"{self.settings.jina_base_url}/{url}", headers=headers)
            response.raise_for_status()
            body = response.json()
        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, dict) or not isinstance(data.get("content"), str) or not data["content"]:
            return None
        return {
            "title": data.get("title") or "",
            "content": data["content"][: self.settings.content_char_limit],
            "url": data.get("url") or url,
        }

    async def fetch_tavily(self, url: str) -> Optional[Dict[str, str]]:
        if not self.settings.tavily_api_key:
            logger.warning("[RETRIEVE] Neither JINA_API_KEY nor TAVILY_API_KEY is configured")
            return None
        payload = {"api_key": self.settings.tavily_api_key, "urls": [url]}
        async with self.client() as client:
            response = await client.post(f"{self.settings.tavily_base_url}/extract", json=payload)
            response.raise_for_status()
            body = response.json()
        results = body.get("results") if isinstance(body, dict) else None
        if not isinstance(results, list) or not results or not isinstance(results[0], dict):
            return None
        if not isinstance(results[0].get("raw_content"), str) or not results[0]["raw_content"]:
            return None
        content = results[0]["raw_content"][: self.settings.content_char_limit]
        return {
            # Tavily Extract has no title field
            "title": content[:100],
            "content": content,
            "url": results[0].get("url") or url,
        }
