"""Model provider clients used for tool selection and answer generation."""
import asyncio
import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence

import httpx

from solchat.config import Settings
from solchat.llm.messages import Turn

logger = logging.getLogger(__name__)


class ModelProviderError(Exception):
    """The model call failed at the transport or provider level."""

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.status_code = status_code


class ModelClient(Protocol):
    model_id: str
    supports_structured_output: bool

    async def complete(
        self,
        system_instruction: str,
        turns: Sequence[Turn],
        response_schema: Optional[Dict[str, Any]] = None,
    ) -> str:
        ...


def _gemini_schema(schema: Dict[str, Any]) -> Dict[str, Any]:
    """Gemini expects upper-case OpenAPI type names."""
    converted: Dict[str, Any] = {}
    for key, value in schema.items():
        if key == "type" and isinstance(value, str):
            converted[key] = value.upper()
        elif isinstance(value, dict):
            converted[key] = _gemini_schema(value)
        else:
            converted[key] = value
    return converted


class _RetryingClient:
    """Shared retry loop: 5xx and network errors back off exponentially, 429/404 do not retry."""

    provider = "model"
    supports_structured_output = True

    def __init__(self, model_id: str, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.model_id = model_id
        self.settings = settings
        self._transport = transport

    async def _post(self, url: str, payload: Dict[str, Any], params: Optional[Dict[str, str]] = None,
                    headers: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        max_retries = self.settings.model_max_retries
        backoff_base = self.settings.model_retry_backoff
        async with httpx.AsyncClient(timeout=self.settings.model_timeout, transport=self._transport) as client:
            attempt = 0
            while True:
                try:
                    logger.info(f"{self.provider} request model={self.model_id} attempt={attempt}")
                    response = await client.post(url, params=params, headers=headers, json=payload)

                    if response.status_code == 429:
                        retry_after = response.headers.get("Retry-After", "60")
                        logger.warning(f"{self.provider} rate limited. Retry-After: {retry_after}")
                        raise ModelProviderError("Rate limited by AI service", status_code=429)

                    if response.status_code == 404:
                        # Likely invalid model or wrong base URL version
                        raise ModelProviderError(f"Model not found or unavailable: {self.model_id}", status_code=404)

                    if 500 <= response.status_code < 600 and attempt < max_retries:
                        backoff = backoff_base * (2 ** attempt)
                        logger.warning(f"{self.provider} 5xx {response.status_code}, retrying in {backoff:.1f}s")
                        await asyncio.sleep(backoff)
                        attempt += 1
                        continue

                    response.raise_for_status()
                    return response.json()
                except httpx.HTTPStatusError as e:
                    body_preview = (e.response.text or "")[:500]
                    logger.error(f"{self.provider} HTTP error: {e} body={body_preview}")
                    raise ModelProviderError(f"AI service error: {e}", status_code=e.response.status_code)
                except httpx.RequestError as e:
                    if attempt < max_retries:
                        backoff = backoff_base * (2 ** attempt)
                        logger.warning(f"{self.provider} request error {e.__class__.__name__}, retrying in {backoff:.1f}s")
                        await asyncio.sleep(backoff)
                        attempt += 1
                        continue
                    logger.error(f"{self.provider} request error: {repr(e)}")
                    raise ModelProviderError(f"AI service network error: {e.__class__.__name__}: {e}", status_code=503)
                except ValueError as e:
                    raise ModelProviderError(f"AI service returned invalid JSON: {e}")


class GeminiClient(_RetryingClient):
    provider = "Gemini"

    async def complete(self, system_instruction: str, turns: Sequence[Turn],
                       response_schema: Optional[Dict[str, Any]] = None) -> str:
        if not self.settings.gemini_api_key:
            raise ModelProviderError("Gemini API key not configured")

        payload: Dict[str, Any] = {
            "systemInstruction": {"parts": [{"text": system_instruction}]},
            "contents": [
                {"role": "model" if t.role == "assistant" else "user", "parts": [{"text": t.text()}]}
                for t in turns
            ],
        }
        if response_schema is not None:
            payload["generationConfig"] = {
                "responseMimeType": "application/json",
                "responseSchema": _gemini_schema(response_schema),
            }

        url = f"{self.settings.gemini_base_url}/models/{self.model_id}:generateContent"
        data = await self._post(url, payload, params={"key": self.settings.gemini_api_key})
        try:
            candidates = data.get("candidates") or []
            if not candidates:
                raise ModelProviderError("No candidates returned by Gemini")
            parts = candidates[0].get("content", {}).get("parts", [])
            text = "".join(part.get("text", "") for part in parts)
        except (AttributeError, TypeError, KeyError) as e:
            logger.error(f"Gemini response has unexpected shape: {e}")
            raise ModelProviderError(f"Unexpected response from Gemini: {e}", status_code=502)
        logger.info(f"Gemini response chars={len(text)}")
        return text


class OpenAICompatibleClient(_RetryingClient):
    """Chat Completions API; also serves ollama through its OpenAI-compatible endpoint."""

    provider = "OpenAI"

    def __init__(self, model_id: str, settings: Settings, base_url: str, api_key: Optional[str],
                 structured_output: bool = True, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(model_id, settings, transport=transport)
        self.base_url = base_url
        self.api_key = api_key
        self.supports_structured_output = structured_output

    async def complete(self, system_instruction: str, turns: Sequence[Turn],
                       response_schema: Optional[Dict[str, Any]] = None) -> str:
        messages: List[Dict[str, str]] = [{"role": "system", "content": system_instruction}]
        for t in turns:
            messages.append({"role": "assistant" if t.role == "assistant" else "user", "content": t.text()})
        payload: Dict[str, Any] = {"model": self.model_id, "messages": messages}
        if response_schema is not None and self.supports_structured_output:
            payload["response_format"] = {
                "type": "json_schema",
                "json_schema": {"name": "tool_call", "schema": response_schema},
            }

        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else None
        data = await self._post(f"{self.base_url}/chat/completions", payload, headers=headers)
        try:
            choices = data.get("choices") or []
            if not choices:
                raise ModelProviderError(f"No choices returned by {self.provider}")
            text = choices[0].get("message", {}).get("content") or ""
        except (AttributeError, TypeError, KeyError) as e:
            logger.error(f"{self.provider} response has unexpected shape: {e}")
            raise ModelProviderError(f"Unexpected response from {self.provider}: {e}", status_code=502)
        if not isinstance(text, str):
            raise ModelProviderError(f"Unexpected response from {self.provider}: content is not text", status_code=502)
        logger.info(f"{self.provider} response chars={len(text)}")
        return text


def get_model_client(model_id: str, settings: Settings) -> ModelClient:
    """Resolve a `provider:model` identifier to a client."""
    provider, _, name = model_id.partition(":")
    if not name:
        raise ModelProviderError(f"Model id must look like 'provider:model', got '{model_id}'", status_code=400)
    if provider == "gemini":
        return GeminiClient(name, settings)
    if provider == "openai":
        return OpenAICompatibleClient(name, settings, settings.openai_base_url, settings.openai_api_key)
    if provider == "ollama":
        client = OpenAICompatibleClient(name, settings, settings.ollama_base_url, None, structured_output=False)
        client.provider = "Ollama"
        return client
    raise ModelProviderError(f"Unknown model provider '{provider}'", status_code=400)
