"""Runtime configuration loaded from the environment."""
import os
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel

DEFAULT_CORS_ORIGINS = ["http://localhost:5173", "http://localhost:3000"]  # Vite default ports

# Domains the search tool is biased towards unless a call overrides them
DEFAULT_SEARCH_DOMAINS = [
    "solana.com",
    "solscan.io",
    "solana.fm",
    "explorer.solana.com",
    "defillama.com",
    "coingecko.com",
    "coinmarketcap.com",
    "solanafloor.com",
    "decrypt.co",
    "theblockcrypto.com",
    "nosana.io",
    "jup.ag",
    "tensor.trade",
    "drift.trade",
    "pyth.network",
    "magiceden.io",
    "metaplex.com",
    "docs.solana.com",
    "github.com/solana-labs",
    "medium.com",
    "substack.com",
]


def _split_csv(value: Optional[str], default: List[str]) -> List[str]:
    if not value:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseModel):
    """Every external knob of the backend, injected into tools and model clients."""

    log_level: str = "INFO"
    cors_origins: List[str] = DEFAULT_CORS_ORIGINS

    # Model provider
    default_model: str = "gemini:gemini-1.5-flash"
    gemini_api_key: Optional[str] = None
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    openai_api_key: Optional[str] = None
    openai_base_url: str = "https://api.openai.com/v1"
    ollama_base_url: str = "http://localhost:11434/v1"
    model_max_retries: int = 2
    model_retry_backoff: float = 1.0
    model_timeout: float = 60.0

    # Tool providers
    tavily_api_key: Optional[str] = None
    tavily_base_url: str = "https://api.tavily.com"
    jina_api_key: Optional[str] = None
    jina_base_url: str = "https://r.jina.ai"
    birdeye_api_key: Optional[str] = None
    birdeye_base_url: str = "https://public-api.birdeye.so"
    solscan_base_url: str = "https://public-api.solscan.io"
    tool_timeout: float = 20.0

    # Tool behaviour
    search_domains: List[str] = DEFAULT_SEARCH_DOMAINS
    default_max_results: int = 10
    content_char_limit: int = 10000
    selection_window: int = 3

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from process environment (and a .env file if present)."""
        load_dotenv()
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            cors_origins=_split_csv(os.getenv("CORS_ORIGINS"), DEFAULT_CORS_ORIGINS),
            default_model=os.getenv("DEFAULT_MODEL", "gemini:gemini-1.5-flash"),
            gemini_api_key=os.getenv("GEMINI_API_KEY"),
            gemini_base_url=os.getenv("GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"),
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            openai_base_url=os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1"),
            ollama_base_url=os.getenv("OLLAMA_BASE_URL", "http://localhost:11434/v1"),
            model_max_retries=int(os.getenv("MODEL_MAX_RETRIES", "2")),
            model_retry_backoff=float(os.getenv("MODEL_RETRY_BACKOFF", "1.0")),
            model_timeout=float(os.getenv("MODEL_TIMEOUT", "60")),
            tavily_api_key=os.getenv("TAVILY_API_KEY"),
            tavily_base_url=os.getenv("TAVILY_BASE_URL", "https://api.tavily.com"),
            jina_api_key=os.getenv("JINA_API_KEY"),
            jina_base_url=os.getenv("JINA_BASE_URL", "https://r.jina.ai"),
            birdeye_api_key=os.getenv("BIRDEYE_API_KEY"),
            birdeye_base_url=os.getenv("BIRDEYE_BASE_URL", "https://public-api.birdeye.so"),
            solscan_base_url=os.getenv("SOLSCAN_BASE_URL", "https://public-api.solscan.io"),
            tool_timeout=float(os.getenv("TOOL_TIMEOUT", "20")),
            search_domains=_split_csv(os.getenv("SEARCH_DOMAINS"), DEFAULT_SEARCH_DOMAINS),
            default_max_results=int(os.getenv("SEARCH_MAX_RESULTS", "10")),
            content_char_limit=int(os.getenv("CONTENT_CHAR_LIMIT", "10000")),
            selection_window=int(os.getenv("SELECTION_WINDOW", "3")),
        )


@lru_cache()
def get_settings() -> Settings:
    return Settings.from_env()
