# api/health.py

from fastapi import APIRouter, Depends

from solchat.config import Settings, get_settings

health_router = APIRouter()

@health_router.get("/health")
async def health_check(settings: Settings = Depends(get_settings)):
    # Report which providers have credentials, never the credentials themselves
    return {
        "status": "healthy",
        "message": "Solana Research Chat API is running",
        "model": settings.default_model,
        "providers": {
            "search": bool(settings.tavily_api_key),
            "retrieve": "jina" if settings.jina_api_key else ("tavily" if settings.tavily_api_key else None),
            "birdeye": bool(settings.birdeye_api_key),
        },
    }
