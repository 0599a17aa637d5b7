# api/log.py

from fastapi import APIRouter
import logging
from typing import Optional
from pydantic import BaseModel

log_router = APIRouter()
logger = logging.getLogger(__name__)

class LogRequest(BaseModel):
    error: str
    timestamp: str
    userAgent: str
    url: str
    chatId: Optional[str] = None

@log_router.post("/log")
async def log_error(request: LogRequest):
    chat = f" chat={request.chatId}" if request.chatId else ""
    logger.error(f"[FRONTEND] {request.timestamp}{chat}: {request.error}")
    logger.error(f"[FRONTEND] User Agent: {request.userAgent} URL: {request.url}")
    return {"success": True, "message": "Error logged successfully"}
