"""Health check endpoint."""
import logging
from fastapi import APIRouter, Request

from vettriage.core.config import settings

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
async def health_check(request: Request):
    """Liveness plus which upstream credentials are configured."""
    logger.debug(
        f"[HEALTH] Health check requested - Client: {request.client.host if request.client else 'unknown'}"
    )
    return {
        "status": "healthy",
        "token_signing": bool(settings.agora_appid and settings.agora_appcertificate),
        "convo_ai": settings.has_agora_rest_credentials,
        "analysis": bool(settings.groq_key or settings.openai_key),
    }
