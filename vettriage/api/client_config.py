"""Client configuration endpoint."""
import logging
from fastapi import APIRouter, Request

from vettriage.core.config import settings

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/config")
async def get_client_config(request: Request):
    """Connection parameters the client needs; REST secrets and the certificate stay here."""
    logger.info(
        f"[CONFIG] Request received - Client: {request.client.host if request.client else 'unknown'}"
    )
    return {
        "AGORA_APPID": settings.agora_appid,
        "AGORA_TOKEN": settings.agora_token,
        "LLM_AWS_BEDROCK_KEY": settings.llm_aws_bedrock_key,
        "LLM_AWS_BEDROCK_ACCESS_KEY": settings.llm_aws_bedrock_access_key,
        "LLM_AWS_BEDROCK_SECRET_KEY": settings.llm_aws_bedrock_secret_key,
        "OPENAI_KEY": settings.openai_key,
        "GROQ_KEY": settings.groq_key,
        "TTS_MINIMAX_KEY": settings.tts_minimax_key,
        "TTS_MINIMAX_GROUPID": settings.tts_minimax_groupid,
        "AVATAR_AKOOL_KEY": settings.avatar_akool_key,
    }
