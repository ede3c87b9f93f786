"""Conversational AI proxy endpoints."""
import logging
from typing import Any, Dict, Optional
from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse

from vettriage.core.dependencies import get_convo_ai_client
from vettriage.core.errors import CredentialUnavailable, UpstreamError
from vettriage.services.convo_ai.client import ConvoAIClient

router = APIRouter(prefix="/api/convo-ai")
logger = logging.getLogger(__name__)

MISCONFIGURED = {"error": "Server misconfigured: missing Agora credentials"}


def upstream_response(error: UpstreamError) -> JSONResponse:
    """Mirror the upstream status and body."""
    content = error.payload if isinstance(error.payload, dict) else {"error": str(error.payload)}
    return JSONResponse(status_code=error.status_code, content=content)


@router.post("/start")
async def start_agent(
    body: Dict[str, Any] = Body(...),
    client: ConvoAIClient = Depends(get_convo_ai_client),
):
    """Create a hosted agent; a 409 conflict is passed through with its agent_id."""
    try:
        return await client.join(body)
    except CredentialUnavailable:
        logger.error("[CONVO AI] Missing Agora credentials in environment")
        return JSONResponse(status_code=500, content=MISCONFIGURED)
    except UpstreamError as e:
        return upstream_response(e)


@router.post("/agents/{agent_id}/leave")
async def stop_agent(agent_id: str, client: ConvoAIClient = Depends(get_convo_ai_client)):
    try:
        return await client.leave(agent_id)
    except CredentialUnavailable:
        return JSONResponse(status_code=500, content=MISCONFIGURED)
    except UpstreamError as e:
        return upstream_response(e)


@router.get("/agents/{agent_id}/status")
async def agent_status(agent_id: str, client: ConvoAIClient = Depends(get_convo_ai_client)):
    try:
        return await client.status(agent_id)
    except CredentialUnavailable:
        return JSONResponse(status_code=500, content=MISCONFIGURED)
    except UpstreamError as e:
        return upstream_response(e)


@router.post("/cleanup/{channel_name}")
async def cleanup_channel(
    channel_name: str, client: ConvoAIClient = Depends(get_convo_ai_client)
):
    """Best effort: always 200 unless the server itself is misconfigured."""
    try:
        return await client.cleanup_channel(channel_name)
    except CredentialUnavailable:
        return JSONResponse(status_code=500, content=MISCONFIGURED)


@router.post("/webhook")
async def agent_webhook(payload: Optional[Dict[str, Any]] = Body(default=None)):
    """Agent lifecycle notifications; logged and acknowledged."""
    payload = payload or {}
    logger.info(
        f"[CONVO AI WEBHOOK] event={payload.get('event_type', payload.get('event', 'unknown'))} "
        f"agent={payload.get('agent_id', 'unknown')}"
    )
    return {"received": True}
