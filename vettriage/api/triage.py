"""Triage analysis and speech endpoints."""
import logging
from typing import Any, Dict
from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from vettriage.core.dependencies import get_triage_analyzer, get_tts_service
from vettriage.core.errors import UpstreamError
from vettriage.services.analysis.analyzer import TriageAnalyzer
from vettriage.services.speech.tts import MEDIA_TYPES, TextToSpeechService

router = APIRouter()
logger = logging.getLogger(__name__)


class SpeechRequest(BaseModel):
    """Text-to-speech request."""
    text: str = ""
    voice: str = "nova"
    model: str = "tts-1"
    format: str = "mp3"


@router.post("/api/analyze-triage")
async def analyze_triage(
    payload: Dict[str, Any] = Body(...),
    analyzer: TriageAnalyzer = Depends(get_triage_analyzer),
):
    """Classify urgency for the submitted intake responses."""
    responses = payload.get("responses")
    if not isinstance(responses, list):
        return JSONResponse(status_code=400, content={"error": "responses must be a list"})
    try:
        return await analyzer.analyze(payload)
    except UpstreamError as e:
        return JSONResponse(status_code=e.status_code, content=e.payload)


@router.post("/api/openai-tts")
async def synthesize(
    request: SpeechRequest,
    tts: TextToSpeechService = Depends(get_tts_service),
):
    if not request.text:
        return JSONResponse(status_code=400, content={"error": "Text is required"})
    if request.format not in MEDIA_TYPES:
        return JSONResponse(
            status_code=400, content={"error": f"Unsupported format '{request.format}'"}
        )
    try:
        audio = await tts.synthesize_speech(
            request.text, voice=request.voice, model=request.model, response_format=request.format
        )
    except UpstreamError as e:
        return JSONResponse(status_code=e.status_code, content=e.payload)
    logger.info(f"[TTS] Synthesized {len(audio)} bytes for {len(request.text)} chars")
    return Response(content=audio, media_type=MEDIA_TYPES[request.format])
