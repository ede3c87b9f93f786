"""FastAPI dependencies."""
from typing import AsyncIterator

from vettriage.core.config import settings
from vettriage.db.database import AsyncSessionLocal
from vettriage.services.analysis.analyzer import TriageAnalyzer
from vettriage.services.convo_ai.client import ConvoAIClient
from vettriage.services.persistence.sessions import (
    DatabaseSessionRecordStore,
    SessionRecordStore,
)
from vettriage.services.speech.tts import TextToSpeechService
from vettriage.services.tokens.broker import TokenBroker


def get_token_broker() -> TokenBroker:
    """Get token broker instance."""
    return TokenBroker(
        settings.agora_appid,
        settings.agora_appcertificate,
        lifetime_seconds=settings.token_lifetime_seconds,
    )


async def get_convo_ai_client() -> AsyncIterator[ConvoAIClient]:
    """Get a Conversational AI client for the duration of one request."""
    client = ConvoAIClient(
        settings.agora_appid,
        settings.agora_rest_key,
        settings.agora_rest_secret,
        api_base=settings.agora_api_base,
    )
    try:
        yield client
    finally:
        await client.aclose()


def get_triage_analyzer() -> TriageAnalyzer:
    """Groq when a Groq key is set, otherwise OpenAI."""
    if settings.groq_key:
        return TriageAnalyzer(
            settings.groq_key,
            base_url=settings.analysis_base_url,
            model=settings.analysis_model,
        )
    return TriageAnalyzer(settings.openai_key, model=settings.openai_analysis_model)


def get_tts_service() -> TextToSpeechService:
    return TextToSpeechService(settings.openai_key)


def get_record_store() -> SessionRecordStore:
    return DatabaseSessionRecordStore(AsyncSessionLocal)
