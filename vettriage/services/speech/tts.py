"""Text-to-speech service."""
import logging
from typing import Optional

from openai import AsyncOpenAI

from vettriage.core.errors import UpstreamError

logger = logging.getLogger(__name__)

MEDIA_TYPES = {
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "opus": "audio/ogg",
    "aac": "audio/aac",
    "flac": "audio/flac",
    "pcm": "audio/L16",
}


class TextToSpeechService:
    """Service for converting text to speech."""

    def __init__(self, api_key: Optional[str], client: Optional[AsyncOpenAI] = None):
        self.client = client
        if self.client is None and api_key:
            self.client = AsyncOpenAI(api_key=api_key)

    async def synthesize_speech(
        self,
        text: str,
        voice: str = "nova",
        model: str = "tts-1",
        response_format: str = "mp3",
    ) -> bytes:
        """
        Synthesize speech from text using OpenAI TTS.

        Args:
            text: Text to convert to speech
            voice: Voice to use (alloy, echo, fable, onyx, nova, shimmer)
            model: Model to use (tts-1 or tts-1-hd)
            response_format: Audio container, one of MEDIA_TYPES

        Returns:
            Audio bytes
        """
        if self.client is None:
            raise UpstreamError(503, {"error": "OpenAI API key not configured"})
        if response_format not in MEDIA_TYPES:
            raise ValueError(f"Unsupported audio format '{response_format}'")
        try:
            response = await self.client.audio.speech.create(
                model=model,
                voice=voice,
                input=text,
                response_format=response_format,
            )
            return response.content
        except Exception as e:
            logger.error(f"[TTS] Synthesis failed: {type(e).__name__}: {e}")
            raise UpstreamError(
                500, {"error": "TTS generation failed", "details": str(e)}
            ) from e
