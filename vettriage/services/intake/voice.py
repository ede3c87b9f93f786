"""Speech output for the local intake loop."""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import List, Optional

import httpx

from vettriage.core.errors import UpstreamError
from vettriage.services.agent.constants import LOCAL_TTS_MODEL, LOCAL_TTS_VOICE
from vettriage.services.proxy.client import ProxyClient

logger = logging.getLogger(__name__)


class AudioPlayer(ABC):
    """Plays synthesized audio until it finishes."""

    audio_format: str = "mp3"

    @abstractmethod
    async def play(self, audio: bytes) -> None:
        pass

    @abstractmethod
    def stop(self) -> None:
        pass


class VoiceOutput(ABC):
    """Speaks a line of text to the caller."""

    @abstractmethod
    async def speak(self, text: str, cancelled: Optional[asyncio.Event] = None) -> bool:
        """Return True when the line was spoken in full."""
        pass


class ProxyVoiceOutput(VoiceOutput):
    """Synthesizes through the proxy's TTS endpoint and plays locally.

    Synthesis and playback failures are logged and reported as False; they
    never stop the intake.
    """

    def __init__(
        self,
        proxy: ProxyClient,
        player: AudioPlayer,
        voice: str = LOCAL_TTS_VOICE,
        model: str = LOCAL_TTS_MODEL,
    ):
        self.proxy = proxy
        self.player = player
        self.voice = voice
        self.model = model

    async def speak(self, text: str, cancelled: Optional[asyncio.Event] = None) -> bool:
        if cancelled is not None and cancelled.is_set():
            return False
        try:
            audio = await self.proxy.synthesize_speech(
                text, voice=self.voice, model=self.model, response_format=self.player.audio_format
            )
        except (UpstreamError, httpx.HTTPError) as e:
            logger.error(f"[INTAKE] Speech synthesis failed: {e}")
            return False

        playback = asyncio.ensure_future(self.player.play(audio))
        if cancelled is None:
            waiters = {playback}
        else:
            waiters = {playback, asyncio.ensure_future(cancelled.wait())}

        done, pending = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()

        if playback not in done:
            self.player.stop()
            logger.info("[INTAKE] Speech interrupted by session end")
            return False
        if playback.exception() is not None:
            logger.error(f"[INTAKE] Audio playback failed: {playback.exception()}")
            return False
        return True


class RecordingVoiceOutput(VoiceOutput):
    """Keeps spoken lines in memory; used headless and in tests."""

    def __init__(self, delay: float = 0.0):
        self.spoken: List[str] = []
        self.delay = delay

    async def speak(self, text: str, cancelled: Optional[asyncio.Event] = None) -> bool:
        if cancelled is not None and cancelled.is_set():
            return False
        if self.delay:
            if cancelled is None:
                await asyncio.sleep(self.delay)
            else:
                try:
                    await asyncio.wait_for(cancelled.wait(), timeout=self.delay)
                    return False
                except asyncio.TimeoutError:
                    pass
        self.spoken.append(text)
        return True
