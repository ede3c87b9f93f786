"""Energy-based end-of-utterance detection."""
import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)


class ListenOutcome(str, Enum):
    """How a listening window ended."""

    COMPLETED = "completed"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ListenResult:
    outcome: ListenOutcome
    heard_voice: bool = False
    elapsed: float = 0.0


@dataclass(frozen=True)
class ListeningConfig:
    voice_threshold: float = 25.0
    silence_seconds: float = 5.0
    timeout_seconds: float = 15.0
    poll_interval: float = 0.1

    def __post_init__(self):
        if self.poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")


class ListeningWindow:
    """Waits for the caller to finish speaking.

    The window completes after ``silence_seconds`` of low input energy that
    follows at least one voice burst, or times out after ``timeout_seconds``
    whether or not the caller spoke. Setting the cancellation event ends it
    at once.
    """

    def __init__(
        self,
        level_reader: Callable[[], float],
        config: ListeningConfig = ListeningConfig(),
        clock: Callable[[], float] = time.monotonic,
    ):
        self.level_reader = level_reader
        self.config = config
        self._clock = clock

    async def listen(self, cancelled: asyncio.Event) -> ListenResult:
        config = self.config
        started = self._clock()
        heard_voice = False
        quiet_since = None

        while True:
            if cancelled.is_set():
                return ListenResult(ListenOutcome.CANCELLED, heard_voice, self._clock() - started)

            now = self._clock()
            if now - started >= config.timeout_seconds:
                logger.info(f"[INTAKE] Listening timed out after {config.timeout_seconds}s")
                return ListenResult(ListenOutcome.TIMEOUT, heard_voice, now - started)

            level = self.level_reader()
            if level > config.voice_threshold:
                heard_voice = True
                quiet_since = None
            elif heard_voice:
                if quiet_since is None:
                    quiet_since = now
                elif now - quiet_since >= config.silence_seconds:
                    return ListenResult(ListenOutcome.COMPLETED, True, now - started)

            try:
                await asyncio.wait_for(cancelled.wait(), timeout=config.poll_interval)
            except asyncio.TimeoutError:
                pass
