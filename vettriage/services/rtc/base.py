"""RTC transport interface."""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional

from vettriage.services.media.base import LocalTrack, MediaKind

# Transport error codes that mean the join token was rejected.
CREDENTIAL_ERROR_CODES = frozenset(
    {
        "CAN_NOT_GET_GATEWAY_SERVER",
        "INVALID_TOKEN",
        "TOKEN_EXPIRED",
        "DYNAMIC_KEY_EXPIRED",
    }
)


class TransportError(Exception):
    """Error raised by the RTC transport."""

    def __init__(self, message: str, code: str = ""):
        super().__init__(message)
        self.code = code

    @property
    def is_credential_error(self) -> bool:
        return self.code in CREDENTIAL_ERROR_CODES


class TransportEvent(str, Enum):
    """Participant events emitted by the transport."""

    USER_PUBLISHED = "user-published"
    USER_UNPUBLISHED = "user-unpublished"
    USER_LEFT = "user-left"


class RemoteTrack(ABC):
    """A subscribed remote media track."""

    @abstractmethod
    def play(self, target: Optional[str] = None) -> None:
        """Start playback (audio) or render into ``target`` (video)."""
        pass

    @abstractmethod
    def stop(self) -> None:
        """Stop playback and release rendering resources."""
        pass

    @abstractmethod
    def set_volume(self, volume: int) -> None:
        """Set playback volume (0-100)."""
        pass


@dataclass
class RemoteParticipant:
    """A remote participant in the channel."""

    uid: int
    audio_track: Optional[RemoteTrack] = None
    video_track: Optional[RemoteTrack] = None

    def track_for(self, kind: MediaKind) -> Optional[RemoteTrack]:
        return self.audio_track if kind == MediaKind.AUDIO else self.video_track


# Handlers may be plain callables or coroutine functions.
EventHandler = Callable[..., Any]


class RtcTransport(ABC):
    """Abstract base class for the real-time media transport."""

    @abstractmethod
    async def join(
        self, app_id: Optional[str], channel: str, token: Optional[str], uid: int
    ) -> int:
        """Join ``channel``; returns the participant id actually assigned."""
        pass

    @abstractmethod
    async def leave(self) -> None:
        """Leave the joined channel."""
        pass

    @abstractmethod
    async def publish(self, tracks: List[LocalTrack]) -> None:
        """Publish local tracks to the channel."""
        pass

    @abstractmethod
    async def subscribe(self, participant: RemoteParticipant, kind: MediaKind) -> RemoteTrack:
        """Subscribe to a participant's published media."""
        pass

    @abstractmethod
    def on(self, event: TransportEvent, handler: EventHandler) -> None:
        """Register a participant event handler."""
        pass
