"""In-memory RTC transport."""
import inspect
import itertools
import logging
from typing import Dict, List, Optional, Tuple

from vettriage.services.media.base import LocalTrack, MediaKind
from vettriage.services.rtc.base import (
    EventHandler,
    RemoteParticipant,
    RemoteTrack,
    RtcTransport,
    TransportError,
    TransportEvent,
)

logger = logging.getLogger(__name__)


class InMemoryRemoteTrack(RemoteTrack):
    """Remote track that records playback calls."""

    def __init__(self, uid: int, kind: MediaKind):
        self.uid = uid
        self.kind = kind
        self.playing = False
        self.target: Optional[str] = None
        self.volume: Optional[int] = None

    def play(self, target: Optional[str] = None) -> None:
        self.playing = True
        self.target = target

    def stop(self) -> None:
        self.playing = False

    def set_volume(self, volume: int) -> None:
        self.volume = volume


class InMemoryTransport(RtcTransport):
    """Loopback transport for local development and tests.

    Every call is appended to ``calls`` so ordering can be inspected.
    Failures are injected by setting ``join_error``, ``leave_error``,
    ``publish_error`` or ``subscribe_error``.
    """

    _uid_counter = itertools.count(1000)

    def __init__(self, assigned_uid: Optional[int] = None):
        self.assigned_uid = assigned_uid
        self.calls: List[Tuple[str, ...]] = []
        self.handlers: Dict[TransportEvent, List[EventHandler]] = {}
        self.published: List[LocalTrack] = []
        self.channel: Optional[str] = None
        self.uid: Optional[int] = None
        self.join_error: Optional[TransportError] = None
        self.leave_error: Optional[Exception] = None
        self.publish_error: Optional[Exception] = None
        self.subscribe_error: Optional[Exception] = None

    @property
    def joined(self) -> bool:
        return self.channel is not None

    async def join(
        self, app_id: Optional[str], channel: str, token: Optional[str], uid: int
    ) -> int:
        self.calls.append(("join", channel))
        if self.join_error is not None:
            raise self.join_error
        if self.joined:
            raise TransportError("Already joined", code="INVALID_OPERATION")
        self.channel = channel
        self.uid = uid or self.assigned_uid or next(self._uid_counter)
        logger.debug(f"[IN-MEMORY RTC] Joined {channel} as {self.uid}")
        return self.uid

    async def leave(self) -> None:
        self.calls.append(("leave",))
        if self.leave_error is not None:
            raise self.leave_error
        self.channel = None
        self.published = []

    async def publish(self, tracks: List[LocalTrack]) -> None:
        self.calls.append(("publish",) + tuple(str(t.kind) for t in tracks))
        if self.publish_error is not None:
            raise self.publish_error
        self.published.extend(tracks)

    async def subscribe(self, participant: RemoteParticipant, kind: MediaKind) -> RemoteTrack:
        self.calls.append(("subscribe", str(participant.uid), str(kind)))
        if self.subscribe_error is not None:
            raise self.subscribe_error
        track = InMemoryRemoteTrack(participant.uid, kind)
        if kind == MediaKind.AUDIO:
            participant.audio_track = track
        else:
            participant.video_track = track
        return track

    def on(self, event: TransportEvent, handler: EventHandler) -> None:
        self.handlers.setdefault(event, []).append(handler)

    async def emit(self, event: TransportEvent, *args) -> None:
        """Dispatch an event to the registered handlers."""
        for handler in self.handlers.get(event, []):
            result = handler(*args)
            if inspect.isawaitable(result):
                await result
