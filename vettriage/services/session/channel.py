"""Channel session: joining, participant tracking and leaving."""
import asyncio
import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple

from vettriage.core.errors import CredentialInvalid, JoinFailed, TeardownError
from vettriage.services.media.base import MediaKind
from vettriage.services.media.publisher import MediaPublisher
from vettriage.services.rtc.base import (
    RemoteParticipant,
    RemoteTrack,
    RtcTransport,
    TransportError,
    TransportEvent,
)
from vettriage.services.session.models import Session
from vettriage.services.session.stages import SessionState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParticipantEvent:
    """Registry change for presentation consumers."""

    kind: str  # "published", "unpublished", "left"
    uid: int
    media_kind: Optional[MediaKind] = None


class ChannelSession:
    """Owns the channel join and the remote participant registry."""

    def __init__(
        self,
        session: Session,
        transport: RtcTransport,
        publisher: Optional[MediaPublisher] = None,
        app_id: Optional[str] = None,
    ):
        self.session = session
        self.transport = transport
        self.publisher = publisher
        self.app_id = app_id
        self.joined = False
        self.events: "asyncio.Queue[ParticipantEvent]" = asyncio.Queue()
        self._participants: Dict[int, RemoteParticipant] = {}
        session.attach_registry(self._participants)
        self._playing: Dict[Tuple[int, MediaKind], RemoteTrack] = {}
        self._handlers_registered = False

    @property
    def participants(self) -> Mapping[int, RemoteParticipant]:
        """Read-only view of the remote participant registry."""
        return MappingProxyType(self._participants)

    def _register_handlers(self) -> None:
        if self._handlers_registered:
            return
        self.transport.on(TransportEvent.USER_PUBLISHED, self.on_participant_published)
        self.transport.on(TransportEvent.USER_UNPUBLISHED, self.on_participant_unpublished)
        self.transport.on(TransportEvent.USER_LEFT, self.on_participant_left)
        self._handlers_registered = True

    async def join(self, channel_id: str, participant_id: int, token: Optional[str]) -> int:
        """Join the channel; returns the participant id in use."""
        if channel_id != self.session.channel_id:
            raise ValueError(
                f"Channel mismatch: session uses {self.session.channel_id}, got {channel_id}"
            )
        self.session.transition(SessionState.JOINING, "join")
        self._register_handlers()

        try:
            uid = await self.transport.join(self.app_id, channel_id, token, participant_id)
        except TransportError as e:
            logger.error(f"[CHANNEL] Join failed for {channel_id} - code: {e.code}, error: {e}")
            if e.is_credential_error:
                raise CredentialInvalid(f"Token rejected joining {channel_id}: {e}") from e
            raise JoinFailed(f"Failed to join {channel_id}: {e}") from e
        except Exception as e:
            logger.error(f"[CHANNEL] Join failed for {channel_id}: {type(e).__name__}: {e}")
            raise JoinFailed(f"Failed to join {channel_id}: {e}") from e

        self.joined = True
        self.session.local_participant_id = uid
        logger.info(f"[CHANNEL] Joined channel {channel_id} as uid {uid}")
        return uid

    async def on_participant_published(
        self, participant: RemoteParticipant, media_kind: MediaKind
    ) -> None:
        if self.session.is_ending:
            return
        uid = participant.uid
        entry = self._participants.get(uid, participant)

        try:
            track = await self.transport.subscribe(entry, media_kind)
        except Exception as e:
            logger.error(f"[CHANNEL] Subscribe to {uid} ({media_kind}) failed: {e}")
            return
        if self.session.is_ending:
            return

        entry = self._participants.setdefault(uid, entry)

        previous = self._playing.pop((uid, media_kind), None)
        if previous is not None and previous is not track:
            previous.stop()

        if media_kind == MediaKind.AUDIO:
            entry.audio_track = track
            track.play()
            track.set_volume(100)
            logger.info(f"[CHANNEL] Playing remote audio from uid {uid}")
        else:
            entry.video_track = track
            track.play(f"player-{uid}")
            logger.info(f"[CHANNEL] Rendering remote video from uid {uid}")

        self._playing[(uid, media_kind)] = track
        self.events.put_nowait(ParticipantEvent("published", uid, media_kind))

    def on_participant_unpublished(
        self, participant: RemoteParticipant, media_kind: MediaKind
    ) -> None:
        if self.session.is_ending:
            return
        uid = participant.uid
        track = self._playing.pop((uid, media_kind), None)
        if track is not None:
            track.stop()

        entry = self._participants.get(uid)
        if entry is None:
            return
        if media_kind == MediaKind.AUDIO:
            entry.audio_track = None
        else:
            entry.video_track = None
        if entry.audio_track is None and entry.video_track is None:
            del self._participants[uid]
        logger.info(f"[CHANNEL] uid {uid} unpublished {media_kind}")
        self.events.put_nowait(ParticipantEvent("unpublished", uid, media_kind))

    def on_participant_left(self, participant: RemoteParticipant) -> None:
        if self.session.is_ending:
            return
        uid = participant.uid
        for kind in MediaKind:
            track = self._playing.pop((uid, kind), None)
            if track is not None:
                track.stop()
        if self._participants.pop(uid, None) is None:
            return
        logger.info(f"[CHANNEL] uid {uid} left")
        self.events.put_nowait(ParticipantEvent("left", uid))

    def _release_remote(self) -> None:
        for track in self._playing.values():
            try:
                track.stop()
            except Exception as e:
                logger.warning(f"[CHANNEL] Failed to stop remote track: {e}")
        self._playing.clear()
        self._participants.clear()

    async def leave(self) -> None:
        """Release local media, then the transport join.

        Raises TeardownError if the transport leave fails; local media is
        already released by then.
        """
        if not self.session.is_terminal and self.session.state != SessionState.ENDING:
            self.session.transition(SessionState.ENDING, "leave")

        released = 0
        if self.publisher is not None:
            try:
                released = self.publisher.release()
            except Exception as e:
                logger.error(f"[CHANNEL] Local media release failed: {type(e).__name__}: {e}")
        self._release_remote()
        logger.info(f"[CHANNEL] Released {released} local track(s) before leaving")

        if not self.joined:
            return
        try:
            await self.transport.leave()
        except Exception as e:
            logger.error(f"[CHANNEL] Transport leave failed: {type(e).__name__}: {e}")
            raise TeardownError(f"Failed to leave {self.session.channel_id}: {e}") from e
        finally:
            self.joined = False
        logger.info(f"[CHANNEL] Left channel {self.session.channel_id}")
