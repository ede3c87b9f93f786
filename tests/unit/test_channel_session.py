"""Unit tests for the channel session."""
import pytest

from vettriage.core.errors import (
    CredentialInvalid,
    InvalidStateTransition,
    JoinFailed,
    TeardownError,
)
from vettriage.services.media.base import MediaKind
from vettriage.services.media.in_memory import InMemoryMediaDevices
from vettriage.services.media.publisher import MediaPublisher
from vettriage.services.rtc.base import RemoteParticipant, TransportError, TransportEvent
from vettriage.services.rtc.in_memory import InMemoryTransport
from vettriage.services.session.channel import ChannelSession
from vettriage.services.session.models import Session
from vettriage.services.session.stages import SessionState


def configuring_session(channel_id: str = "vet-room-1") -> Session:
    session = Session(channel_id)
    session.transition(SessionState.CONFIGURING)
    return session


class OrderCheckingTransport(InMemoryTransport):
    """Records whether local media was already released when leave ran."""

    def __init__(self):
        super().__init__()
        self.publisher = None
        self.media_held_at_leave = None

    async def leave(self) -> None:
        self.media_held_at_leave = [
            t for t in (self.publisher.audio_track, self.publisher.video_track) if t is not None
        ]
        await super().leave()


class TestJoin:
    """Test joining the channel."""

    @pytest.mark.asyncio
    async def test_join_records_assigned_uid(self):
        """Test that an auto-assigned uid replaces 0."""
        session = configuring_session()
        transport = InMemoryTransport(assigned_uid=4321)
        channel = ChannelSession(session, transport, app_id="app")

        uid = await channel.join("vet-room-1", 0, "token")

        assert uid == 4321
        assert session.local_participant_id == 4321
        assert session.state == SessionState.JOINING
        assert channel.joined

    @pytest.mark.asyncio
    async def test_join_twice_rejected(self):
        """Test that Joining -> Joining is rejected without a leave."""
        session = configuring_session()
        channel = ChannelSession(session, InMemoryTransport())
        await channel.join("vet-room-1", 0, "token")

        with pytest.raises(InvalidStateTransition):
            await channel.join("vet-room-1", 0, "token")

    @pytest.mark.asyncio
    async def test_handlers_registered_once(self):
        """Test that participant handlers are registered exactly once."""
        session = configuring_session()
        transport = InMemoryTransport()
        channel = ChannelSession(session, transport)
        await channel.join("vet-room-1", 0, "token")
        channel._register_handlers()

        for event in TransportEvent:
            assert len(transport.handlers[event]) == 1

    @pytest.mark.asyncio
    async def test_credential_error_maps_to_credential_invalid(self):
        """Test that token rejections are distinguished from other join errors."""
        session = configuring_session()
        transport = InMemoryTransport()
        transport.join_error = TransportError("token expired", code="TOKEN_EXPIRED")
        channel = ChannelSession(session, transport)

        with pytest.raises(CredentialInvalid):
            await channel.join("vet-room-1", 0, "stale")
        assert not channel.joined

    @pytest.mark.asyncio
    async def test_other_error_maps_to_join_failed(self):
        """Test that non-credential transport errors raise JoinFailed."""
        session = configuring_session()
        transport = InMemoryTransport()
        transport.join_error = TransportError("network down", code="NETWORK_ERROR")
        channel = ChannelSession(session, transport)

        with pytest.raises(JoinFailed):
            await channel.join("vet-room-1", 0, "token")

    @pytest.mark.asyncio
    async def test_channel_mismatch(self):
        """Test that a session only joins its own channel."""
        channel = ChannelSession(configuring_session(), InMemoryTransport())
        with pytest.raises(ValueError):
            await channel.join("other-room", 0, "token")


class TestParticipants:
    """Test remote participant tracking."""

    @pytest.fixture
    async def joined(self):
        session = configuring_session()
        transport = InMemoryTransport()
        channel = ChannelSession(session, transport)
        await channel.join("vet-room-1", 0, "token")
        return session, transport, channel

    @pytest.mark.asyncio
    async def test_published_audio_plays_at_full_volume(self, joined):
        """Test subscribe-then-play for a remote audio track."""
        session, transport, channel = joined
        agent = RemoteParticipant(uid=10001)

        await transport.emit(TransportEvent.USER_PUBLISHED, agent, MediaKind.AUDIO)

        assert 10001 in channel.participants
        track = channel.participants[10001].audio_track
        assert track.playing
        assert track.volume == 100
        assert ("subscribe", "10001", "audio") in transport.calls
        event = channel.events.get_nowait()
        assert (event.kind, event.uid, event.media_kind) == ("published", 10001, MediaKind.AUDIO)

    @pytest.mark.asyncio
    async def test_published_video_renders_into_player(self, joined):
        """Test that remote video is rendered into the participant's player."""
        _, transport, channel = joined
        await transport.emit(TransportEvent.USER_PUBLISHED, RemoteParticipant(uid=7), MediaKind.VIDEO)
        assert channel.participants[7].video_track.target == "player-7"

    @pytest.mark.asyncio
    async def test_subscribe_failure_is_not_fatal(self, joined):
        """Test that a failed subscription leaves the session running."""
        session, transport, channel = joined
        transport.subscribe_error = RuntimeError("subscribe timeout")

        await transport.emit(TransportEvent.USER_PUBLISHED, RemoteParticipant(uid=5), MediaKind.AUDIO)

        assert session.state == SessionState.JOINING
        assert channel.events.empty()
        assert 5 not in channel.participants
        assert session.remote_participants == {}

    @pytest.mark.asyncio
    async def test_registry_is_read_only(self, joined):
        """Test that consumers cannot mutate the registry view."""
        _, _, channel = joined
        with pytest.raises(TypeError):
            channel.participants[1] = RemoteParticipant(uid=1)

    @pytest.mark.asyncio
    async def test_session_sees_registry(self, joined):
        """Test that the session exposes the same registry read-only."""
        session, transport, channel = joined
        await transport.emit(TransportEvent.USER_PUBLISHED, RemoteParticipant(uid=10001), MediaKind.AUDIO)

        assert 10001 in session.remote_participants
        with pytest.raises(TypeError):
            session.remote_participants[2] = RemoteParticipant(uid=2)

    @pytest.mark.asyncio
    async def test_unpublish_and_left_are_idempotent(self, joined):
        """Test that repeated removal events are harmless."""
        _, transport, channel = joined
        agent = RemoteParticipant(uid=10001)
        await transport.emit(TransportEvent.USER_PUBLISHED, agent, MediaKind.AUDIO)
        track = channel.participants[10001].audio_track

        await transport.emit(TransportEvent.USER_UNPUBLISHED, agent, MediaKind.AUDIO)
        await transport.emit(TransportEvent.USER_UNPUBLISHED, agent, MediaKind.AUDIO)
        await transport.emit(TransportEvent.USER_LEFT, agent)
        await transport.emit(TransportEvent.USER_LEFT, agent)

        assert not track.playing
        assert 10001 not in channel.participants

    @pytest.mark.asyncio
    async def test_left_during_teardown_is_noop(self, joined):
        """Test that a participant-left racing teardown does nothing."""
        session, transport, channel = joined
        agent = RemoteParticipant(uid=10001)
        await transport.emit(TransportEvent.USER_PUBLISHED, agent, MediaKind.AUDIO)
        channel.events.get_nowait()

        session.transition(SessionState.ENDING)
        channel.on_participant_left(agent)

        assert channel.events.empty()


class TestLeave:
    """Test leaving the channel."""

    @pytest.mark.asyncio
    async def test_media_released_before_transport_leave(self):
        """Test that local tracks are closed before the transport leave runs."""
        session = configuring_session()
        transport = OrderCheckingTransport()
        devices = InMemoryMediaDevices()
        publisher = MediaPublisher(devices, transport)
        transport.publisher = publisher
        channel = ChannelSession(session, transport, publisher)
        await channel.join("vet-room-1", 0, "token")
        session.transition(SessionState.PUBLISHING)
        await publisher.publish()

        await channel.leave()

        assert transport.media_held_at_leave == []
        assert devices.created[MediaKind.AUDIO][0].closed
        assert session.state == SessionState.ENDING
        assert not channel.joined

    @pytest.mark.asyncio
    async def test_media_released_even_if_transport_leave_fails(self):
        """Test the release-first order under a failing transport leave."""
        session = configuring_session()
        transport = InMemoryTransport()
        transport.leave_error = RuntimeError("socket closed")
        devices = InMemoryMediaDevices()
        publisher = MediaPublisher(devices, transport)
        channel = ChannelSession(session, transport, publisher)
        await channel.join("vet-room-1", 0, "token")
        session.transition(SessionState.PUBLISHING)
        await publisher.publish()

        with pytest.raises(TeardownError):
            await channel.leave()

        mic = devices.created[MediaKind.AUDIO][0]
        assert mic.stopped and mic.closed
        assert publisher.audio_track is None
        assert not channel.joined

    @pytest.mark.asyncio
    async def test_leave_without_media_or_join(self):
        """Test that leaving with nothing acquired is safe."""
        session = configuring_session()
        transport = InMemoryTransport()
        channel = ChannelSession(session, transport, MediaPublisher(InMemoryMediaDevices(), transport))

        await channel.leave()

        assert ("leave",) not in transport.calls
        assert session.state == SessionState.ENDING

    @pytest.mark.asyncio
    async def test_leave_after_failure_keeps_failed_state(self):
        """Test that a failed session still releases resources."""
        session = configuring_session()
        transport = InMemoryTransport()
        channel = ChannelSession(session, transport)
        await channel.join("vet-room-1", 0, "token")
        session.fail("publish failed")

        await channel.leave()

        assert session.state == SessionState.FAILED
        assert transport.calls[-1] == ("leave",)

    @pytest.mark.asyncio
    async def test_failing_track_stop_still_leaves_channel(self):
        """Test that a local track that fails to stop does not block the leave."""
        session = configuring_session()
        transport = InMemoryTransport()
        devices = InMemoryMediaDevices()
        publisher = MediaPublisher(devices, transport)
        channel = ChannelSession(session, transport, publisher)
        await channel.join("vet-room-1", 0, "token")
        session.transition(SessionState.PUBLISHING)
        await publisher.publish()

        mic = devices.created[MediaKind.AUDIO][0]

        def broken_stop():
            raise RuntimeError("device gone")

        mic.stop = broken_stop

        await channel.leave()

        assert mic.closed
        assert publisher.audio_track is None
        assert transport.calls[-1] == ("leave",)
        assert not channel.joined
        assert session.state == SessionState.ENDING
