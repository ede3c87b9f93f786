"""Unit tests for the local media publisher."""
import pytest

from vettriage.core.errors import MediaAccessDenied
from vettriage.services.media.base import DeviceChange, MediaDevice, MediaKind
from vettriage.services.media.in_memory import InMemoryMediaDevices
from vettriage.services.media.publisher import MediaPublisher
from vettriage.services.media.sounddevice_tracks import compute_level, select_input_device
from vettriage.services.rtc.in_memory import InMemoryTransport


MIC_A = MediaDevice("mic-a", "USB Microphone", MediaKind.AUDIO)
MIC_B = MediaDevice("mic-b", "Headset", MediaKind.AUDIO)
CAM = MediaDevice("cam-a", "Webcam", MediaKind.VIDEO)


class TestPublish:
    """Test acquiring and publishing local tracks."""

    @pytest.mark.asyncio
    async def test_audio_only_by_default(self):
        """Test that only the microphone is opened by default."""
        transport = InMemoryTransport()
        publisher = MediaPublisher(InMemoryMediaDevices(), transport)

        tracks = await publisher.publish()

        assert [t.kind for t in tracks] == [MediaKind.AUDIO]
        assert transport.calls[-1] == ("publish", "audio")

    @pytest.mark.asyncio
    async def test_audio_and_video(self):
        """Test that camera and microphone are published together."""
        transport = InMemoryTransport()
        publisher = MediaPublisher(InMemoryMediaDevices(), transport, enable_video=True)

        await publisher.publish()

        assert transport.calls[-1] == ("publish", "audio", "video")

    @pytest.mark.asyncio
    async def test_denied_camera_releases_microphone(self):
        """Test that a partial acquisition is fully released."""
        devices = InMemoryMediaDevices(deny=[MediaKind.VIDEO])
        publisher = MediaPublisher(devices, InMemoryTransport(), enable_video=True)

        with pytest.raises(MediaAccessDenied):
            await publisher.publish()

        mic = devices.created[MediaKind.AUDIO][0]
        assert mic.stopped and mic.closed
        assert publisher.tracks == []

    @pytest.mark.asyncio
    async def test_publish_failure_releases_tracks(self):
        """Test that a transport publish error is a media failure."""
        transport = InMemoryTransport()
        transport.publish_error = RuntimeError("publish rejected")
        devices = InMemoryMediaDevices()
        publisher = MediaPublisher(devices, transport)

        with pytest.raises(MediaAccessDenied):
            await publisher.publish()
        assert devices.created[MediaKind.AUDIO][0].closed


class TestRelease:
    """Test releasing tracks."""

    @pytest.mark.asyncio
    async def test_release_is_idempotent(self):
        """Test that repeated release frees each handle once."""
        publisher = MediaPublisher(InMemoryMediaDevices(), InMemoryTransport(), enable_video=True)
        await publisher.publish()

        assert publisher.release() == 2
        assert publisher.release() == 0

    def test_release_with_nothing_held(self):
        """Test release before publish."""
        publisher = MediaPublisher(InMemoryMediaDevices(), InMemoryTransport())
        assert publisher.release() == 0

    @pytest.mark.asyncio
    async def test_failing_track_does_not_block_release(self):
        """Test that a track that fails to stop is still closed and dropped."""
        devices = InMemoryMediaDevices()
        publisher = MediaPublisher(devices, InMemoryTransport(), enable_video=True)
        await publisher.publish()
        mic = devices.created[MediaKind.AUDIO][0]
        cam = devices.created[MediaKind.VIDEO][0]

        def broken_stop():
            raise RuntimeError("device gone")

        mic.stop = broken_stop

        assert publisher.release() == 2
        assert mic.closed
        assert cam.stopped and cam.closed
        assert publisher.tracks == []


class TestControls:
    """Test mute, camera toggle and input level."""

    @pytest.mark.asyncio
    async def test_toggle_mute(self):
        """Test that muting disables the microphone without releasing it."""
        publisher = MediaPublisher(InMemoryMediaDevices(), InMemoryTransport())
        await publisher.publish()

        assert publisher.toggle_mute() is True
        assert publisher.audio_track.enabled is False
        assert publisher.input_level() == 0.0
        assert publisher.toggle_mute() is False

    @pytest.mark.asyncio
    async def test_toggle_video_without_camera(self):
        """Test that camera toggling is a no-op when audio-only."""
        publisher = MediaPublisher(InMemoryMediaDevices(), InMemoryTransport())
        await publisher.publish()
        assert publisher.toggle_video() is True

    @pytest.mark.asyncio
    async def test_input_level_reads_microphone(self):
        """Test that the input level comes from the live microphone."""
        publisher = MediaPublisher(InMemoryMediaDevices(), InMemoryTransport())
        await publisher.publish()
        publisher.audio_track.script_levels([40.0, 3.0])

        assert publisher.input_level() == 40.0
        assert publisher.input_level() == 3.0
        assert publisher.input_level() == 3.0


class TestDeviceChanges:
    """Test hot-swapping capture devices."""

    @pytest.mark.asyncio
    async def test_new_device_is_adopted(self):
        """Test that a newly active microphone is switched to in place."""
        transport = InMemoryTransport()
        publisher = MediaPublisher(InMemoryMediaDevices([MIC_A, MIC_B, CAM]), transport)
        await publisher.publish()
        seen = []
        publisher.on_device_changed(lambda change, track: seen.append(track.device_id))

        await publisher.handle_device_change(DeviceChange(MIC_B, "ACTIVE"))

        assert publisher.audio_track.device_id == "mic-b"
        assert seen == ["mic-b"]
        assert [c for c in transport.calls if c[0] == "join"] == []

    @pytest.mark.asyncio
    async def test_removed_device_falls_back(self):
        """Test that unplugging the microphone in use falls back to another."""
        devices = InMemoryMediaDevices([MIC_A, MIC_B])
        publisher = MediaPublisher(devices, InMemoryTransport())
        await publisher.publish()
        devices.devices = [MIC_B]

        await publisher.handle_device_change(DeviceChange(MIC_A, "INACTIVE"))

        assert publisher.audio_track.device_id == "mic-b"

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        """Test that unsubscribed listeners are not notified."""
        publisher = MediaPublisher(InMemoryMediaDevices([MIC_A, MIC_B]), InMemoryTransport())
        await publisher.publish()
        seen = []
        unsubscribe = publisher.on_device_changed(lambda change, track: seen.append(change))
        unsubscribe()

        await publisher.handle_device_change(DeviceChange(MIC_B, "ACTIVE"))

        assert seen == []


class TestSoundDeviceHelpers:
    """Test the host-audio helpers that need no hardware."""

    def test_compute_level_silence_and_full_scale(self):
        """Test the 0-255 energy mapping."""
        assert compute_level([0, 0, 0]) == 0.0
        assert compute_level([]) == 0.0
        assert compute_level([32767, -32768]) == pytest.approx(255.0, abs=0.1)

    def test_select_input_device(self):
        """Test device selection by index or name."""
        devices = [{"index": 0, "name": "Built-in"}, {"index": 3, "name": "USB Mic"}]
        assert select_input_device(devices, "3")["name"] == "USB Mic"
        assert select_input_device(devices, "usb")["index"] == 3
        assert select_input_device(devices)["index"] == 0
        with pytest.raises(MediaAccessDenied):
            select_input_device([])
