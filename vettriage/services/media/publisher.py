"""Local media publisher."""
import asyncio
import logging
from typing import Callable, List, Optional

from vettriage.core.errors import MediaAccessDenied
from vettriage.services.media.base import (
    DeviceChange,
    LocalTrack,
    MediaDeviceProvider,
    MediaKind,
)
from vettriage.services.rtc.base import RtcTransport

logger = logging.getLogger(__name__)

DeviceListener = Callable[[DeviceChange, LocalTrack], None]


class MediaPublisher:
    """Acquires local capture tracks and publishes them to the transport.

    Tracks are owned here until ``release`` runs; release is safe to call
    any number of times and returns how many handles it actually freed.
    """

    def __init__(
        self,
        devices: MediaDeviceProvider,
        transport: RtcTransport,
        enable_video: bool = False,
    ):
        self.devices = devices
        self.transport = transport
        self.enable_video = enable_video
        self.audio_track: Optional[LocalTrack] = None
        self.video_track: Optional[LocalTrack] = None
        self.muted = False
        self.video_enabled = True
        self._listeners: List[DeviceListener] = []

    @property
    def tracks(self) -> List[LocalTrack]:
        return [t for t in (self.audio_track, self.video_track) if t is not None]

    async def publish(self) -> List[LocalTrack]:
        """Open the microphone (and camera when enabled) and publish them."""
        try:
            if self.enable_video:
                audio, video = await asyncio.gather(
                    self.devices.create_microphone_track(encoder_config="music_standard"),
                    self.devices.create_camera_track(),
                    return_exceptions=True,
                )
                # Keep whichever opened so release() can close it.
                self.audio_track = None if isinstance(audio, BaseException) else audio
                self.video_track = None if isinstance(video, BaseException) else video
                for outcome in (audio, video):
                    if isinstance(outcome, BaseException):
                        raise outcome
            else:
                self.audio_track = await self.devices.create_microphone_track(
                    encoder_config="music_standard"
                )
        except MediaAccessDenied:
            self.release()
            raise
        except Exception as e:
            self.release()
            raise MediaAccessDenied(f"Failed to access capture devices: {e}") from e

        try:
            await self.transport.publish(self.tracks)
        except Exception as e:
            self.release()
            raise MediaAccessDenied(f"Failed to publish local media: {e}") from e

        logger.info(
            f"[MEDIA] Published {[str(t.kind) for t in self.tracks]} tracks"
        )
        return self.tracks

    def release(self) -> int:
        """Stop and close every held track.

        Each handle is dropped before it is closed, and a track that fails to
        stop or close is logged and still counted as released.
        """
        released = 0
        audio, self.audio_track = self.audio_track, None
        video, self.video_track = self.video_track, None
        for track in (audio, video):
            if track is None:
                continue
            self._close_track(track)
            released += 1
        if released:
            logger.info(f"[MEDIA] Released {released} local track(s)")
        return released

    @staticmethod
    def _close_track(track: LocalTrack) -> None:
        try:
            track.stop()
        except Exception as e:
            logger.warning(f"[MEDIA] Failed to stop {track.kind} track: {type(e).__name__}: {e}")
        try:
            track.close()
        except Exception as e:
            logger.warning(f"[MEDIA] Failed to close {track.kind} track: {type(e).__name__}: {e}")

    def input_level(self) -> float:
        """Live microphone energy (0 when no microphone is held)."""
        if self.audio_track is None:
            return 0.0
        return self.audio_track.level()

    def toggle_mute(self) -> bool:
        """Flip microphone mute; returns the new muted state."""
        if self.audio_track is None:
            return self.muted
        self.muted = not self.muted
        self.audio_track.set_enabled(not self.muted)
        logger.info("[MEDIA] Microphone muted" if self.muted else "[MEDIA] Microphone unmuted")
        return self.muted

    def toggle_video(self) -> bool:
        """Flip camera enablement; returns the new enabled state."""
        if self.video_track is None:
            return self.video_enabled
        self.video_enabled = not self.video_enabled
        self.video_track.set_enabled(self.video_enabled)
        logger.info("[MEDIA] Camera enabled" if self.video_enabled else "[MEDIA] Camera disabled")
        return self.video_enabled

    def on_device_changed(self, listener: DeviceListener) -> Callable[[], None]:
        """Subscribe to device swaps; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    async def handle_device_change(self, change: DeviceChange) -> None:
        """Move the matching track to a new device without rejoining.

        A newly active device is adopted; when the device in use goes away
        the track falls back to the first remaining device of its kind.
        """
        track = self.audio_track if change.device.kind == MediaKind.AUDIO else self.video_track
        if track is None:
            return

        if change.is_active:
            track.set_device(change.device.device_id)
        elif change.device.label == track.label:
            remaining = await self.devices.list_devices(change.device.kind)
            remaining = [d for d in remaining if d.device_id != change.device.device_id]
            if not remaining:
                logger.warning(f"[MEDIA] No fallback {change.device.kind.value} device available")
                return
            track.set_device(remaining[0].device_id)
        else:
            return

        logger.info(f"[MEDIA] {change.device.kind.value} device changed")
        for listener in list(self._listeners):
            try:
                listener(change, track)
            except Exception as e:
                logger.error(f"[MEDIA] Device listener error: {e}", exc_info=True)
