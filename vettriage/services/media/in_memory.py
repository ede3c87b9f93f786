"""In-memory capture devices."""
from typing import Dict, Iterable, List, Optional

from vettriage.core.errors import MediaAccessDenied
from vettriage.services.media.base import (
    LocalTrack,
    MediaDevice,
    MediaDeviceProvider,
    MediaKind,
)


class InMemoryLocalTrack(LocalTrack):
    """Local track fed from a scripted sequence of input levels.

    Each ``level()`` call consumes the next value; the last value repeats
    once the script is exhausted.
    """

    def __init__(
        self,
        kind: MediaKind,
        label: str,
        device_id: str = "default",
        levels: Optional[Iterable[float]] = None,
    ):
        self.kind = kind
        self.label = label
        self.device_id = device_id
        self.enabled = True
        self.stopped = False
        self.closed = False
        self._levels = list(levels or [])
        self._last_level = 0.0

    def script_levels(self, levels: Iterable[float]) -> None:
        self._levels = list(levels)

    def level(self) -> float:
        if not self.enabled or self.kind != MediaKind.AUDIO:
            return 0.0
        if self._levels:
            self._last_level = self._levels.pop(0)
        return self._last_level

    def set_enabled(self, enabled: bool) -> None:
        self.enabled = enabled

    def set_device(self, device_id: str) -> None:
        self.device_id = device_id

    def stop(self) -> None:
        self.stopped = True

    def close(self) -> None:
        self.closed = True


class InMemoryMediaDevices(MediaDeviceProvider):
    """Device provider with configurable devices and failures."""

    def __init__(
        self,
        devices: Optional[List[MediaDevice]] = None,
        deny: Iterable[MediaKind] = (),
    ):
        self.devices = devices or [
            MediaDevice("mic-default", "Default Microphone", MediaKind.AUDIO),
            MediaDevice("cam-default", "Default Camera", MediaKind.VIDEO),
        ]
        self.deny = set(deny)
        self.created: Dict[MediaKind, List[InMemoryLocalTrack]] = {
            MediaKind.AUDIO: [],
            MediaKind.VIDEO: [],
        }

    def _open(self, kind: MediaKind) -> InMemoryLocalTrack:
        if kind in self.deny:
            raise MediaAccessDenied(f"Permission denied for {kind.value}")
        candidates = [d for d in self.devices if d.kind == kind]
        if not candidates:
            raise MediaAccessDenied(f"No {kind.value} device found")
        device = candidates[0]
        track = InMemoryLocalTrack(kind, device.label, device.device_id)
        self.created[kind].append(track)
        return track

    async def create_microphone_track(self, encoder_config: str = "music_standard") -> LocalTrack:
        return self._open(MediaKind.AUDIO)

    async def create_camera_track(self) -> LocalTrack:
        return self._open(MediaKind.VIDEO)

    async def list_devices(self, kind: MediaKind) -> List[MediaDevice]:
        return [d for d in self.devices if d.kind == kind]
