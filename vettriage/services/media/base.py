"""Local capture device interfaces."""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import List


class MediaKind(str, Enum):
    """Kind of media carried by a track."""

    AUDIO = "audio"
    VIDEO = "video"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class MediaDevice:
    """A capture device known to the provider."""

    device_id: str
    label: str
    kind: MediaKind


@dataclass(frozen=True)
class DeviceChange:
    """Hot-plug notification for a capture device."""

    device: MediaDevice
    state: str  # "ACTIVE" or "INACTIVE"

    @property
    def is_active(self) -> bool:
        return self.state.upper() == "ACTIVE"


class LocalTrack(ABC):
    """A locally captured media track."""

    kind: MediaKind
    label: str

    @abstractmethod
    def level(self) -> float:
        """Current input energy on a 0-255 scale (0 for video)."""
        pass

    @abstractmethod
    def set_enabled(self, enabled: bool) -> None:
        """Mute/unmute without releasing the device."""
        pass

    @abstractmethod
    def set_device(self, device_id: str) -> None:
        """Switch the capture device in place."""
        pass

    @abstractmethod
    def stop(self) -> None:
        """Stop capturing."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the underlying device handle."""
        pass


class MediaDeviceProvider(ABC):
    """Abstract base class for capture device providers."""

    @abstractmethod
    async def create_microphone_track(self, encoder_config: str = "music_standard") -> LocalTrack:
        """Open the microphone. Raises MediaAccessDenied on failure."""
        pass

    @abstractmethod
    async def create_camera_track(self) -> LocalTrack:
        """Open the camera. Raises MediaAccessDenied on failure."""
        pass

    @abstractmethod
    async def list_devices(self, kind: MediaKind) -> List[MediaDevice]:
        """List available devices of a kind."""
        pass
