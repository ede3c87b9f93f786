"""Microphone capture and speech playback backed by sounddevice."""
import asyncio
import io
import logging
import wave
from typing import Any, Dict, List, Optional

from vettriage.core.errors import MediaAccessDenied
from vettriage.services.intake.voice import AudioPlayer
from vettriage.services.media.base import (
    LocalTrack,
    MediaDevice,
    MediaDeviceProvider,
    MediaKind,
)

logger = logging.getLogger(__name__)

INT16_FULL_SCALE = 32768.0


def compute_level(frames: Any) -> float:
    """RMS energy of an int16 block mapped onto 0-255."""
    import numpy as np

    samples = np.asarray(frames, dtype=np.float32)
    if samples.size == 0:
        return 0.0
    rms = float(np.sqrt(np.mean(np.square(samples))))
    return min(255.0, rms / INT16_FULL_SCALE * 255.0)


def _input_devices() -> List[Dict[str, Any]]:
    try:
        import sounddevice as sd
    except Exception as exc:  # pragma: no cover - environment-dependent
        raise MediaAccessDenied("sounddevice is required for microphone capture.") from exc

    devices = sd.query_devices()
    return [
        dict(device, index=index)
        for index, device in enumerate(devices)
        if device.get("max_input_channels", 0) > 0
    ]


def select_input_device(
    candidates: List[Dict[str, Any]],
    device_id: Optional[str] = None,
) -> Dict[str, Any]:
    if not candidates:
        raise MediaAccessDenied("No input devices found.")
    if device_id is not None:
        for device in candidates:
            if str(device.get("index")) == str(device_id):
                return device
            if device_id.lower() in device.get("name", "").lower():
                return device
    return candidates[0]


class SoundDeviceMicrophoneTrack(LocalTrack):
    """Microphone track that keeps the latest block's energy."""

    kind = MediaKind.AUDIO

    def __init__(
        self,
        device: Dict[str, Any],
        sample_rate_hz: int = 16000,
        blocksize: int = 1024,
    ):
        self.label = device.get("name", "microphone")
        self.sample_rate_hz = sample_rate_hz
        self.blocksize = blocksize
        self.enabled = True
        self._device = device
        self._level = 0.0
        self._stream = None
        self._open(device)

    def _callback(self, indata, _frames, _time, status) -> None:
        if status or not self.enabled:
            self._level = 0.0
            return
        self._level = compute_level(indata)

    def _open(self, device: Dict[str, Any]) -> None:
        import sounddevice as sd

        try:
            stream = sd.InputStream(
                samplerate=self.sample_rate_hz,
                channels=1,
                dtype="int16",
                device=device.get("index"),
                blocksize=self.blocksize,
                callback=self._callback,
            )
            stream.start()
        except Exception as exc:
            raise MediaAccessDenied(f"Could not open microphone '{self.label}': {exc}") from exc
        self._stream = stream

    def level(self) -> float:
        return self._level if self.enabled else 0.0

    def set_enabled(self, enabled: bool) -> None:
        self.enabled = enabled

    def set_device(self, device_id: str) -> None:
        device = select_input_device(_input_devices(), device_id)
        self.stop()
        self.close()
        self.label = device.get("name", "microphone")
        self._device = device
        self._open(device)
        logger.info(f"[MEDIA] Microphone switched to '{self.label}'")

    def stop(self) -> None:
        if self._stream is not None:
            self._stream.stop()
        self._level = 0.0

    def close(self) -> None:
        if self._stream is not None:
            self._stream.close()
            self._stream = None


class SoundDeviceProvider(MediaDeviceProvider):
    """Audio-only device provider using the host's PortAudio devices."""

    def __init__(self, prefer_device: Optional[str] = None, sample_rate_hz: int = 16000):
        self.prefer_device = prefer_device
        self.sample_rate_hz = sample_rate_hz

    async def create_microphone_track(self, encoder_config: str = "music_standard") -> LocalTrack:
        device = select_input_device(_input_devices(), self.prefer_device)
        return SoundDeviceMicrophoneTrack(device, sample_rate_hz=self.sample_rate_hz)

    async def create_camera_track(self) -> LocalTrack:
        raise MediaAccessDenied("Camera capture is not available on this host")

    async def list_devices(self, kind: MediaKind) -> List[MediaDevice]:
        if kind != MediaKind.AUDIO:
            return []
        return [
            MediaDevice(str(d["index"]), d.get("name", ""), MediaKind.AUDIO)
            for d in _input_devices()
        ]


class SoundDevicePlayer(AudioPlayer):
    """Plays WAV speech on the default output device."""

    audio_format = "wav"

    async def play(self, audio: bytes) -> None:
        import numpy as np
        import sounddevice as sd

        with wave.open(io.BytesIO(audio), "rb") as wav:
            sample_rate = wav.getframerate()
            channels = wav.getnchannels()
            frames = wav.readframes(wav.getnframes())

        samples = np.frombuffer(frames, dtype=np.int16)
        if channels > 1:
            samples = samples.reshape(-1, channels)
        sd.play(samples, samplerate=sample_rate)
        await asyncio.get_running_loop().run_in_executor(None, sd.wait)

    def stop(self) -> None:
        import sounddevice as sd

        sd.stop()
