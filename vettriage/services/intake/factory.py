"""Pick the intake driver for the configured mode."""
from typing import Callable, Optional

from vettriage.services.intake.driver import HostedAgentDriver, IntakeDriver
from vettriage.services.intake.listening import ListeningConfig, ListeningWindow
from vettriage.services.intake.sequencer import LocalQuestionSequencer, SequencerTimings
from vettriage.services.intake.voice import VoiceOutput

INTAKE_MODES = ("local", "hosted")


def build_intake_driver(
    mode: str,
    voice: Optional[VoiceOutput] = None,
    level_reader: Optional[Callable[[], float]] = None,
    listening: ListeningConfig = ListeningConfig(),
    timings: SequencerTimings = SequencerTimings(),
) -> IntakeDriver:
    """``local`` needs a voice output and a microphone level reader."""
    mode = (mode or "").strip().lower()
    if mode == "hosted":
        return HostedAgentDriver()
    if mode == "local":
        if voice is None or level_reader is None:
            raise ValueError("local intake needs a voice output and a level reader")
        return LocalQuestionSequencer(
            voice, ListeningWindow(level_reader, listening), timings=timings
        )
    raise ValueError(f"Unknown intake mode '{mode}', expected one of {INTAKE_MODES}")
