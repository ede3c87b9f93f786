"""Locally timed question sequencer."""
import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from vettriage.services.agent.constants import ACKNOWLEDGMENT
from vettriage.services.agent.prompt import get_closing_line, get_greeting, get_system_prompt
from vettriage.services.agent.properties import AgentPromptSpec
from vettriage.services.intake.driver import IntakeDriver
from vettriage.services.intake.listening import ListenOutcome, ListenResult, ListeningWindow
from vettriage.services.intake.questions import INTAKE_QUESTIONS, IntakeQuestion
from vettriage.services.intake.voice import VoiceOutput
from vettriage.services.session.models import (
    IntakeTurn,
    Session,
    TIMEOUT_SENTINEL,
    TriageSummary,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SequencerTimings:
    intro_pause: float = 2.0
    before_listen: float = 1.0
    after_answer: float = 1.0


class TranscriptBuffer:
    """Caller speech text pushed by a recognizer while a window is open."""

    def __init__(self):
        self._parts: List[str] = []

    def push(self, text: str) -> None:
        if text and text.strip():
            self._parts.append(text.strip())

    def drain(self) -> Optional[str]:
        if not self._parts:
            return None
        text = " ".join(self._parts)
        self._parts.clear()
        return text


async def _pause(seconds: float, cancelled: asyncio.Event) -> bool:
    """Sleep unless cancelled first; returns False when cancelled."""
    if cancelled.is_set():
        return False
    if seconds <= 0:
        return True
    try:
        await asyncio.wait_for(cancelled.wait(), timeout=seconds)
        return False
    except asyncio.TimeoutError:
        return True


class LocalQuestionSequencer(IntakeDriver):
    """Speaks each question, listens, and records the answer in order.

    The hosted agent stays in the channel with its greeting disabled; turn
    timing is owned here. Questions are never skipped or reordered, and the
    loop only stops early when the session is cancelled.
    """

    def __init__(
        self,
        voice: VoiceOutput,
        listener: ListeningWindow,
        questions: Sequence[IntakeQuestion] = INTAKE_QUESTIONS,
        timings: SequencerTimings = SequencerTimings(),
        transcripts: Optional[TranscriptBuffer] = None,
    ):
        super().__init__(questions)
        self.voice = voice
        self.listener = listener
        self.timings = timings
        self.transcripts = transcripts or TranscriptBuffer()

    def prompt_spec(self, session: Session) -> AgentPromptSpec:
        return AgentPromptSpec(
            system_instruction=get_system_prompt(session.subject, self.questions),
            greeting=get_greeting(session.subject),
            enable_greeting=False,
        )

    def _response_text(self, question: IntakeQuestion, result: ListenResult) -> str:
        heard = self.transcripts.drain()
        if heard:
            return heard
        if result.heard_voice:
            return f"Voice response completed for question {question.ordinal}"
        return TIMEOUT_SENTINEL

    async def run(self, session: Session) -> Tuple[IntakeTurn, ...]:
        cancelled = session.cancelled
        subject = session.subject

        logger.info(f"[INTAKE] Starting {self.question_count}-question intake for {subject.name}")
        await self.voice.speak(get_greeting(subject), cancelled)
        if not await _pause(self.timings.intro_pause, cancelled):
            return session.turns

        for question in self.questions[len(session.turns):]:
            if cancelled.is_set():
                break
            prompt = question.render(subject)
            logger.info(f"[INTAKE] Question {question.ordinal}/{self.question_count}")

            await self.voice.speak(prompt, cancelled)
            if not await _pause(self.timings.before_listen, cancelled):
                break

            self.transcripts.drain()
            result = await self.listener.listen(cancelled)
            if result.outcome == ListenOutcome.CANCELLED:
                break

            session.record_turn(
                IntakeTurn(
                    ordinal=question.ordinal,
                    prompt=prompt,
                    response=self._response_text(question, result),
                )
            )
            await self.voice.speak(ACKNOWLEDGMENT, cancelled)
            if not await _pause(self.timings.after_answer, cancelled):
                break

        if not cancelled.is_set() and self.is_complete(session):
            await self.voice.speak(get_closing_line(subject), cancelled)
            logger.info(f"[INTAKE] Intake complete for {session.channel_id}")
        return session.turns

    async def deliver_summary(self, session: Session, summary: TriageSummary) -> None:
        if summary.spoken_digest:
            await self.voice.speak(summary.spoken_digest, session.cancelled)
