"""Intake drivers: who owns the question/answer turn taking."""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Tuple

from vettriage.services.agent.prompt import get_greeting, get_system_prompt
from vettriage.services.agent.properties import AgentPromptSpec
from vettriage.services.intake.questions import INTAKE_QUESTIONS, IntakeQuestion
from vettriage.services.session.models import (
    IntakeTurn,
    Session,
    TIMEOUT_SENTINEL,
    TriageSummary,
)

logger = logging.getLogger(__name__)


class IntakeDriver(ABC):
    """Drives the fixed intake protocol for one session."""

    def __init__(self, questions: Sequence[IntakeQuestion] = INTAKE_QUESTIONS):
        if not questions:
            raise ValueError("at least one intake question is required")
        self.questions: List[IntakeQuestion] = sorted(questions, key=lambda q: q.ordinal)

    @property
    def question_count(self) -> int:
        return len(self.questions)

    @abstractmethod
    def prompt_spec(self, session: Session) -> AgentPromptSpec:
        """What the hosted agent is told for this driver."""
        pass

    @abstractmethod
    async def run(self, session: Session) -> Tuple[IntakeTurn, ...]:
        """Run until every question has a turn or the session is cancelled."""
        pass

    async def deliver_summary(self, session: Session, summary: TriageSummary) -> None:
        """Present the finished summary to the caller."""
        return None

    def is_complete(self, session: Session) -> bool:
        return len(session.turns) >= self.question_count

    def fill_unanswered(self, session: Session) -> int:
        """Record the timeout sentinel for every question still without a turn."""
        filled = 0
        for question in self.questions[len(session.turns):]:
            session.record_turn(
                IntakeTurn(
                    ordinal=question.ordinal,
                    prompt=question.render(session.subject),
                    response=TIMEOUT_SENTINEL,
                )
            )
            filled += 1
        if filled:
            logger.info(f"[INTAKE] Filled {filled} unanswered question(s) on {session.channel_id}")
        return filled


class HostedAgentDriver(IntakeDriver):
    """The hosted agent asks the questions; caller utterances are forwarded here.

    Utterances are assigned to ordinals 1..N in arrival order. Anything
    arriving after the last question, or once the session is ending, is
    ignored.
    """

    def __init__(self, questions: Sequence[IntakeQuestion] = INTAKE_QUESTIONS):
        super().__init__(questions)
        self._complete = asyncio.Event()

    def prompt_spec(self, session: Session) -> AgentPromptSpec:
        return AgentPromptSpec(
            system_instruction=get_system_prompt(session.subject, self.questions),
            greeting=get_greeting(session.subject),
            enable_greeting=True,
        )

    def record_utterance(self, session: Session, text: str) -> Optional[IntakeTurn]:
        text = (text or "").strip()
        if not text or session.is_ending or self.is_complete(session):
            return None

        question = self.questions[len(session.turns)]
        turn = IntakeTurn(
            ordinal=question.ordinal,
            prompt=question.render(session.subject),
            response=text,
        )
        session.record_turn(turn)
        logger.info(f"[INTAKE] Answer {turn.ordinal}/{self.question_count} recorded")
        if self.is_complete(session):
            self._complete.set()
        return turn

    async def run(self, session: Session) -> Tuple[IntakeTurn, ...]:
        if self.is_complete(session):
            return session.turns
        self._complete.clear()
        complete = asyncio.ensure_future(self._complete.wait())
        cancelled = asyncio.ensure_future(session.cancelled.wait())
        try:
            await asyncio.wait({complete, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            complete.cancel()
            cancelled.cancel()
        return session.turns
