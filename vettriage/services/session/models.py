"""Triage session models."""
import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from vettriage.core.errors import InvalidStateTransition
from vettriage.services.session.stages import (
    SessionState,
    TERMINAL_STATES,
    is_allowed,
)

logger = logging.getLogger(__name__)

DEFAULT_AGENT_PARTICIPANT_ID = 10001

# Recorded as the response of a question nobody answered in time.
TIMEOUT_SENTINEL = "[no response]"


def utcnow() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


class Subject(BaseModel):
    """Profile of the pet the conversation is about."""

    model_config = ConfigDict(frozen=True)

    name: str = "Your Pet"
    category: str = "Pet"  # dog, cat, ...
    age: str = "Age not specified"
    emoji: str = "🐾"


class IntakeTurn(BaseModel):
    """One question/answer pair of the intake protocol."""

    model_config = ConfigDict(frozen=True)

    ordinal: int = Field(ge=1)
    prompt: str
    response: str = TIMEOUT_SENTINEL
    captured_at: datetime = Field(default_factory=utcnow)

    @property
    def timed_out(self) -> bool:
        """Whether no answer arrived within the listening window."""
        return self.response == TIMEOUT_SENTINEL


class Urgency(str, Enum):
    """Coarse severity of a completed triage."""

    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class TriageSummary(BaseModel):
    """Urgency-classified summary derived from the intake turns.

    The wire format keeps the camelCase keys returned by the analysis
    endpoint; attribute names are snake_case.
    """

    model_config = ConfigDict(populate_by_name=True)

    urgency: Urgency = Field(alias="urgencyLevel")
    reasoning: str = Field(default="", alias="urgencyReason")
    findings: List[str] = Field(default_factory=list, alias="keyFindings")
    recommendations: List[str] = Field(default_factory=list)
    follow_ups: List[str] = Field(default_factory=list, alias="followUpActions")
    spoken_digest: str = Field(default="", alias="spokenSummary")
    is_fallback: bool = Field(default=False, alias="isFallback")

    @field_validator("urgency", mode="before")
    @classmethod
    def _normalize_urgency(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().capitalize()
        return value

    def to_wire(self) -> Dict[str, Any]:
        """Serialize with the camelCase wire keys."""
        return self.model_dump(mode="json", by_alias=True)


class Session:
    """A single triage call.

    ``transition`` is the only way the lifecycle state changes. Entering
    ``ENDING`` or ``FAILED`` sets ``cancelled`` so any in-flight listening
    window or speech short-circuits.
    """

    def __init__(
        self,
        channel_id: str,
        subject: Optional[Subject] = None,
        local_participant_id: int = 0,
        agent_participant_id: int = DEFAULT_AGENT_PARTICIPANT_ID,
    ):
        if not channel_id:
            raise ValueError("channel_id is required")
        if local_participant_id < 0:
            raise ValueError("local_participant_id must be non-negative")
        if agent_participant_id <= 0:
            raise ValueError("agent_participant_id must be a positive integer")
        if agent_participant_id == local_participant_id:
            raise ValueError("agent and caller must use different participant ids")

        self.channel_id = channel_id
        self.subject = subject or Subject()
        self.local_participant_id = local_participant_id
        self.agent_participant_id = agent_participant_id
        self.agent_handle: Optional[str] = None
        self.started_at: Optional[datetime] = None
        self.ended_at: Optional[datetime] = None
        self.failure_reason: Optional[str] = None
        self.cancelled = asyncio.Event()

        self._state = SessionState.IDLE
        self._turns: List[IntakeTurn] = []
        self._summary: Optional[TriageSummary] = None
        self._history: List[Dict[str, Any]] = []
        self._remote: Mapping[int, Any] = MappingProxyType({})

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def history(self) -> List[Dict[str, Any]]:
        return list(self._history)

    @property
    def is_terminal(self) -> bool:
        return self._state in TERMINAL_STATES

    @property
    def is_ending(self) -> bool:
        """True once teardown has begun or the session has failed."""
        return self._state in (SessionState.ENDING, SessionState.ENDED, SessionState.FAILED)

    @property
    def turns(self) -> Tuple[IntakeTurn, ...]:
        return tuple(self._turns)

    @property
    def summary(self) -> Optional[TriageSummary]:
        return self._summary

    @property
    def remote_participants(self) -> Mapping[int, Any]:
        """Read-only view of the channel's participant registry."""
        return self._remote

    def attach_registry(self, registry: Dict[int, Any]) -> None:
        self._remote = MappingProxyType(registry)

    @property
    def duration_seconds(self) -> int:
        """Elapsed seconds between start and end (or now, while running)."""
        if self.started_at is None:
            return 0
        end = self.ended_at or utcnow()
        return int(round((end - self.started_at).total_seconds()))

    def transition(self, target: SessionState, reason: str = "") -> None:
        """Move to ``target``. Raises InvalidStateTransition when illegal."""
        if not is_allowed(self._state, target):
            raise InvalidStateTransition(
                f"Illegal session transition: {self._state.value} -> {target.value}"
                + (f" ({reason})" if reason else "")
            )

        previous = self._state
        self._state = target
        self._history.append(
            {
                "from": previous.value,
                "to": target.value,
                "reason": reason,
                "at": utcnow().isoformat(),
            }
        )
        logger.info(
            f"[SESSION] {self.channel_id}: {previous.value} -> {target.value}"
            + (f" ({reason})" if reason else "")
        )

        if target in (SessionState.ENDING, SessionState.FAILED):
            self.cancelled.set()

    def fail(self, reason: str) -> None:
        """Mark the session failed unless it already reached a terminal state."""
        if self.is_terminal:
            return
        self.failure_reason = reason
        self.transition(SessionState.FAILED, reason)

    def mark_started(self) -> None:
        if self.started_at is None:
            self.started_at = utcnow()

    def mark_ended(self) -> None:
        if self.ended_at is None:
            self.ended_at = utcnow()

    def record_agent_handle(self, handle: str) -> None:
        """Store the running agent's handle; only one may be active."""
        if not handle:
            raise ValueError("agent handle must be non-empty")
        if self.agent_handle:
            raise InvalidStateTransition(
                f"Agent {self.agent_handle} is already active on {self.channel_id}"
            )
        self.agent_handle = handle

    def clear_agent_handle(self) -> None:
        self.agent_handle = None

    def record_turn(self, turn: IntakeTurn) -> None:
        """Append the next turn; ordinals must run 1..N without gaps."""
        expected = len(self._turns) + 1
        if turn.ordinal != expected:
            raise ValueError(f"Expected turn ordinal {expected}, got {turn.ordinal}")
        self._turns.append(turn)

    def attach_summary(self, summary: TriageSummary, regenerate: bool = False) -> None:
        """Set the summary once; replacing it requires ``regenerate=True``."""
        if self._summary is not None and not regenerate:
            raise ValueError("Summary already computed; pass regenerate=True to replace it")
        self._summary = summary
