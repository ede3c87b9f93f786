"""Session state enumeration and legal transitions."""
from enum import Enum
from typing import Dict, FrozenSet


class SessionState(str, Enum):
    """Lifecycle states of a triage session."""

    IDLE = "idle"  # Created, nothing acquired
    CONFIGURING = "configuring"  # Fetching config and join token
    JOINING = "joining"  # Joining the RTC channel
    PUBLISHING = "publishing"  # Acquiring and publishing local media
    STARTING_AGENT = "starting_agent"  # Creating the hosted agent
    ACTIVE = "active"  # Conversation in progress
    ENDING = "ending"  # Teardown in progress
    ENDED = "ended"  # Teardown complete, record persisted
    FAILED = "failed"  # Startup aborted

    def __str__(self) -> str:
        """Return the string value of the state."""
        return self.value


TERMINAL_STATES: FrozenSet[SessionState] = frozenset(
    {SessionState.ENDED, SessionState.FAILED}
)

# Forward steps; ENDING and FAILED are added for every non-terminal state below.
_FORWARD: Dict[SessionState, SessionState] = {
    SessionState.IDLE: SessionState.CONFIGURING,
    SessionState.CONFIGURING: SessionState.JOINING,
    SessionState.JOINING: SessionState.PUBLISHING,
    SessionState.PUBLISHING: SessionState.STARTING_AGENT,
    SessionState.STARTING_AGENT: SessionState.ACTIVE,
    SessionState.ENDING: SessionState.ENDED,
}


def _build_transitions() -> Dict[SessionState, FrozenSet[SessionState]]:
    transitions: Dict[SessionState, FrozenSet[SessionState]] = {}
    for state in SessionState:
        if state in TERMINAL_STATES:
            transitions[state] = frozenset()
            continue
        allowed = {SessionState.FAILED}
        if state != SessionState.ENDING:
            allowed.add(SessionState.ENDING)
        if state in _FORWARD:
            allowed.add(_FORWARD[state])
        transitions[state] = frozenset(allowed)
    return transitions


TRANSITIONS: Dict[SessionState, FrozenSet[SessionState]] = _build_transitions()


def is_allowed(current: SessionState, target: SessionState) -> bool:
    """Check whether ``current -> target`` is a legal transition."""
    return target in TRANSITIONS.get(current, frozenset())
