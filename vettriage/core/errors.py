"""Error taxonomy for session orchestration."""
from typing import Any, Optional


class TriageError(Exception):
    """Base exception for triage session errors."""
    pass


class ConfigUnavailable(TriageError):
    """Client configuration or token could not be fetched."""
    pass


class CredentialUnavailable(TriageError):
    """Token signing failed upstream (e.g. missing app certificate)."""
    pass


class CredentialInvalid(TriageError):
    """The transport rejected the join because of the token."""
    pass


class JoinFailed(TriageError):
    """The transport rejected the join for a non-credential reason."""
    pass


class MediaAccessDenied(TriageError):
    """Microphone/camera permission or device failure."""
    pass


class AgentConflict(TriageError):
    """Another agent already occupies the channel."""

    def __init__(self, message: str, agent_id: Optional[str] = None):
        super().__init__(message)
        self.agent_id = agent_id


class AgentStartFailed(TriageError):
    """The hosted agent could not be started."""
    pass


class AnalysisUnavailable(TriageError):
    """Triage analysis failed; callers recover with the fallback summary."""
    pass


class TeardownError(TriageError):
    """A best-effort teardown step failed."""
    pass


class InvalidStateTransition(TriageError):
    """A session state transition is not allowed."""
    pass


class UpstreamError(Exception):
    """Non-2xx response from an upstream HTTP service."""

    def __init__(self, status_code: int, payload: Any = None):
        super().__init__(f"Upstream returned {status_code}: {payload}")
        self.status_code = status_code
        self.payload = payload
