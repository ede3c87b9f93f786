"""Retry policy for agent start."""
from dataclasses import dataclass


@dataclass(frozen=True)
class RetryPolicy:
    """How many start attempts to make and how long to wait between them.

    Only a channel conflict is retried; every other start failure is final.
    """

    max_attempts: int = 2
    backoff_seconds: float = 2.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.backoff_seconds < 0:
            raise ValueError("backoff_seconds must be non-negative")
