"""Scoped RTC join token minting."""
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from pydantic import BaseModel

from vettriage.core.errors import CredentialUnavailable
from vettriage.services.proxy.client import validate_token_request

logger = logging.getLogger(__name__)

ROLE_PUBLISHER = 1
ROLE_SUBSCRIBER = 2
ROLE_CODES = {"publisher": ROLE_PUBLISHER, "subscriber": ROLE_SUBSCRIBER}

# (app_id, app_certificate, channel, uid, role_code, privilege_expired_ts) -> token
TokenSigner = Callable[[str, str, str, int, int, int], str]


def agora_signer(
    app_id: str,
    app_certificate: str,
    channel_id: str,
    participant_id: int,
    role: int,
    privilege_expired_ts: int,
) -> str:
    from agora_token_builder import RtcTokenBuilder

    return RtcTokenBuilder.buildTokenWithUid(
        app_id, app_certificate, channel_id, participant_id, role, privilege_expired_ts
    )


class ScopedToken(BaseModel):
    """A join credential bound to one channel, participant and role."""

    token: str
    channel_id: str
    participant_id: int
    role: str
    expires_at: datetime


class TokenBroker:
    """Signs join tokens with the app certificate; held server-side only."""

    def __init__(
        self,
        app_id: Optional[str],
        app_certificate: Optional[str],
        lifetime_seconds: int = 3600,
        signer: Optional[TokenSigner] = None,
        clock: Callable[[], float] = time.time,
    ):
        if lifetime_seconds <= 0:
            raise ValueError("lifetime_seconds must be positive")
        self.app_id = app_id
        self.app_certificate = app_certificate
        self.lifetime_seconds = lifetime_seconds
        self.signer = signer or agora_signer
        self._clock = clock

    def acquire_token(
        self, channel_id: str, participant_id: int, role: str = "publisher"
    ) -> ScopedToken:
        validate_token_request(channel_id, participant_id, role)
        if not self.app_id or not self.app_certificate:
            raise CredentialUnavailable("Missing Agora credentials")

        expires_ts = int(self._clock()) + self.lifetime_seconds
        try:
            token = self.signer(
                self.app_id,
                self.app_certificate,
                channel_id,
                participant_id,
                ROLE_CODES[role],
                expires_ts,
            )
        except Exception as e:
            logger.error(f"[TOKEN] Signing failed for {channel_id}/{participant_id}: {e}")
            raise CredentialUnavailable(f"Token signing failed: {e}") from e
        if not token:
            raise CredentialUnavailable("Token signer returned an empty token")

        logger.info(f"[TOKEN] Generated {role} token for channel {channel_id}, uid {participant_id}")
        return ScopedToken(
            token=token,
            channel_id=channel_id,
            participant_id=participant_id,
            role=role,
            expires_at=datetime.fromtimestamp(expires_ts, tz=timezone.utc),
        )
