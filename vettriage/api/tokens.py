"""RTC token endpoint."""
import logging
from typing import Optional
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from vettriage.core.dependencies import get_token_broker
from vettriage.core.errors import CredentialUnavailable
from vettriage.services.tokens.broker import TokenBroker

router = APIRouter()
logger = logging.getLogger(__name__)


def parse_uid(raw: Optional[str]) -> int:
    """Lenient uid parsing; anything unparseable means auto-assign (0)."""
    try:
        return int(str(raw).strip())
    except (TypeError, ValueError):
        return 0


@router.get("/api/token")
async def get_token(
    channelName: Optional[str] = None,
    uid: Optional[str] = None,
    role: str = "publisher",
    broker: TokenBroker = Depends(get_token_broker),
):
    """Mint a join token for (channelName, uid, role)."""
    if not channelName:
        return JSONResponse(status_code=400, content={"error": "channelName is required"})
    participant_id = parse_uid(uid)

    try:
        scoped = broker.acquire_token(channelName, participant_id, role)
    except ValueError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})
    except CredentialUnavailable as e:
        logger.error(f"[TOKEN] {e}")
        return JSONResponse(status_code=500, content={"error": str(e)})

    return {
        "token": scoped.token,
        "channelName": scoped.channel_id,
        "uid": scoped.participant_id,
        "role": scoped.role,
        "expiresAt": scoped.expires_at.isoformat(),
    }
