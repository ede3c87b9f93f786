"""Triage session history API endpoints."""
import logging
from typing import List
from fastapi import APIRouter, Depends, HTTPException, Request

from vettriage.core.dependencies import get_record_store
from vettriage.services.persistence.sessions import SessionRecord, SessionRecordStore

router = APIRouter(prefix="/api/sessions")
logger = logging.getLogger(__name__)


@router.get("/history", response_model=List[SessionRecord])
async def get_session_history(
    request: Request,
    limit: int = 20,
    store: SessionRecordStore = Depends(get_record_store),
):
    """Most recent finished sessions, newest first."""
    logger.info(
        f"[SESSIONS HISTORY] Request received - limit: {limit}, "
        f"Client: {request.client.host if request.client else 'unknown'}"
    )
    if limit < 1 or limit > 100:
        raise HTTPException(status_code=400, detail="limit must be between 1 and 100")
    records = await store.history(limit)
    logger.info(f"[SESSIONS HISTORY] Returning {len(records)} sessions")
    return records


@router.get("/{channel_id}", response_model=SessionRecord)
async def get_channel_session(
    channel_id: str,
    store: SessionRecordStore = Depends(get_record_store),
):
    """Latest record for one channel."""
    record = await store.latest(channel_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"No session recorded for {channel_id}")
    return record
