"""Triage session persistence."""
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from vettriage.db.models import IntakeTurnRecord, TriageSessionRecord
from vettriage.services.session.models import (
    IntakeTurn,
    Session,
    Subject,
    TriageSummary,
    utcnow,
)

logger = logging.getLogger(__name__)


class SessionRecord(BaseModel):
    """Everything kept about a finished session, read back by the summary view."""

    id: Optional[int] = None
    channel_id: str
    agent_handle: Optional[str] = None
    subject: Subject
    status: str = "ended"
    started_at: datetime
    ended_at: datetime
    duration_seconds: int = 0
    turns: List[IntakeTurn] = Field(default_factory=list)
    summary: TriageSummary

    @classmethod
    def from_session(
        cls, session: Session, summary: TriageSummary, agent_handle: Optional[str] = None
    ) -> "SessionRecord":
        ended_at = session.ended_at or utcnow()
        started_at = session.started_at or ended_at
        return cls(
            channel_id=session.channel_id,
            agent_handle=agent_handle,
            subject=session.subject,
            started_at=started_at,
            ended_at=ended_at,
            duration_seconds=max(0, int(round((ended_at - started_at).total_seconds()))),
            turns=list(session.turns),
            summary=summary,
        )


class SessionPersistenceService:
    """Service for persisting triage sessions."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_session_record(self, record: SessionRecord) -> TriageSessionRecord:
        """Insert the session row and its turns in one commit."""
        row = TriageSessionRecord(
            channel_id=record.channel_id,
            agent_handle=record.agent_handle,
            pet_name=record.subject.name,
            pet_category=record.subject.category,
            pet_age=record.subject.age,
            pet_emoji=record.subject.emoji,
            status=record.status,
            started_at=record.started_at,
            ended_at=record.ended_at,
            duration_seconds=record.duration_seconds,
            urgency=record.summary.urgency.value,
            summary=record.summary.to_wire(),
            is_fallback=record.summary.is_fallback,
        )
        row.turns = [
            IntakeTurnRecord(
                ordinal=turn.ordinal,
                prompt=turn.prompt,
                response=turn.response,
                captured_at=turn.captured_at,
            )
            for turn in record.turns
        ]
        self.db.add(row)
        await self.db.commit()
        await self.db.refresh(row)
        return row

    async def get_latest_for_channel(self, channel_id: str) -> Optional[TriageSessionRecord]:
        result = await self.db.execute(
            select(TriageSessionRecord)
            .options(selectinload(TriageSessionRecord.turns))
            .where(TriageSessionRecord.channel_id == channel_id)
            .order_by(TriageSessionRecord.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_recent(self, limit: int = 20) -> List[TriageSessionRecord]:
        result = await self.db.execute(
            select(TriageSessionRecord)
            .options(selectinload(TriageSessionRecord.turns))
            .order_by(TriageSessionRecord.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())


def record_from_row(row: TriageSessionRecord) -> SessionRecord:
    return SessionRecord(
        id=row.id,
        channel_id=row.channel_id,
        agent_handle=row.agent_handle,
        subject=Subject(
            name=row.pet_name,
            category=row.pet_category,
            age=row.pet_age or "Age not specified",
            emoji=row.pet_emoji or "🐾",
        ),
        status=row.status,
        started_at=row.started_at,
        ended_at=row.ended_at,
        duration_seconds=row.duration_seconds,
        turns=[
            IntakeTurn(
                ordinal=t.ordinal,
                prompt=t.prompt,
                response=t.response,
                captured_at=t.captured_at,
            )
            for t in sorted(row.turns, key=lambda t: t.ordinal)
        ],
        summary=TriageSummary.model_validate(row.summary),
    )


class SessionRecordStore(ABC):
    """Durable storage for finished sessions."""

    @abstractmethod
    async def save(self, record: SessionRecord) -> SessionRecord:
        """Persist and return the stored record (with its id)."""
        pass

    @abstractmethod
    async def latest(self, channel_id: str) -> Optional[SessionRecord]:
        pass

    @abstractmethod
    async def history(self, limit: int = 20) -> List[SessionRecord]:
        pass


class DatabaseSessionRecordStore(SessionRecordStore):
    """Record store backed by SQLAlchemy; one DB session per call."""

    def __init__(self, session_factory: Callable[[], AsyncSession]):
        self.session_factory = session_factory

    async def save(self, record: SessionRecord) -> SessionRecord:
        async with self.session_factory() as db:
            row = await SessionPersistenceService(db).create_session_record(record)
            logger.info(f"[PERSISTENCE] Saved session {row.id} for channel {record.channel_id}")
            return record.model_copy(update={"id": row.id})

    async def latest(self, channel_id: str) -> Optional[SessionRecord]:
        async with self.session_factory() as db:
            row = await SessionPersistenceService(db).get_latest_for_channel(channel_id)
            return record_from_row(row) if row is not None else None

    async def history(self, limit: int = 20) -> List[SessionRecord]:
        async with self.session_factory() as db:
            rows = await SessionPersistenceService(db).list_recent(limit)
            return [record_from_row(row) for row in rows]


class InMemorySessionRecordStore(SessionRecordStore):
    """Process-local record store."""

    def __init__(self):
        self._records: Dict[int, SessionRecord] = {}

    async def save(self, record: SessionRecord) -> SessionRecord:
        stored = record.model_copy(update={"id": len(self._records) + 1})
        self._records[stored.id] = stored
        return stored

    async def latest(self, channel_id: str) -> Optional[SessionRecord]:
        for record in sorted(self._records.values(), key=lambda r: r.id, reverse=True):
            if record.channel_id == channel_id:
                return record
        return None

    async def history(self, limit: int = 20) -> List[SessionRecord]:
        return sorted(self._records.values(), key=lambda r: r.id, reverse=True)[:limit]
