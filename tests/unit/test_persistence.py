"""Unit tests for session persistence (service, stores and history API)."""
import pytest
from datetime import timedelta

from vettriage.services.persistence.sessions import (
    SessionPersistenceService,
    SessionRecord,
    record_from_row,
)
from vettriage.services.session.models import (
    IntakeTurn,
    Session,
    Subject,
    TIMEOUT_SENTINEL,
    TriageSummary,
    Urgency,
    utcnow,
)
from vettriage.services.summary.summarizer import fallback_summary


def make_record(channel_id: str = "vet-room-1", urgency: str = "High", seconds: int = 185) -> SessionRecord:
    ended = utcnow()
    return SessionRecord(
        channel_id=channel_id,
        agent_handle="agent-1",
        subject=Subject(name="Bella", category="Dog", age="3 years"),
        started_at=ended - timedelta(seconds=seconds),
        ended_at=ended,
        duration_seconds=seconds,
        turns=[
            IntakeTurn(ordinal=1, prompt="Breed?", response="Beagle"),
            IntakeTurn(ordinal=2, prompt="Spayed?", response=TIMEOUT_SENTINEL),
        ],
        summary=TriageSummary.model_validate(
            {"urgencyLevel": urgency, "urgencyReason": "Vomiting twice", "keyFindings": ["Vomiting"]}
        ),
    )


class TestSessionRecord:
    """Test building records from live sessions."""

    def test_from_session_duration(self):
        """Test that duration is computed from start and end."""
        session = Session("vet-room-1", Subject(name="Bella", category="Dog"))
        session.started_at = utcnow() - timedelta(seconds=42)
        session.mark_ended()

        record = SessionRecord.from_session(session, fallback_summary(), agent_handle="agent-9")

        assert abs(record.duration_seconds - 42) <= 1
        assert record.agent_handle == "agent-9"
        assert record.summary.is_fallback

    def test_from_session_without_start(self):
        """Test that a session that never started has zero duration."""
        record = SessionRecord.from_session(Session("vet-room-1"), fallback_summary())
        assert record.duration_seconds == 0


class TestSessionPersistenceService:
    """Test the SQLAlchemy-backed service."""

    @pytest.mark.asyncio
    async def test_create_session_record(self, test_db):
        """Test that the session row and its turns are inserted."""
        service = SessionPersistenceService(test_db)

        row = await service.create_session_record(make_record())

        assert row.id is not None
        assert row.urgency == "High"
        assert row.pet_name == "Bella"
        assert row.summary["urgencyReason"] == "Vomiting twice"
        assert row.is_fallback is False

    @pytest.mark.asyncio
    async def test_latest_for_channel(self, test_db):
        """Test that the newest row for a channel is returned with turns."""
        service = SessionPersistenceService(test_db)
        await service.create_session_record(make_record(urgency="Low"))
        await service.create_session_record(make_record(urgency="High"))
        await service.create_session_record(make_record(channel_id="other-room"))

        row = await service.get_latest_for_channel("vet-room-1")

        assert row.urgency == "High"
        record = record_from_row(row)
        assert [t.ordinal for t in record.turns] == [1, 2]
        assert record.turns[1].timed_out

    @pytest.mark.asyncio
    async def test_latest_for_unknown_channel(self, test_db):
        service = SessionPersistenceService(test_db)
        assert await service.get_latest_for_channel("nowhere") is None

    @pytest.mark.asyncio
    async def test_list_recent(self, test_db):
        """Test newest-first ordering and the limit."""
        service = SessionPersistenceService(test_db)
        for channel in ("room-a", "room-b", "room-c"):
            await service.create_session_record(make_record(channel_id=channel))

        rows = await service.list_recent(limit=2)

        assert [r.channel_id for r in rows] == ["room-c", "room-b"]


class TestDatabaseSessionRecordStore:
    """Test the record store round trip."""

    @pytest.mark.asyncio
    async def test_save_and_read_back(self, db_record_store):
        """Test that a saved record reads back with urgency, turns and duration."""
        saved = await db_record_store.save(make_record(seconds=185))

        loaded = await db_record_store.latest("vet-room-1")

        assert loaded.id == saved.id
        assert loaded.summary.urgency == Urgency.HIGH
        assert loaded.summary.findings == ["Vomiting"]
        assert loaded.duration_seconds == 185
        assert loaded.subject.name == "Bella"
        assert [t.response for t in loaded.turns] == ["Beagle", TIMEOUT_SENTINEL]

    @pytest.mark.asyncio
    async def test_history(self, db_record_store):
        await db_record_store.save(make_record(channel_id="room-a"))
        await db_record_store.save(make_record(channel_id="room-b"))

        history = await db_record_store.history(limit=10)

        assert [r.channel_id for r in history] == ["room-b", "room-a"]


class TestInMemorySessionRecordStore:
    """Test the process-local store."""

    @pytest.mark.asyncio
    async def test_latest_and_history(self, memory_record_store):
        first = await memory_record_store.save(make_record(urgency="Low"))
        second = await memory_record_store.save(make_record(urgency="Medium"))

        assert (await memory_record_store.latest("vet-room-1")).id == second.id
        assert [r.id for r in await memory_record_store.history()] == [second.id, first.id]
        assert await memory_record_store.latest("other") is None


class TestSessionsAPI:
    """Test the session history endpoints."""

    @pytest.mark.asyncio
    async def test_channel_session(self, test_client, memory_record_store):
        """Test reading the latest record for a channel."""
        await memory_record_store.save(make_record())

        response = test_client.get("/api/sessions/vet-room-1")

        assert response.status_code == 200
        data = response.json()
        assert data["summary"]["urgencyLevel"] == "High"
        assert data["duration_seconds"] == 185
        assert len(data["turns"]) == 2

    def test_unknown_channel(self, test_client):
        response = test_client.get("/api/sessions/nowhere")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_history(self, test_client, memory_record_store):
        await memory_record_store.save(make_record(channel_id="room-a"))
        await memory_record_store.save(make_record(channel_id="room-b"))

        response = test_client.get("/api/sessions/history", params={"limit": 1})

        assert response.status_code == 200
        assert [r["channel_id"] for r in response.json()] == ["room-b"]

    def test_history_limit_bounds(self, test_client):
        assert test_client.get("/api/sessions/history", params={"limit": 0}).status_code == 400
        assert test_client.get("/api/sessions/history", params={"limit": 101}).status_code == 400
