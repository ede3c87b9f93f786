"""Database models."""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, JSON, Boolean
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class TriageSessionRecord(Base):
    """One finished triage call with its summary."""

    __tablename__ = "triage_sessions"

    id = Column(Integer, primary_key=True, index=True)
    channel_id = Column(String, index=True, nullable=False)
    agent_handle = Column(String, nullable=True)
    pet_name = Column(String, nullable=False)
    pet_category = Column(String, nullable=False)
    pet_age = Column(String, nullable=True)
    pet_emoji = Column(String, nullable=True)
    status = Column(String, default="ended", nullable=False)  # ended, failed
    started_at = Column(DateTime(timezone=True), nullable=False)
    ended_at = Column(DateTime(timezone=True), nullable=False)
    duration_seconds = Column(Integer, default=0, nullable=False)
    urgency = Column(String, nullable=False)  # High, Medium, Low
    summary = Column(JSON, nullable=False)  # wire-format TriageSummary
    is_fallback = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    turns = relationship(
        "IntakeTurnRecord",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="IntakeTurnRecord.ordinal",
    )


class IntakeTurnRecord(Base):
    """A single question/answer pair of a triage session."""

    __tablename__ = "intake_turns"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(Integer, ForeignKey("triage_sessions.id"), nullable=False)
    ordinal = Column(Integer, nullable=False)
    prompt = Column(Text, nullable=False)
    response = Column(Text, nullable=False)
    captured_at = Column(DateTime(timezone=True), nullable=False)

    # Relationships
    session = relationship("TriageSessionRecord", back_populates="turns")
