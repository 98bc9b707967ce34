"""LiveSession ORM — scheduled real-time meeting with bounded capacity and a chat log.

Invariants:
    - status transitions: scheduled -> live -> completed, scheduled|live -> cancelled
    - started_at set when the session goes live; ended_at set on completed/cancelled
    - last_chat_sequence is the highest sequence handed out (0 = no messages yet)
    - Never physically deleted — retained for audit/history

Design Decisions:
    - last_chat_sequence denormalized onto the session row: the per-session lock
      already serializes posts, so the counter needs no separate sequence table
    - classroom_id nullable: platform-wide mentor sessions have no classroom
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.dialects.postgresql import UUID

from academy.db.base import Base


class LiveSession(Base):
    """Live session aggregate — owns participants and chat messages."""
    __tablename__ = "live_sessions"
    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="ck_live_sessions_duration_positive"),
        CheckConstraint("max_participants > 0", name="ck_live_sessions_capacity_positive"),
        Index("ix_live_sessions_status_scheduled", "status", "scheduled_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    classroom_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("classrooms.id"), nullable=True, index=True,
    )
    host_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    scheduled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=60)
    max_participants: Mapped[int] = mapped_column(Integer, nullable=False, default=20)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="scheduled")
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancel_reason: Mapped[str | None] = mapped_column(String(200), nullable=True)
    last_chat_sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    participants: Mapped[list["SessionParticipant"]] = relationship(
        "SessionParticipant", back_populates="session", lazy="noload",
    )
