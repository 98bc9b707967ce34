"""SessionParticipant ORM — one admission of a user into a live session.

Invariants:
    - Active rows (left_at IS NULL) per session never exceed max_participants
    - At most one active row per (session_id, user_id); re-joining after leave inserts a new row
    - role captured at admission time (host / co_host / attendee)
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.dialects.postgresql import UUID

from academy.db.base import Base


class SessionParticipant(Base):
    """Participant row — admission record, closed by left_at."""
    __tablename__ = "session_participants"
    __table_args__ = (
        Index(
            "uq_session_participants_active",
            "session_id", "user_id",
            unique=True,
            postgresql_where=text("left_at IS NULL"),
            sqlite_where=text("left_at IS NULL"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    session_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("live_sessions.id"), nullable=False, index=True,
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="attendee")
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    left_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    session: Mapped["LiveSession"] = relationship(
        "LiveSession", back_populates="participants",
    )
