"""ClassroomMembership ORM — a user's staff or student seat in one classroom.

Invariants:
    - At most one ACTIVE row per (classroom_id, user_id, role) — partial unique index
    - Rows are created only by an approved request and never reactivated once removed
    - removed_at/removed_by set together with status = removed

Design Decisions:
    - Removal keeps the row (audit trail); re-joining inserts a new row
    - request_id links back to the approving ApprovalRequest
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.dialects.postgresql import UUID

from academy.db.base import Base


class ClassroomMembership(Base):
    """Membership row — role ∈ {staff, student}, status ∈ {active, removed}."""
    __tablename__ = "classroom_memberships"
    __table_args__ = (
        Index(
            "uq_classroom_memberships_active",
            "classroom_id", "user_id", "role",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    classroom_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("classrooms.id"), nullable=False, index=True,
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    request_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("approval_requests.id"), nullable=True,
    )
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    removed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    removed_by: Mapped[str | None] = mapped_column(String(64), nullable=True)

    classroom: Mapped["Classroom"] = relationship(
        "Classroom", back_populates="memberships",
    )
