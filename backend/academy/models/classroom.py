"""Classroom ORM — a branded academy owned by exactly one master.

Invariants:
    - master_id immutable after creation; must hold the master role at creation time
    - custom_slug unique and immutable once published
    - max_students positive (CHECK constraint)

Design Decisions:
    - Branding/pricing fields intentionally absent: display data lives in the UI collaborator
    - memberships relationship lazy="selectin": directory queries read them in bulk
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, CheckConstraint, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.dialects.postgresql import UUID

from academy.db.base import Base


class Classroom(Base):
    """Classroom aggregate — owns memberships and classroom-scoped sessions."""
    __tablename__ = "classrooms"
    __table_args__ = (
        CheckConstraint("max_students > 0", name="ck_classrooms_max_students_positive"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    master_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    subject: Mapped[str] = mapped_column(String(100), nullable=False)
    level: Mapped[str] = mapped_column(String(50), nullable=False, default="beginner")
    max_students: Mapped[int] = mapped_column(Integer, nullable=False, default=50)
    custom_slug: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    memberships: Mapped[list["ClassroomMembership"]] = relationship(
        "ClassroomMembership", back_populates="classroom", lazy="selectin",
    )
