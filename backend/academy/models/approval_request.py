"""ApprovalRequest ORM — one row per join/staff/master-role/resignation request.

Invariants:
    - status transitions: pending -> approved | pending -> rejected (never reversed)
    - reviewer_id and resolved_at set together when status leaves pending
    - At most one pending row per (kind, requester_id, target_classroom_id)
      (partial unique index; NULL targets guarded by the submission lock)
    - target_classroom_id is NULL only for master_role requests

Design Decisions:
    - Single table with a kind column (tagged variant) over one table per kind
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from academy.db.base import Base


class ApprovalRequest(Base):
    """Generic approval request — kind-specific rules live in core/enforce_requests."""
    __tablename__ = "approval_requests"
    __table_args__ = (
        Index(
            "uq_approval_requests_pending",
            "kind", "requester_id", "target_classroom_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
        Index("ix_approval_requests_status_kind", "status", "kind"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    requester_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    target_classroom_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("classrooms.id"), nullable=True, index=True,
    )
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    reviewer_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
