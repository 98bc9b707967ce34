"""RoleGrant ORM — platform roles granted by the approval workflow.

Invariants:
    - One row per (user_id, role) — unique constraint
    - Written only by an approved master_role request

Design Decisions:
    - Grants merged into the caller's RoleContext at resolution time: the identity
      collaborator stays unaware of workflow outcomes
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from academy.db.base import Base


class RoleGrant(Base):
    """Workflow-granted platform role."""
    __tablename__ = "role_grants"
    __table_args__ = (
        UniqueConstraint("user_id", "role", name="uq_role_grants_user_role"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    request_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("approval_requests.id"), nullable=True,
    )
    granted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
