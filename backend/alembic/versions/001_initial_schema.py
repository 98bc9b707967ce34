"""Initial schema — classrooms, memberships, role grants, approval requests,
live sessions, participants, chat messages.

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "classrooms",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("master_id", sa.String(64), nullable=False, index=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("subject", sa.String(100), nullable=False),
        sa.Column("level", sa.String(50), nullable=False, server_default="beginner"),
        sa.Column("max_students", sa.Integer, nullable=False, server_default="50"),
        sa.Column("custom_slug", sa.String(64), nullable=False, unique=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("max_students > 0", name="ck_classrooms_max_students_positive"),
    )

    op.create_table(
        "approval_requests",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("kind", sa.String(20), nullable=False),
        sa.Column("requester_id", sa.String(64), nullable=False, index=True),
        sa.Column("target_classroom_id", UUID(as_uuid=True), sa.ForeignKey("classrooms.id"), nullable=True, index=True),
        sa.Column("message", sa.Text, nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("reviewer_id", sa.String(64), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("admin_notes", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "uq_approval_requests_pending", "approval_requests",
        ["kind", "requester_id", "target_classroom_id"],
        unique=True, postgresql_where=sa.text("status = 'pending'"),
    )
    op.create_index("ix_approval_requests_status_kind", "approval_requests", ["status", "kind"])

    op.create_table(
        "classroom_memberships",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("classroom_id", UUID(as_uuid=True), sa.ForeignKey("classrooms.id"), nullable=False, index=True),
        sa.Column("user_id", sa.String(64), nullable=False, index=True),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("request_id", UUID(as_uuid=True), sa.ForeignKey("approval_requests.id"), nullable=True),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("removed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("removed_by", sa.String(64), nullable=True),
    )
    op.create_index(
        "uq_classroom_memberships_active", "classroom_memberships",
        ["classroom_id", "user_id", "role"],
        unique=True, postgresql_where=sa.text("status = 'active'"),
    )

    op.create_table(
        "role_grants",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False, index=True),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("request_id", UUID(as_uuid=True), sa.ForeignKey("approval_requests.id"), nullable=True),
        sa.Column("granted_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "role", name="uq_role_grants_user_role"),
    )

    op.create_table(
        "live_sessions",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("classroom_id", UUID(as_uuid=True), sa.ForeignKey("classrooms.id"), nullable=True, index=True),
        sa.Column("host_id", sa.String(64), nullable=False, index=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_minutes", sa.Integer, nullable=False, server_default="60"),
        sa.Column("max_participants", sa.Integer, nullable=False, server_default="20"),
        sa.Column("status", sa.String(20), nullable=False, server_default="scheduled"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancel_reason", sa.String(200), nullable=True),
        sa.Column("last_chat_sequence", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("duration_minutes > 0", name="ck_live_sessions_duration_positive"),
        sa.CheckConstraint("max_participants > 0", name="ck_live_sessions_capacity_positive"),
    )
    op.create_index("ix_live_sessions_status_scheduled", "live_sessions", ["status", "scheduled_at"])

    op.create_table(
        "session_participants",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("session_id", UUID(as_uuid=True), sa.ForeignKey("live_sessions.id"), nullable=False, index=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="attendee"),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("left_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "uq_session_participants_active", "session_participants",
        ["session_id", "user_id"],
        unique=True, postgresql_where=sa.text("left_at IS NULL"),
    )

    op.create_table(
        "chat_messages",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("session_id", UUID(as_uuid=True), sa.ForeignKey("live_sessions.id"), nullable=False, index=True),
        sa.Column("sender_id", sa.String(64), nullable=False),
        sa.Column("body", sa.Text, nullable=False),
        sa.Column("sequence", sa.Integer, nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("session_id", "sequence", name="uq_chat_messages_session_sequence"),
    )


def downgrade() -> None:
    op.drop_table("chat_messages")
    op.drop_index("uq_session_participants_active", table_name="session_participants")
    op.drop_table("session_participants")
    op.drop_index("ix_live_sessions_status_scheduled", table_name="live_sessions")
    op.drop_table("live_sessions")
    op.drop_table("role_grants")
    op.drop_index("uq_classroom_memberships_active", table_name="classroom_memberships")
    op.drop_table("classroom_memberships")
    op.drop_index("ix_approval_requests_status_kind", table_name="approval_requests")
    op.drop_index("uq_approval_requests_pending", table_name="approval_requests")
    op.drop_table("approval_requests")
    op.drop_table("classrooms")
