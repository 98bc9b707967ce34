"""Live Session Schemas — scheduling payload, session and participant views.

Invariants:
    - scheduled_at must carry a timezone; naive datetimes are rejected at the boundary
    - "in the past" is NOT checked here: core/enforce_sessions owns that rule (clock-injected)
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from academy.core.domain_types import SessionStatus


class SessionSchedule(BaseModel):
    """Schedule a session, optionally inside a classroom."""
    title: str = Field(min_length=1, max_length=200)
    description: str | None = Field(None, max_length=5000)
    classroom_id: UUID | None = None
    scheduled_at: datetime
    duration_minutes: int = Field(60, le=24 * 60)
    max_participants: int = Field(20, le=10_000)

    @field_validator("scheduled_at")
    @classmethod
    def require_timezone(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            raise ValueError("scheduled_at must include a timezone offset")
        return v


class SessionCancel(BaseModel):
    reason: str | None = Field(None, max_length=200)


class LiveSessionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    classroom_id: UUID | None = None
    host_id: str
    title: str
    description: str | None = None
    scheduled_at: datetime
    duration_minutes: int
    max_participants: int
    status: SessionStatus
    started_at: datetime | None = None
    ended_at: datetime | None = None
    cancel_reason: str | None = None
    created_at: datetime


class ParticipantResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    session_id: UUID
    user_id: str
    role: str
    joined_at: datetime
    left_at: datetime | None = None
