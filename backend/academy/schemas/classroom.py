"""Classroom Schemas — creation payload and public classroom / membership views.

Invariants:
    - custom_slug normalized (stripped, lowercased) before the slug rules in core run
    - max_students validated positive at the boundary and again in core
"""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ClassroomCreate(BaseModel):
    """Classroom creation — caller becomes the master."""
    title: str = Field(min_length=1, max_length=200)
    subject: str = Field(min_length=1, max_length=100)
    custom_slug: str = Field(min_length=1, max_length=100)
    description: str | None = Field(None, max_length=5000)
    level: Literal["beginner", "intermediate", "advanced"] = "beginner"
    max_students: int = Field(50, ge=1, le=10_000)

    @field_validator("title", "subject")
    @classmethod
    def strip_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("field cannot be empty or whitespace")
        return v

    @field_validator("custom_slug")
    @classmethod
    def normalize_slug(cls, v: str) -> str:
        return v.strip().lower()


class ClassroomResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    master_id: str
    title: str
    description: str | None = None
    subject: str
    level: str
    max_students: int
    custom_slug: str
    is_active: bool
    created_at: datetime


class CapacityResponse(BaseModel):
    classroom_id: UUID
    max_students: int
    active_students: int
    capacity_remaining: int


class MembershipResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    classroom_id: UUID
    user_id: str
    role: str
    status: str
    joined_at: datetime
    removed_at: datetime | None = None
    removed_by: str | None = None
