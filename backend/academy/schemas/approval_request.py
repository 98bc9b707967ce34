"""Approval Request Schemas — submission and review payloads.

Invariants:
    - Join/staff/resignation submissions carry a classroom target; master-role ones never do
    - Review notes bounded; rejection notes optional
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from academy.core.domain_types import RequestKind, RequestStatus


class ClassroomRequestSubmit(BaseModel):
    """Join / staff / resignation request for one classroom."""
    classroom_id: UUID
    message: str | None = Field(None, max_length=2000)


class MasterRoleRequestSubmit(BaseModel):
    """Platform-wide request for the master role."""
    message: str | None = Field(None, max_length=2000)


class RequestReview(BaseModel):
    notes: str | None = Field(None, max_length=2000)


class ApprovalRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    kind: RequestKind
    requester_id: str
    target_classroom_id: UUID | None = None
    message: str | None = None
    status: RequestStatus
    reviewer_id: str | None = None
    resolved_at: datetime | None = None
    admin_notes: str | None = None
    created_at: datetime
