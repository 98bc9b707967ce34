"""Live Session Routes — schedule, state transitions, admission and session queries.

Invariants:
    - Transitions map 1:1 onto SessionLifecycle commands; illegal moves surface as 409
    - join/leave return the participant row; start/end/cancel return the session
    - RTC room signals are fired by the service after commit, never awaited here
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from academy.api.deps import get_caller, get_session_lifecycle
from academy.core.domain_types import SessionStatus
from academy.core.role_context import RoleContext
from academy.schemas.live_session import (
    LiveSessionResponse, ParticipantResponse, SessionCancel, SessionSchedule,
)
from academy.services.session_lifecycle import SessionLifecycle

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/live-sessions", tags=["live-sessions"])


@router.post("", response_model=LiveSessionResponse, status_code=status.HTTP_201_CREATED)
async def schedule_session(
    body: SessionSchedule,
    caller: RoleContext = Depends(get_caller),
    lifecycle: SessionLifecycle = Depends(get_session_lifecycle),
):
    """Schedule a session hosted by the caller."""
    session = await lifecycle.schedule(
        caller,
        title=body.title,
        description=body.description,
        classroom_id=body.classroom_id,
        scheduled_at=body.scheduled_at,
        duration_minutes=body.duration_minutes,
        max_participants=body.max_participants,
    )
    return LiveSessionResponse.model_validate(session)


@router.get("", response_model=list[LiveSessionResponse])
async def list_sessions(
    classroom_id: UUID | None = Query(None),
    session_status: SessionStatus | None = Query(None, alias="status"),
    caller: RoleContext = Depends(get_caller),
    lifecycle: SessionLifecycle = Depends(get_session_lifecycle),
):
    sessions = await lifecycle.list_sessions(classroom_id=classroom_id, status=session_status)
    return [LiveSessionResponse.model_validate(s) for s in sessions]


@router.get("/{session_id}", response_model=LiveSessionResponse)
async def get_session(
    session_id: UUID,
    caller: RoleContext = Depends(get_caller),
    lifecycle: SessionLifecycle = Depends(get_session_lifecycle),
):
    session = await lifecycle.get_session(session_id)
    return LiveSessionResponse.model_validate(session)


@router.get("/{session_id}/participants", response_model=list[ParticipantResponse])
async def list_participants(
    session_id: UUID,
    active_only: bool = Query(True),
    caller: RoleContext = Depends(get_caller),
    lifecycle: SessionLifecycle = Depends(get_session_lifecycle),
):
    participants = await lifecycle.list_participants(session_id, active_only=active_only)
    return [ParticipantResponse.model_validate(p) for p in participants]


@router.post("/{session_id}/start", response_model=LiveSessionResponse)
async def start_session(
    session_id: UUID,
    caller: RoleContext = Depends(get_caller),
    lifecycle: SessionLifecycle = Depends(get_session_lifecycle),
):
    session = await lifecycle.start(caller, session_id)
    return LiveSessionResponse.model_validate(session)


@router.post("/{session_id}/end", response_model=LiveSessionResponse)
async def end_session(
    session_id: UUID,
    caller: RoleContext = Depends(get_caller),
    lifecycle: SessionLifecycle = Depends(get_session_lifecycle),
):
    session = await lifecycle.end(caller, session_id)
    return LiveSessionResponse.model_validate(session)


@router.post("/{session_id}/cancel", response_model=LiveSessionResponse)
async def cancel_session(
    session_id: UUID,
    body: SessionCancel | None = None,
    caller: RoleContext = Depends(get_caller),
    lifecycle: SessionLifecycle = Depends(get_session_lifecycle),
):
    session = await lifecycle.cancel(caller, session_id, body.reason if body else None)
    return LiveSessionResponse.model_validate(session)


@router.post("/{session_id}/join", response_model=ParticipantResponse)
async def join_session(
    session_id: UUID,
    caller: RoleContext = Depends(get_caller),
    lifecycle: SessionLifecycle = Depends(get_session_lifecycle),
):
    participant = await lifecycle.join(caller, session_id)
    return ParticipantResponse.model_validate(participant)


@router.post("/{session_id}/leave", response_model=ParticipantResponse)
async def leave_session(
    session_id: UUID,
    caller: RoleContext = Depends(get_caller),
    lifecycle: SessionLifecycle = Depends(get_session_lifecycle),
):
    participant = await lifecycle.leave(caller, session_id)
    return ParticipantResponse.model_validate(participant)
