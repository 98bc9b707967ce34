"""Session Lifecycle Enforcement — transition table, admission and schedule rules.

Invariants:
    - All functions are PURE: no IO, no async, no DB, no side effects
    - Return an AcademyError instance on violation, None on success
    - Transitions form a DAG: scheduled -> live -> completed, scheduled -> cancelled,
      live -> cancelled; nothing leaves completed or cancelled
    - Every (status, operation) pair absent from _TRANSITIONS is InvalidTransition
    - Admission allowed while scheduled (lobby) or live, never beyond max_participants

Design Decisions:
    - Explicit dict transition table: every legal move visible in one place,
      exhaustively testable
    - EXPIRE is a separate operation from CANCEL so the sweep never needs a caller
"""

from datetime import datetime, timedelta

from academy.core.clock import as_utc
from academy.core.domain_types import (
    OPEN_SESSION_STATUSES, ParticipantRole, SessionOperation, SessionStatus,
)
from academy.core.errors import (
    AcademyError, ErrorContext, InvalidSchedule, InvalidTransition, NotAuthorized,
    SessionClosed, SessionFull,
)
from academy.core.repository_protocols import LiveSessionLike
from academy.core.role_context import RoleContext


_TRANSITIONS: dict[tuple[SessionStatus, SessionOperation], SessionStatus] = {
    (SessionStatus.SCHEDULED, SessionOperation.START): SessionStatus.LIVE,
    (SessionStatus.SCHEDULED, SessionOperation.CANCEL): SessionStatus.CANCELLED,
    (SessionStatus.SCHEDULED, SessionOperation.EXPIRE): SessionStatus.CANCELLED,
    (SessionStatus.LIVE, SessionOperation.END): SessionStatus.COMPLETED,
    (SessionStatus.LIVE, SessionOperation.CANCEL): SessionStatus.CANCELLED,
}


def next_status(
    status: SessionStatus, operation: SessionOperation,
) -> SessionStatus | None:
    """Target status for a legal move, None for an illegal one."""
    return _TRANSITIONS.get((status, operation))


def check_transition(
    session: LiveSessionLike, operation: SessionOperation,
) -> AcademyError | None:
    status = SessionStatus(session.status)
    if next_status(status, operation) is None:
        return InvalidTransition(
            "session", status.value, operation.value,
            ErrorContext(session_id=str(session.id)),
        )
    return None


def check_schedule(
    scheduled_at: datetime,
    duration_minutes: int,
    max_participants: int,
    now: datetime,
) -> AcademyError | None:
    """Rule: scheduled_at not in the past, positive duration and capacity."""
    if as_utc(scheduled_at) < now:
        return InvalidSchedule("scheduled_at is in the past")
    if duration_minutes <= 0:
        return InvalidSchedule("duration_minutes must be positive")
    if max_participants <= 0:
        return InvalidSchedule("max_participants must be positive")
    return None


def check_manager(
    ctx: RoleContext, session: LiveSessionLike, is_staff_or_master: bool,
    operation: SessionOperation,
) -> AcademyError | None:
    """Only the host or classroom staff/master may move a session."""
    if not ctx.can_manage_session(session.host_id, is_staff_or_master):
        return NotAuthorized(
            f"{operation.value} session", "caller is not the host or classroom staff",
            ErrorContext(session_id=str(session.id), user_id=ctx.user_id),
        )
    return None


def check_admission(
    session: LiveSessionLike, active_participants: int,
) -> AcademyError | None:
    """Closed sessions reject joins; open sessions reject joins at capacity."""
    status = SessionStatus(session.status)
    if status not in OPEN_SESSION_STATUSES:
        return SessionClosed(str(session.id), status.value)
    if active_participants >= session.max_participants:
        return SessionFull(str(session.id), session.max_participants)
    return None


def check_open(session: LiveSessionLike) -> AcademyError | None:
    status = SessionStatus(session.status)
    if status not in OPEN_SESSION_STATUSES:
        return SessionClosed(str(session.id), status.value)
    return None


def participant_role_for(
    user_id: str, session: LiveSessionLike, is_staff_or_master: bool,
) -> ParticipantRole:
    if user_id == session.host_id:
        return ParticipantRole.HOST
    if is_staff_or_master:
        return ParticipantRole.CO_HOST
    return ParticipantRole.ATTENDEE


def start_deadline(session: LiveSessionLike, grace: timedelta) -> datetime:
    return as_utc(session.scheduled_at) + grace


def is_start_overdue(
    session: LiveSessionLike, now: datetime, grace: timedelta,
) -> bool:
    """A scheduled session not started within the grace period may be expired."""
    return (
        SessionStatus(session.status) == SessionStatus.SCHEDULED
        and now >= start_deadline(session, grace)
    )
