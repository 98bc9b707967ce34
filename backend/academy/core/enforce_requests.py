"""Request Workflow Enforcement — validates approval-request submissions and reviews.

Invariants:
    - All functions are PURE: no IO, no async, no DB, no side effects
    - Return an AcademyError instance on violation, None on success
    - Status transitions only pending -> approved | pending -> rejected, never reversed
    - Join/staff/resignation target a classroom; master_role targets the platform

Design Decisions:
    - One state machine for all request kinds; kind-specific rules live in small
      lookup functions instead of one class per kind
    - Capacity is re-checked at approval time (not submission): pending requests
      do not reserve seats
"""

from academy.core.domain_types import (
    CLASSROOM_SCOPED_KINDS, RequestKind, RequestStatus,
)
from academy.core.errors import (
    AcademyError, AlreadyResolved, ClassroomFull, ErrorContext, InvalidTarget,
    NotAuthorized,
)
from academy.core.repository_protocols import ApprovalRequestLike, ClassroomLike
from academy.core.role_context import RoleContext


_SUBMIT_ROLE_REASON = {
    RequestKind.JOIN: "only students may request to join a classroom",
    RequestKind.STAFF: "only mentors may apply for classroom staff",
    RequestKind.MASTER_ROLE: "only mentors may apply for the master role",
}

_ALLOWED_DECISIONS = {
    RequestStatus.PENDING: frozenset({RequestStatus.APPROVED, RequestStatus.REJECTED}),
    RequestStatus.APPROVED: frozenset(),
    RequestStatus.REJECTED: frozenset(),
}


def requires_classroom(kind: RequestKind) -> bool:
    return kind in CLASSROOM_SCOPED_KINDS


# --- Submission ---------------------------------------------------------------

def check_submitter(ctx: RoleContext, kind: RequestKind) -> AcademyError | None:
    """Requester must hold the platform role the request kind builds on."""
    if not ctx.can_submit(kind):
        return NotAuthorized(
            f"submit a {kind.value} request", _SUBMIT_ROLE_REASON[kind],
            ErrorContext(user_id=ctx.user_id),
        )
    return None


def check_target(
    kind: RequestKind, target_id: object | None, classroom: ClassroomLike | None,
) -> AcademyError | None:
    """Classroom-scoped kinds need an existing, active classroom; master_role needs none."""
    if not requires_classroom(kind):
        if target_id is not None:
            return InvalidTarget(
                str(target_id), "master role requests target the platform, not a classroom",
            )
        return None
    if target_id is None:
        return InvalidTarget(None, f"{kind.value} requests require a classroom")
    if classroom is None:
        return InvalidTarget(str(target_id), "classroom does not exist")
    if not classroom.is_active:
        return InvalidTarget(str(target_id), "classroom is not active")
    return None


def check_not_own_classroom(
    ctx: RoleContext, kind: RequestKind, classroom: ClassroomLike | None,
) -> AcademyError | None:
    """A master cannot join or staff the classroom they own."""
    if classroom is not None and kind in (RequestKind.JOIN, RequestKind.STAFF):
        if ctx.owns(classroom.master_id):
            return NotAuthorized(
                f"submit a {kind.value} request", "caller is the classroom master",
            )
    return None


# --- Review ---------------------------------------------------------------------

def check_pending(request: ApprovalRequestLike) -> AcademyError | None:
    """Idempotency guard: only pending requests may be resolved."""
    status = RequestStatus(request.status)
    if status != RequestStatus.PENDING:
        return AlreadyResolved(str(request.id), status.value)
    return None


def check_reviewer(
    ctx: RoleContext, request: ApprovalRequestLike, classroom: ClassroomLike | None,
) -> AcademyError | None:
    """Reviewer must be the classroom master (classroom kinds) or an admin (master_role)."""
    kind = RequestKind(request.kind)
    master_id = classroom.master_id if classroom is not None else None
    if ctx.can_approve(kind, master_id):
        return None
    reason = (
        "only platform admins review master role requests"
        if kind == RequestKind.MASTER_ROLE
        else "only the classroom master reviews this request"
    )
    return NotAuthorized(
        f"review {kind.value} request", reason,
        ErrorContext(request_id=str(request.id), user_id=ctx.user_id),
    )


def check_decision(
    request: ApprovalRequestLike, decision: RequestStatus,
) -> AcademyError | None:
    """Validate the status transition itself (pending -> approved | rejected)."""
    current = RequestStatus(request.status)
    if decision not in _ALLOWED_DECISIONS[current]:
        return AlreadyResolved(str(request.id), current.value)
    return None


def check_capacity(
    classroom: ClassroomLike, active_students: int,
) -> AcademyError | None:
    """Join approvals fail when no student seat remains."""
    if capacity_remaining(classroom.max_students, active_students) <= 0:
        return ClassroomFull(str(classroom.id), classroom.max_students)
    return None


def capacity_remaining(max_students: int, active_students: int) -> int:
    """Seats left, never negative."""
    return max(max_students - active_students, 0)


def validate_review(
    ctx: RoleContext,
    request: ApprovalRequestLike,
    classroom: ClassroomLike | None,
    decision: RequestStatus,
) -> AcademyError | None:
    """Composite review validator: authorization first, then idempotency."""
    return (
        check_reviewer(ctx, request, classroom)
        or check_pending(request)
        or check_decision(request, decision)
    )
