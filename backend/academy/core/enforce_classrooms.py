"""Classroom Enforcement — creation rules and membership-removal authority.

Invariants:
    - All functions are PURE: no IO, no async, no DB, no side effects
    - Only callers holding the master role create classrooms, and they own them
    - Slugs are lowercase letters, digits and hyphens, 3-64 chars, immutable
    - Master removes any member; staff remove students only; nobody removes the master
"""

import re

from academy.core.domain_types import (
    MembershipRole, SLUG_MAX_LENGTH, SLUG_MIN_LENGTH, SLUG_PATTERN,
)
from academy.core.errors import (
    AcademyError, ErrorContext, InvalidCapacity, InvalidSlug, NotAuthorized,
)
from academy.core.repository_protocols import ClassroomLike
from academy.core.role_context import RoleContext

_SLUG_RE = re.compile(SLUG_PATTERN)


def check_can_create(ctx: RoleContext) -> AcademyError | None:
    if not ctx.is_master:
        return NotAuthorized(
            "create classroom", "caller does not hold the master role",
            ErrorContext(user_id=ctx.user_id),
        )
    return None


def check_slug(slug: str) -> AcademyError | None:
    if len(slug) < SLUG_MIN_LENGTH:
        return InvalidSlug(slug, f"must be at least {SLUG_MIN_LENGTH} characters")
    if len(slug) > SLUG_MAX_LENGTH:
        return InvalidSlug(slug, f"must be at most {SLUG_MAX_LENGTH} characters")
    if not _SLUG_RE.match(slug):
        return InvalidSlug(slug, "only lowercase letters, numbers, and hyphens allowed")
    return None


def check_max_students(max_students: int) -> AcademyError | None:
    if max_students <= 0:
        return InvalidCapacity(max_students)
    return None


def check_can_remove(
    ctx: RoleContext,
    classroom: ClassroomLike,
    target_user_id: str,
    target_role: MembershipRole,
    caller_is_staff: bool,
) -> AcademyError | None:
    if target_user_id == classroom.master_id:
        return NotAuthorized("remove member", "the classroom master cannot be removed")
    if ctx.owns(classroom.master_id):
        return None
    if caller_is_staff and target_role == MembershipRole.STUDENT:
        return None
    return NotAuthorized(
        "remove member",
        "only the master removes staff; staff may remove students",
        ErrorContext(classroom_id=str(classroom.id), user_id=ctx.user_id),
    )
