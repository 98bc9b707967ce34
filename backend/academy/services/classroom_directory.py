"""Classroom Directory — read-only authorization oracle over classrooms and memberships.

Invariants:
    - No writes: every method is a query (membership writes live in request_workflow)
    - capacity_remaining = max_students - active student memberships, never negative
    - The classroom master counts as staff-or-master even without a membership row
    - List queries return empty results instead of raising for unknown ids

Design Decisions:
    - Thin class over AsyncSession (same shape as the tool handlers it replaced):
      services compose it instead of duplicating membership queries
"""

import logging
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from academy.core.domain_types import (
    ClassroomId, MembershipRole, MembershipStatus, Role, UserId,
)
from academy.core.enforce_requests import capacity_remaining
from academy.core.errors import NotFound
from academy.models import Classroom, ClassroomMembership, RoleGrant

logger = logging.getLogger(__name__)


class ClassroomDirectory:
    """Classroom/membership queries used by the workflow and session services."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # --- Classrooms -------------------------------------------------------------

    async def get_classroom(self, classroom_id: UUID) -> Classroom | None:
        return await self.db.get(Classroom, classroom_id)

    async def require_classroom(self, classroom_id: UUID) -> Classroom:
        classroom = await self.get_classroom(classroom_id)
        if classroom is None:
            raise NotFound("Classroom", str(classroom_id))
        return classroom

    async def get_by_slug(self, slug: str) -> Classroom | None:
        result = await self.db.execute(
            select(Classroom).where(Classroom.custom_slug == slug),
        )
        return result.scalar_one_or_none()

    async def list_classrooms(
        self, master_id: str | None = None, active_only: bool = True,
    ) -> list[Classroom]:
        query = select(Classroom).order_by(Classroom.created_at.desc())
        if master_id is not None:
            query = query.where(Classroom.master_id == master_id)
        if active_only:
            query = query.where(Classroom.is_active.is_(True))
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def classroom_ids_mastered_by(self, user_id: str) -> list[ClassroomId]:
        result = await self.db.execute(
            select(Classroom.id).where(Classroom.master_id == user_id),
        )
        return [ClassroomId(row) for row in result.scalars().all()]

    # --- Authorization oracle ---------------------------------------------------

    async def get_master(self, classroom_id: UUID) -> UserId:
        classroom = await self.require_classroom(classroom_id)
        return UserId(classroom.master_id)

    async def get_staff(self, classroom_id: UUID) -> list[UserId]:
        result = await self.db.execute(
            select(ClassroomMembership.user_id)
            .where(
                ClassroomMembership.classroom_id == classroom_id,
                ClassroomMembership.role == MembershipRole.STAFF.value,
                ClassroomMembership.status == MembershipStatus.ACTIVE.value,
            )
            .order_by(ClassroomMembership.joined_at),
        )
        return [UserId(u) for u in result.scalars().all()]

    async def is_staff_or_master(self, classroom_id: UUID | None, user_id: str) -> bool:
        if classroom_id is None:
            return False
        classroom = await self.get_classroom(classroom_id)
        if classroom is None:
            return False
        if classroom.master_id == user_id:
            return True
        return await self.active_membership(
            classroom_id, user_id, MembershipRole.STAFF,
        ) is not None

    async def is_active_member(self, classroom_id: UUID, user_id: str) -> bool:
        """Any active seat (student or staff)."""
        result = await self.db.execute(
            select(func.count()).select_from(ClassroomMembership).where(
                ClassroomMembership.classroom_id == classroom_id,
                ClassroomMembership.user_id == user_id,
                ClassroomMembership.status == MembershipStatus.ACTIVE.value,
            ),
        )
        return result.scalar_one() > 0

    async def active_membership(
        self, classroom_id: UUID, user_id: str, role: MembershipRole,
    ) -> ClassroomMembership | None:
        result = await self.db.execute(
            select(ClassroomMembership).where(
                ClassroomMembership.classroom_id == classroom_id,
                ClassroomMembership.user_id == user_id,
                ClassroomMembership.role == role.value,
                ClassroomMembership.status == MembershipStatus.ACTIVE.value,
            ),
        )
        return result.scalar_one_or_none()

    async def count_active_students(self, classroom_id: UUID) -> int:
        result = await self.db.execute(
            select(func.count()).select_from(ClassroomMembership).where(
                ClassroomMembership.classroom_id == classroom_id,
                ClassroomMembership.role == MembershipRole.STUDENT.value,
                ClassroomMembership.status == MembershipStatus.ACTIVE.value,
            ),
        )
        return result.scalar_one()

    async def capacity_remaining(self, classroom_id: UUID) -> int:
        classroom = await self.require_classroom(classroom_id)
        students = await self.count_active_students(classroom_id)
        return capacity_remaining(classroom.max_students, students)

    async def list_members(
        self,
        classroom_id: UUID,
        role: MembershipRole | None = None,
        include_removed: bool = False,
    ) -> list[ClassroomMembership]:
        query = (
            select(ClassroomMembership)
            .where(ClassroomMembership.classroom_id == classroom_id)
            .order_by(ClassroomMembership.joined_at)
        )
        if role is not None:
            query = query.where(ClassroomMembership.role == role.value)
        if not include_removed:
            query = query.where(
                ClassroomMembership.status == MembershipStatus.ACTIVE.value,
            )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    # --- Platform roles ---------------------------------------------------------

    async def granted_roles(self, user_id: str) -> frozenset[Role]:
        """Roles granted by approved workflow requests (e.g. master)."""
        result = await self.db.execute(
            select(RoleGrant.role).where(RoleGrant.user_id == user_id),
        )
        return frozenset(Role(r) for r in result.scalars().all())
