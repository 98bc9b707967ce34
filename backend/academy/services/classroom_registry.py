"""Classroom Registry — explicit classroom creation by a master.

Invariants:
    - Caller must hold the master role at creation time and becomes the immutable master_id
    - custom_slug validated and unique; never updated afterwards
    - Creation serialized per slug so two masters cannot publish the same slug

Design Decisions:
    - Separate from ClassroomDirectory: the directory stays a pure read oracle
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from academy.core.enforce_classrooms import check_can_create, check_max_students, check_slug
from academy.core.errors import SlugTaken
from academy.core.role_context import RoleContext
from academy.infrastructure.entity_locks import EntityLocks, entity_locks, slug_key
from academy.models import Classroom
from academy.services.classroom_directory import ClassroomDirectory

logger = logging.getLogger(__name__)


class ClassroomRegistry:
    """Creates classrooms; reads go through ClassroomDirectory."""

    def __init__(self, db: AsyncSession, locks: EntityLocks = entity_locks):
        self.db = db
        self.locks = locks
        self.directory = ClassroomDirectory(db)

    async def create_classroom(
        self,
        ctx: RoleContext,
        *,
        title: str,
        subject: str,
        custom_slug: str,
        max_students: int = 50,
        level: str = "beginner",
        description: str | None = None,
    ) -> Classroom:
        error = (
            check_can_create(ctx)
            or check_slug(custom_slug)
            or check_max_students(max_students)
        )
        if error:
            raise error

        async with self.locks.hold(slug_key(custom_slug)):
            if await self.directory.get_by_slug(custom_slug) is not None:
                raise SlugTaken(custom_slug)
            classroom = Classroom(
                master_id=ctx.user_id,
                title=title,
                description=description,
                subject=subject,
                level=level,
                max_students=max_students,
                custom_slug=custom_slug,
                is_active=True,
            )
            self.db.add(classroom)
            await self.db.commit()

        logger.info(
            f"Classroom '{custom_slug}' created",
            extra={"classroom_id": classroom.id, "user_id": ctx.user_id},
        )
        return classroom
