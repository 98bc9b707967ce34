"""Request Workflow — the one approval pipeline behind join, staff, master-role and
resignation requests, plus the only write path for classroom memberships.

Invariants:
    - Every mutation runs inside the entity lock of the request (and of the classroom
      for capacity-sensitive approvals): validate -> mutate -> commit, no external calls
    - Side effects (membership / role grant / resignation) applied in the SAME commit as
      the status change, exactly once; a retried approve fails AlreadyResolved
    - A failed approve leaves the request pending and no membership row behind
    - Duplicate pending submissions are rejected outright, not queued

Design Decisions:
    - Kind-specific side effects dispatched through an explicit dict (no getattr magic):
      adding a kind means editing _SIDE_EFFECTS and core/enforce_requests
    - Rejected requests may be resubmitted immediately (no cooldown)
    - Row locks (SELECT ... FOR UPDATE) taken inside the asyncio lock so PostgreSQL
      deployments with several workers stay serialized
"""

import logging
from collections.abc import Awaitable, Callable
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from academy.core.clock import Clock, utc_now
from academy.core.domain_types import (
    MembershipRole, MembershipStatus, RequestKind, RequestStatus, Role,
)
from academy.core.enforce_classrooms import check_can_remove
from academy.core.enforce_requests import (
    check_capacity, check_not_own_classroom, check_submitter, check_target,
    requires_classroom, validate_review,
)
from academy.core.errors import (
    AlreadyMember, DuplicatePendingRequest, ErrorContext, NotAuthorized, NotFound,
)
from academy.core.role_context import RoleContext
from academy.infrastructure.entity_locks import (
    EntityLocks, classroom_key, entity_locks, request_key, submission_key,
)
from academy.models import ApprovalRequest, Classroom, ClassroomMembership, RoleGrant
from academy.services.classroom_directory import ClassroomDirectory

logger = logging.getLogger(__name__)


class RequestWorkflow:
    """Submit / approve / reject / list approval requests; remove members."""

    def __init__(
        self, db: AsyncSession, locks: EntityLocks = entity_locks,
        clock: Clock = utc_now,
    ):
        self.db = db
        self.locks = locks
        self.clock = clock
        self.directory = ClassroomDirectory(db)

        # ADR: every kind -> side effect mapping explicit
        self._side_effects: dict[
            RequestKind,
            Callable[[ApprovalRequest, Classroom | None], Awaitable[None]],
        ] = {
            RequestKind.JOIN: self._grant_student_seat,
            RequestKind.STAFF: self._grant_staff_seat,
            RequestKind.MASTER_ROLE: self._grant_master_role,
            RequestKind.RESIGNATION: self._release_staff_seat,
        }

    # --- Commands -----------------------------------------------------------------

    async def submit(
        self,
        ctx: RoleContext,
        kind: RequestKind,
        target_id: UUID | None = None,
        message: str | None = None,
    ) -> ApprovalRequest:
        """Create a pending request after role, target and duplicate checks."""
        error = check_submitter(ctx, kind)
        if error:
            raise error

        async with self.locks.hold(submission_key(kind.value, ctx.user_id, target_id)):
            classroom = (
                await self.directory.get_classroom(target_id)
                if target_id is not None else None
            )
            error = (
                check_target(kind, target_id, classroom)
                or check_not_own_classroom(ctx, kind, classroom)
            )
            if error:
                raise error
            await self._check_requester_standing(ctx, kind, classroom)

            existing = await self._find_pending(kind, ctx.user_id, target_id)
            if existing is not None:
                raise DuplicatePendingRequest(kind.value, str(existing.id))

            request = ApprovalRequest(
                kind=kind.value,
                requester_id=ctx.user_id,
                target_classroom_id=target_id,
                message=message,
                status=RequestStatus.PENDING.value,
                created_at=self.clock(),
            )
            self.db.add(request)
            await self.db.commit()

        logger.info(
            f"{kind.value} request submitted",
            extra={"request_id": request.id, "user_id": ctx.user_id,
                   "classroom_id": target_id},
        )
        return request

    async def approve(
        self, ctx: RoleContext, request_id: UUID, notes: str | None = None,
    ) -> ApprovalRequest:
        """pending -> approved, applying the kind's side effect exactly once."""
        return await self._resolve(ctx, request_id, RequestStatus.APPROVED, notes)

    async def reject(
        self, ctx: RoleContext, request_id: UUID, notes: str | None = None,
    ) -> ApprovalRequest:
        """pending -> rejected, storing reviewer notes."""
        return await self._resolve(ctx, request_id, RequestStatus.REJECTED, notes)

    async def remove_member(
        self,
        ctx: RoleContext,
        classroom_id: UUID,
        user_id: str,
        role: MembershipRole = MembershipRole.STUDENT,
    ) -> ClassroomMembership:
        """Master removes any member; staff remove students. Row kept as removed."""
        async with self.locks.hold(classroom_key(classroom_id)):
            classroom = await self.directory.require_classroom(classroom_id)
            caller_is_staff = await self.directory.active_membership(
                classroom_id, ctx.user_id, MembershipRole.STAFF,
            ) is not None
            error = check_can_remove(ctx, classroom, user_id, role, caller_is_staff)
            if error:
                raise error
            membership = await self.directory.active_membership(classroom_id, user_id, role)
            if membership is None:
                raise NotFound("Membership", f"{classroom_id}/{user_id}/{role.value}")
            self._mark_removed(membership, removed_by=ctx.user_id)
            await self.db.commit()

        logger.info(
            f"{role.value} membership removed",
            extra={"classroom_id": classroom_id, "user_id": user_id},
        )
        return membership

    # --- Queries ------------------------------------------------------------------

    async def get_request(self, ctx: RoleContext, request_id: UUID) -> ApprovalRequest:
        """Visible to the requester and to whoever may review it."""
        request = await self.db.get(ApprovalRequest, request_id)
        if request is None:
            raise NotFound("Request", str(request_id))
        if request.requester_id == ctx.user_id:
            return request
        classroom = (
            await self.directory.get_classroom(request.target_classroom_id)
            if request.target_classroom_id is not None else None
        )
        master_id = classroom.master_id if classroom is not None else None
        if not ctx.can_approve(RequestKind(request.kind), master_id):
            raise NotAuthorized("view request", "caller is neither requester nor reviewer")
        return request

    async def list_pending(
        self,
        ctx: RoleContext,
        classroom_id: UUID | None = None,
        kind: RequestKind | None = None,
    ) -> list[ApprovalRequest]:
        """Pending requests within the reviewer's authority; empty when none."""
        mastered = set(await self.directory.classroom_ids_mastered_by(ctx.user_id))
        if classroom_id is not None:
            mastered &= {classroom_id}

        conditions = []
        if mastered:
            conditions.append(ApprovalRequest.target_classroom_id.in_(list(mastered)))
        if ctx.is_admin and classroom_id is None:
            conditions.append(ApprovalRequest.kind == RequestKind.MASTER_ROLE.value)
        if not conditions:
            return []

        query = (
            select(ApprovalRequest)
            .where(ApprovalRequest.status == RequestStatus.PENDING.value)
            .order_by(ApprovalRequest.created_at)
        )
        query = query.where(or_(*conditions))
        if kind is not None:
            query = query.where(ApprovalRequest.kind == kind.value)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def list_requests(
        self, ctx: RoleContext, status: RequestStatus | None = None,
    ) -> list[ApprovalRequest]:
        """The caller's own requests in any status, newest first."""
        query = (
            select(ApprovalRequest)
            .where(ApprovalRequest.requester_id == ctx.user_id)
            .order_by(ApprovalRequest.created_at.desc())
        )
        if status is not None:
            query = query.where(ApprovalRequest.status == status.value)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    # --- Resolution -----------------------------------------------------------------

    async def _resolve(
        self, ctx: RoleContext, request_id: UUID, decision: RequestStatus,
        notes: str | None,
    ) -> ApprovalRequest:
        # kind and target are immutable, so peeking before locking is safe
        peek = await self.db.get(ApprovalRequest, request_id)
        if peek is None:
            raise NotFound("Request", str(request_id))
        keys = [request_key(request_id)]
        if peek.target_classroom_id is not None:
            keys.append(classroom_key(peek.target_classroom_id))

        async with self.locks.hold(*keys):
            request = await self._load_for_update(request_id)
            classroom = await self._load_classroom(request)
            error = validate_review(ctx, request, classroom, decision)
            if error:
                raise error

            if decision == RequestStatus.APPROVED:
                await self._side_effects[RequestKind(request.kind)](request, classroom)

            request.status = decision.value
            request.reviewer_id = ctx.user_id
            request.resolved_at = self.clock()
            request.admin_notes = notes
            await self.db.commit()

        logger.info(
            f"{request.kind} request {decision.value}",
            extra={"request_id": request.id, "user_id": ctx.user_id,
                   "classroom_id": request.target_classroom_id},
        )
        return request

    async def _load_for_update(self, request_id: UUID) -> ApprovalRequest:
        result = await self.db.execute(
            select(ApprovalRequest)
            .where(ApprovalRequest.id == request_id)
            .with_for_update()
            .execution_options(populate_existing=True),
        )
        request = result.scalar_one_or_none()
        if request is None:
            raise NotFound("Request", str(request_id))
        return request

    async def _load_classroom(self, request: ApprovalRequest) -> Classroom | None:
        if request.target_classroom_id is None:
            return None
        result = await self.db.execute(
            select(Classroom)
            .where(Classroom.id == request.target_classroom_id)
            .with_for_update()
            .execution_options(populate_existing=True),
        )
        return result.scalar_one_or_none()

    # --- Side effects (one per kind) ------------------------------------------------

    async def _grant_student_seat(
        self, request: ApprovalRequest, classroom: Classroom | None,
    ) -> None:
        classroom = self._require_target(request, classroom)
        students = await self.directory.count_active_students(classroom.id)
        error = check_capacity(classroom, students)
        if error:
            raise error
        await self._add_membership(request, classroom, MembershipRole.STUDENT)

    async def _grant_staff_seat(
        self, request: ApprovalRequest, classroom: Classroom | None,
    ) -> None:
        classroom = self._require_target(request, classroom)
        await self._add_membership(request, classroom, MembershipRole.STAFF)

    async def _grant_master_role(
        self, request: ApprovalRequest, classroom: Classroom | None,
    ) -> None:
        existing = await self.db.execute(
            select(RoleGrant).where(
                RoleGrant.user_id == request.requester_id,
                RoleGrant.role == Role.MASTER.value,
            ),
        )
        if existing.scalar_one_or_none() is not None:
            return
        self.db.add(RoleGrant(
            user_id=request.requester_id,
            role=Role.MASTER.value,
            request_id=request.id,
            granted_at=self.clock(),
        ))

    async def _release_staff_seat(
        self, request: ApprovalRequest, classroom: Classroom | None,
    ) -> None:
        classroom = self._require_target(request, classroom)
        membership = await self.directory.active_membership(
            classroom.id, request.requester_id, MembershipRole.STAFF,
        )
        if membership is None:
            logger.warning(
                "Resignation approved for a staff seat that is already gone",
                extra={"request_id": request.id, "classroom_id": classroom.id},
            )
            return
        self._mark_removed(membership, removed_by=request.requester_id)

    async def _add_membership(
        self, request: ApprovalRequest, classroom: Classroom, role: MembershipRole,
    ) -> None:
        existing = await self.directory.active_membership(
            classroom.id, request.requester_id, role,
        )
        if existing is not None:
            raise AlreadyMember(
                f"an active {role.value} membership",
                ErrorContext(classroom_id=str(classroom.id), request_id=str(request.id)),
            )
        self.db.add(ClassroomMembership(
            classroom_id=classroom.id,
            user_id=request.requester_id,
            role=role.value,
            status=MembershipStatus.ACTIVE.value,
            request_id=request.id,
            joined_at=self.clock(),
        ))

    # --- Helpers --------------------------------------------------------------------

    async def _check_requester_standing(
        self, ctx: RoleContext, kind: RequestKind, classroom: Classroom | None,
    ) -> None:
        """Requester must not already hold what they ask for (resignation: must hold it)."""
        if kind == RequestKind.MASTER_ROLE:
            if ctx.is_master:
                raise AlreadyMember("the master role")
            return
        if classroom is None:
            return
        if kind == RequestKind.JOIN:
            if await self.directory.active_membership(
                classroom.id, ctx.user_id, MembershipRole.STUDENT,
            ) is not None:
                raise AlreadyMember("an active student membership")
            return
        staff = await self.directory.active_membership(
            classroom.id, ctx.user_id, MembershipRole.STAFF,
        )
        if kind == RequestKind.STAFF and staff is not None:
            raise AlreadyMember("an active staff membership")
        if kind == RequestKind.RESIGNATION and staff is None:
            raise NotAuthorized(
                "submit a resignation request", "only active staff may resign",
            )

    async def _find_pending(
        self, kind: RequestKind, requester_id: str, target_id: UUID | None,
    ) -> ApprovalRequest | None:
        query = select(ApprovalRequest).where(
            ApprovalRequest.kind == kind.value,
            ApprovalRequest.requester_id == requester_id,
            ApprovalRequest.status == RequestStatus.PENDING.value,
        )
        if target_id is None:
            query = query.where(ApprovalRequest.target_classroom_id.is_(None))
        else:
            query = query.where(ApprovalRequest.target_classroom_id == target_id)
        result = await self.db.execute(query)
        return result.scalars().first()

    def _mark_removed(self, membership: ClassroomMembership, removed_by: str) -> None:
        membership.status = MembershipStatus.REMOVED.value
        membership.removed_at = self.clock()
        membership.removed_by = removed_by

    @staticmethod
    def _require_target(
        request: ApprovalRequest, classroom: Classroom | None,
    ) -> Classroom:
        if classroom is None or not requires_classroom(RequestKind(request.kind)):
            raise NotFound("Classroom", str(request.target_classroom_id))
        return classroom
