"""Classroom Routes — creation, lookup, capacity and membership management.

Invariants:
    - Every route resolves the caller first (401 before anything else)
    - List endpoints return [] for unknown filters; single-entity lookups 404
    - Member removal is the only membership write exposed here, and it goes
      through RequestWorkflow so the authority rules stay in one place
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from academy.api.deps import (
    get_caller, get_classroom_directory, get_classroom_registry, get_request_workflow,
)
from academy.core.domain_types import MembershipRole
from academy.core.errors import NotFound
from academy.core.role_context import RoleContext
from academy.schemas.classroom import (
    CapacityResponse, ClassroomCreate, ClassroomResponse, MembershipResponse,
)
from academy.services.classroom_directory import ClassroomDirectory
from academy.services.classroom_registry import ClassroomRegistry
from academy.services.request_workflow import RequestWorkflow

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/classrooms", tags=["classrooms"])


@router.post("", response_model=ClassroomResponse, status_code=status.HTTP_201_CREATED)
async def create_classroom(
    body: ClassroomCreate,
    caller: RoleContext = Depends(get_caller),
    registry: ClassroomRegistry = Depends(get_classroom_registry),
):
    """Create a classroom owned by the calling master."""
    classroom = await registry.create_classroom(
        caller,
        title=body.title,
        subject=body.subject,
        custom_slug=body.custom_slug,
        max_students=body.max_students,
        level=body.level,
        description=body.description,
    )
    return ClassroomResponse.model_validate(classroom)


@router.get("", response_model=list[ClassroomResponse])
async def list_classrooms(
    master_id: str | None = Query(None),
    caller: RoleContext = Depends(get_caller),
    directory: ClassroomDirectory = Depends(get_classroom_directory),
):
    classrooms = await directory.list_classrooms(master_id=master_id)
    return [ClassroomResponse.model_validate(c) for c in classrooms]


@router.get("/by-slug/{slug}", response_model=ClassroomResponse)
async def get_classroom_by_slug(
    slug: str,
    caller: RoleContext = Depends(get_caller),
    directory: ClassroomDirectory = Depends(get_classroom_directory),
):
    classroom = await directory.get_by_slug(slug.lower())
    if classroom is None:
        raise NotFound("Classroom", slug)
    return ClassroomResponse.model_validate(classroom)


@router.get("/{classroom_id}", response_model=ClassroomResponse)
async def get_classroom(
    classroom_id: UUID,
    caller: RoleContext = Depends(get_caller),
    directory: ClassroomDirectory = Depends(get_classroom_directory),
):
    classroom = await directory.require_classroom(classroom_id)
    return ClassroomResponse.model_validate(classroom)


@router.get("/{classroom_id}/capacity", response_model=CapacityResponse)
async def capacity_remaining(
    classroom_id: UUID,
    caller: RoleContext = Depends(get_caller),
    directory: ClassroomDirectory = Depends(get_classroom_directory),
):
    """max_students minus active student memberships."""
    classroom = await directory.require_classroom(classroom_id)
    students = await directory.count_active_students(classroom_id)
    return CapacityResponse(
        classroom_id=classroom.id,
        max_students=classroom.max_students,
        active_students=students,
        capacity_remaining=await directory.capacity_remaining(classroom_id),
    )


@router.get("/{classroom_id}/members", response_model=list[MembershipResponse])
async def list_members(
    classroom_id: UUID,
    role: MembershipRole | None = Query(None),
    include_removed: bool = Query(False),
    caller: RoleContext = Depends(get_caller),
    directory: ClassroomDirectory = Depends(get_classroom_directory),
):
    members = await directory.list_members(
        classroom_id, role=role, include_removed=include_removed,
    )
    return [MembershipResponse.model_validate(m) for m in members]


@router.delete("/{classroom_id}/members/{user_id}", response_model=MembershipResponse)
async def remove_member(
    classroom_id: UUID,
    user_id: str,
    role: MembershipRole = Query(MembershipRole.STUDENT),
    caller: RoleContext = Depends(get_caller),
    workflow: RequestWorkflow = Depends(get_request_workflow),
):
    """Master removes anyone; staff remove students. Row kept as removed."""
    membership = await workflow.remove_member(caller, classroom_id, user_id, role)
    return MembershipResponse.model_validate(membership)
