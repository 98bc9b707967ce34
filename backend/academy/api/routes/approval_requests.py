"""Approval Request Routes — submit, review and list join/staff/master-role/resignation requests.

Invariants:
    - One submit route per kind, one approve and one reject route for all kinds:
      the workflow engine dispatches on the stored kind
    - 409 for duplicates and already-resolved requests, 403 for reviewers without authority
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from academy.api.deps import get_caller, get_request_workflow
from academy.core.domain_types import RequestKind, RequestStatus
from academy.core.role_context import RoleContext
from academy.schemas.approval_request import (
    ApprovalRequestResponse, ClassroomRequestSubmit, MasterRoleRequestSubmit,
    RequestReview,
)
from academy.services.request_workflow import RequestWorkflow

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/requests", tags=["requests"])


async def _submit_for_classroom(
    kind: RequestKind, body: ClassroomRequestSubmit,
    caller: RoleContext, workflow: RequestWorkflow,
) -> ApprovalRequestResponse:
    request = await workflow.submit(caller, kind, body.classroom_id, body.message)
    return ApprovalRequestResponse.model_validate(request)


@router.post(
    "/join", response_model=ApprovalRequestResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_join_request(
    body: ClassroomRequestSubmit,
    caller: RoleContext = Depends(get_caller),
    workflow: RequestWorkflow = Depends(get_request_workflow),
):
    """Student asks to join a classroom."""
    return await _submit_for_classroom(RequestKind.JOIN, body, caller, workflow)


@router.post(
    "/staff", response_model=ApprovalRequestResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_staff_request(
    body: ClassroomRequestSubmit,
    caller: RoleContext = Depends(get_caller),
    workflow: RequestWorkflow = Depends(get_request_workflow),
):
    """Mentor asks to teach in a classroom."""
    return await _submit_for_classroom(RequestKind.STAFF, body, caller, workflow)


@router.post(
    "/resignation", response_model=ApprovalRequestResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_resignation_request(
    body: ClassroomRequestSubmit,
    caller: RoleContext = Depends(get_caller),
    workflow: RequestWorkflow = Depends(get_request_workflow),
):
    """Active staff ask the master to release them."""
    return await _submit_for_classroom(RequestKind.RESIGNATION, body, caller, workflow)


@router.post(
    "/master-role", response_model=ApprovalRequestResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_master_role_request(
    body: MasterRoleRequestSubmit,
    caller: RoleContext = Depends(get_caller),
    workflow: RequestWorkflow = Depends(get_request_workflow),
):
    """Mentor asks a platform admin for the master role."""
    request = await workflow.submit(caller, RequestKind.MASTER_ROLE, None, body.message)
    return ApprovalRequestResponse.model_validate(request)


@router.get("/pending", response_model=list[ApprovalRequestResponse])
async def list_pending_requests(
    classroom_id: UUID | None = Query(None),
    kind: RequestKind | None = Query(None),
    caller: RoleContext = Depends(get_caller),
    workflow: RequestWorkflow = Depends(get_request_workflow),
):
    """Pending requests the caller may review."""
    requests = await workflow.list_pending(caller, classroom_id=classroom_id, kind=kind)
    return [ApprovalRequestResponse.model_validate(r) for r in requests]


@router.get("/mine", response_model=list[ApprovalRequestResponse])
async def list_my_requests(
    request_status: RequestStatus | None = Query(None, alias="status"),
    caller: RoleContext = Depends(get_caller),
    workflow: RequestWorkflow = Depends(get_request_workflow),
):
    requests = await workflow.list_requests(caller, status=request_status)
    return [ApprovalRequestResponse.model_validate(r) for r in requests]


@router.get("/{request_id}", response_model=ApprovalRequestResponse)
async def get_request(
    request_id: UUID,
    caller: RoleContext = Depends(get_caller),
    workflow: RequestWorkflow = Depends(get_request_workflow),
):
    request = await workflow.get_request(caller, request_id)
    return ApprovalRequestResponse.model_validate(request)


@router.post("/{request_id}/approve", response_model=ApprovalRequestResponse)
async def approve_request(
    request_id: UUID,
    body: RequestReview | None = None,
    caller: RoleContext = Depends(get_caller),
    workflow: RequestWorkflow = Depends(get_request_workflow),
):
    request = await workflow.approve(caller, request_id, body.notes if body else None)
    return ApprovalRequestResponse.model_validate(request)


@router.post("/{request_id}/reject", response_model=ApprovalRequestResponse)
async def reject_request(
    request_id: UUID,
    body: RequestReview | None = None,
    caller: RoleContext = Depends(get_caller),
    workflow: RequestWorkflow = Depends(get_request_workflow),
):
    request = await workflow.reject(caller, request_id, body.notes if body else None)
    return ApprovalRequestResponse.model_validate(request)
