"""
Delegation request endpoints

Members ask an owner for access; the owner (or a family admin/responsible
member) approves or rejects.
"""

from typing import List

from fastapi import APIRouter, Depends, Query, status

from famvault.routes.deps import get_access_service, get_actor_id, unwrap
from famvault.routes.schemas import (
    ActivePermissionOut,
    CreateDelegationBody,
    CreateOutcomeOut,
    DecisionBody,
    DelegationRequestOut,
    SuccessResponse,
)
from famvault.services.access import FamilyAccessService

router = APIRouter(prefix="/delegations", tags=["delegations"])


@router.post(
    "/requests",
    response_model=SuccessResponse[CreateOutcomeOut],
    status_code=status.HTTP_201_CREATED,
    name="delegation_create_request",
    summary="Request access",
    description="Create a pending delegation request, or return the permission that already covers it",
)
def create_request(
    body: CreateDelegationBody,
    actor_id: str = Depends(get_actor_id),
    service: FamilyAccessService = Depends(get_access_service),
):
    outcome = unwrap(service.create(
        actor_id,
        body.owner_id,
        body.scope_kind,
        body.target_id,
        body.permission_kind,
        reason=body.reason,
        expires_at=body.expires_at,
        beneficiary_id=body.beneficiary_id,
    ))

    if outcome.created:
        data = CreateOutcomeOut(
            created=True,
            request=DelegationRequestOut.model_validate(outcome.request),
        )
        message = "Request submitted"
    else:
        data = CreateOutcomeOut(
            created=False,
            existing_permission=ActivePermissionOut.model_validate(outcome.existing_permission),
        )
        message = "Access already granted"

    return SuccessResponse(data=data, message=message)


@router.get(
    "/requests/pending",
    response_model=SuccessResponse[List[DelegationRequestOut]],
    status_code=status.HTTP_200_OK,
    name="delegation_list_pending",
    summary="Pending requests to decide",
)
def list_pending(
    actor_id: str = Depends(get_actor_id),
    service: FamilyAccessService = Depends(get_access_service),
):
    requests = unwrap(service.list_pending_requests_for(actor_id))
    return SuccessResponse(
        data=[DelegationRequestOut.model_validate(r) for r in requests],
        message=f"Found {len(requests)} pending request(s)",
    )


@router.get(
    "/requests",
    response_model=SuccessResponse[List[DelegationRequestOut]],
    status_code=status.HTTP_200_OK,
    name="delegation_list_requests",
    summary="Requests made or received",
)
def list_requests(
    as_owner: bool = Query(False, description="List requests received instead of made"),
    actor_id: str = Depends(get_actor_id),
    service: FamilyAccessService = Depends(get_access_service),
):
    requests = unwrap(service.list_requests_for(actor_id, as_owner))
    return SuccessResponse(data=[DelegationRequestOut.model_validate(r) for r in requests])


@router.post(
    "/requests/{request_id}/approve",
    response_model=SuccessResponse[ActivePermissionOut],
    status_code=status.HTTP_200_OK,
    name="delegation_approve_request",
    summary="Approve a pending request",
)
def approve_request(
    request_id: str,
    body: DecisionBody = DecisionBody(),
    actor_id: str = Depends(get_actor_id),
    service: FamilyAccessService = Depends(get_access_service),
):
    permission = unwrap(service.approve(actor_id, request_id, body.comment))
    return SuccessResponse(
        data=ActivePermissionOut.model_validate(permission),
        message="Request approved",
    )


@router.post(
    "/requests/{request_id}/reject",
    response_model=SuccessResponse[DelegationRequestOut],
    status_code=status.HTTP_200_OK,
    name="delegation_reject_request",
    summary="Reject a pending request",
)
def reject_request(
    request_id: str,
    body: DecisionBody = DecisionBody(),
    actor_id: str = Depends(get_actor_id),
    service: FamilyAccessService = Depends(get_access_service),
):
    request = unwrap(service.reject(actor_id, request_id, body.comment))
    return SuccessResponse(
        data=DelegationRequestOut.model_validate(request),
        message="Request rejected",
    )
