"""
Family membership endpoints
"""

from typing import List

from fastapi import APIRouter, Depends, status

from famvault.routes.deps import get_access_service, get_actor_id, unwrap
from famvault.routes.schemas import FamilyMemberOut, RoleChangeBody, SuccessResponse
from famvault.services.access import FamilyAccessService

router = APIRouter(prefix="/family", tags=["family"])


@router.get(
    "/members",
    response_model=SuccessResponse[List[FamilyMemberOut]],
    status_code=status.HTTP_200_OK,
    name="family_list_members",
    summary="Members of the acting member's family",
)
def list_members(
    actor_id: str = Depends(get_actor_id),
    service: FamilyAccessService = Depends(get_access_service),
):
    members = unwrap(service.list_members(actor_id))
    return SuccessResponse(data=[FamilyMemberOut.model_validate(m) for m in members])


@router.put(
    "/members/{member_id}/role",
    response_model=SuccessResponse[FamilyMemberOut],
    status_code=status.HTTP_200_OK,
    name="family_change_member_role",
    summary="Change a member's role",
)
def change_role(
    member_id: str,
    body: RoleChangeBody,
    actor_id: str = Depends(get_actor_id),
    service: FamilyAccessService = Depends(get_access_service),
):
    member = unwrap(service.change_member_role(actor_id, member_id, body.role))
    return SuccessResponse(
        data=FamilyMemberOut.model_validate(member),
        message=f"Role changed to {body.role.value}",
    )


@router.delete(
    "/members/{member_id}",
    response_model=SuccessResponse[List[str]],
    status_code=status.HTTP_200_OK,
    name="family_remove_member",
    summary="Remove a member",
    description=(
        "Admin only. Revokes every permission the member holds or granted, rejects their "
        "pending requests and hands their resources to the acting admin"
    ),
)
def remove_member(
    member_id: str,
    actor_id: str = Depends(get_actor_id),
    service: FamilyAccessService = Depends(get_access_service),
):
    revoked = unwrap(service.remove_member(actor_id, member_id))
    return SuccessResponse(data=revoked, message=f"Member removed, {len(revoked)} permission(s) revoked")
