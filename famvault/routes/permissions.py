"""
Permission endpoints

Access checks, active permission listings, direct grants, revocation and
the per-permission and family-wide audit listings.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, status

from famvault.permissions.types import AuditAction, PermissionKind, ResourceRef, ScopeKind
from famvault.routes.deps import get_access_service, get_actor_id, unwrap
from famvault.routes.schemas import (
    ActivePermissionOut,
    AuditEntryOut,
    DecisionOut,
    GrantBody,
    RevokeBody,
    StatisticsOut,
    SuccessResponse,
    SweepResultOut,
)
from famvault.services.access import FamilyAccessService

router = APIRouter(prefix="/permissions", tags=["permissions"])


@router.get(
    "/authorize",
    response_model=SuccessResponse[DecisionOut],
    status_code=status.HTTP_200_OK,
    name="permissions_authorize",
    summary="Check access to a resource",
    description="Decide whether the acting member may perform an action on a resource",
)
def authorize(
    kind: ScopeKind = Query(..., description="Resource kind"),
    resource_id: str = Query(..., alias="id", description="Resource id"),
    action: PermissionKind = Query(PermissionKind.READ),
    actor_id: str = Depends(get_actor_id),
    service: FamilyAccessService = Depends(get_access_service),
):
    decision = service.authorize(actor_id, ResourceRef(kind, resource_id), action)
    return SuccessResponse(data=DecisionOut.model_validate(decision))


@router.get(
    "/explain",
    response_model=SuccessResponse[Dict[str, Any]],
    status_code=status.HTTP_200_OK,
    name="permissions_explain",
    summary="Explain an access decision",
    description="Diagnostic breakdown of an access decision (requires FAMVAULT_PERMS_EXPLAIN=1)",
)
def explain(
    kind: ScopeKind = Query(...),
    resource_id: str = Query(..., alias="id"),
    action: PermissionKind = Query(PermissionKind.READ),
    actor_id: str = Depends(get_actor_id),
    service: FamilyAccessService = Depends(get_access_service),
):
    data = unwrap(service.explain(actor_id, ResourceRef(kind, resource_id), action))
    return SuccessResponse(data=data)


@router.get(
    "",
    response_model=SuccessResponse[List[ActivePermissionOut]],
    status_code=status.HTTP_200_OK,
    name="permissions_list",
    summary="Permissions held or granted",
)
def list_permissions(
    as_owner: bool = Query(False, description="List permissions granted instead of held"),
    include_inactive: bool = Query(False),
    actor_id: str = Depends(get_actor_id),
    service: FamilyAccessService = Depends(get_access_service),
):
    permissions = unwrap(service.list_active_permissions_for(actor_id, as_owner, include_inactive))
    return SuccessResponse(data=[ActivePermissionOut.model_validate(p) for p in permissions])


@router.get(
    "/expiring",
    response_model=SuccessResponse[List[ActivePermissionOut]],
    status_code=status.HTTP_200_OK,
    name="permissions_expiring_soon",
    summary="Permissions about to expire",
)
def list_expiring(
    days: Optional[int] = Query(None, ge=1, le=365),
    actor_id: str = Depends(get_actor_id),
    service: FamilyAccessService = Depends(get_access_service),
):
    permissions = unwrap(service.list_expiring_soon(actor_id, days))
    return SuccessResponse(data=[ActivePermissionOut.model_validate(p) for p in permissions])


@router.get(
    "/statistics",
    response_model=SuccessResponse[StatisticsOut],
    status_code=status.HTTP_200_OK,
    name="permissions_statistics",
    summary="Delegation counters for the acting member",
)
def statistics(
    actor_id: str = Depends(get_actor_id),
    service: FamilyAccessService = Depends(get_access_service),
):
    return SuccessResponse(data=StatisticsOut(**unwrap(service.statistics_for(actor_id))))


@router.post(
    "",
    response_model=SuccessResponse[ActivePermissionOut],
    status_code=status.HTTP_201_CREATED,
    name="permissions_grant",
    summary="Grant access directly",
    description="Owner grants access to one of their resources without a request",
)
def grant(
    body: GrantBody,
    actor_id: str = Depends(get_actor_id),
    service: FamilyAccessService = Depends(get_access_service),
):
    permission = unwrap(service.grant_direct(
        actor_id,
        body.beneficiary_id,
        body.scope_kind,
        body.target_id,
        body.permission_kind,
        expires_at=body.expires_at,
    ))
    return SuccessResponse(
        data=ActivePermissionOut.model_validate(permission),
        message="Permission granted",
    )


@router.post(
    "/{permission_id}/revoke",
    response_model=SuccessResponse[ActivePermissionOut],
    status_code=status.HTTP_200_OK,
    name="permissions_revoke",
    summary="Revoke a permission",
)
def revoke(
    permission_id: str,
    body: RevokeBody = RevokeBody(),
    actor_id: str = Depends(get_actor_id),
    service: FamilyAccessService = Depends(get_access_service),
):
    permission = unwrap(service.revoke(actor_id, permission_id, body.reason))
    return SuccessResponse(
        data=ActivePermissionOut.model_validate(permission),
        message="Permission revoked",
    )


@router.get(
    "/audit",
    response_model=SuccessResponse[List[AuditEntryOut]],
    status_code=status.HTTP_200_OK,
    name="permissions_audit_log",
    summary="Family audit log",
    description="Audit entries of the acting member's family, newest first; non-admins only see their own",
)
def audit_log(
    member_id: Optional[str] = Query(None, description="Only entries caused by this member"),
    action: Optional[AuditAction] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    actor_id: str = Depends(get_actor_id),
    service: FamilyAccessService = Depends(get_access_service),
):
    entries = unwrap(service.audit_log_for(actor_id, member_id, action, limit=limit, offset=offset))
    return SuccessResponse(data=[AuditEntryOut.model_validate(e) for e in entries])


@router.get(
    "/{permission_id}/audit",
    response_model=SuccessResponse[List[AuditEntryOut]],
    status_code=status.HTTP_200_OK,
    name="permissions_audit_trail",
    summary="Audit trail of a permission",
)
def audit_trail(
    permission_id: str,
    actor_id: str = Depends(get_actor_id),
    service: FamilyAccessService = Depends(get_access_service),
):
    entries = unwrap(service.audit_trail_for(actor_id, permission_id))
    return SuccessResponse(data=[AuditEntryOut.model_validate(e) for e in entries])


@router.post(
    "/sweep",
    response_model=SuccessResponse[SweepResultOut],
    status_code=status.HTTP_200_OK,
    name="permissions_sweep",
    summary="Run the expiry sweep now",
)
def sweep(
    actor_id: str = Depends(get_actor_id),
    service: FamilyAccessService = Depends(get_access_service),
):
    return SuccessResponse(data=SweepResultOut(**unwrap(service.sweep_expired(actor_id=actor_id))))
