"""
Standard Response Models and Request Bodies

Provides consistent response structures for all famvault endpoints.
"""

from datetime import datetime, UTC
from typing import Dict, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from famvault.models import FamilyRole
from famvault.permissions.types import AuditAction, PermissionKind, RequestStatus, ScopeKind

T = TypeVar('T')


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SuccessResponse(BaseModel, Generic[T]):
    """
    Standard success response wrapper.

    Response:
        ```json
        {
            "success": true,
            "data": { ... },
            "message": "Request approved",
            "timestamp": "2026-03-01T10:30:00.000000+00:00"
        }
        ```
    """
    success: bool = Field(True, description="Always true for success responses")
    data: T = Field(..., description="Response payload")
    message: Optional[str] = Field(None, description="Optional success message")
    timestamp: datetime = Field(default_factory=_utcnow, description="Response timestamp (UTC)")


class ErrorResponse(BaseModel):
    """
    Standard error response.

    Response:
        ```json
        {
            "success": false,
            "error_code": "INVALID_TRANSITION",
            "message": "Request r1 is approved; cannot move to rejected",
            "details": {"request_id": "r1", "status": "approved"},
            "timestamp": "2026-03-01T10:30:00.000000+00:00"
        }
        ```
    """
    success: bool = Field(False, description="Always false for error responses")
    error_code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[dict] = Field(None, description="Additional error context (ids involved)")
    timestamp: datetime = Field(default_factory=_utcnow, description="Error timestamp (UTC)")
    request_id: Optional[str] = Field(None, description="Request ID for debugging")

    def model_dump(self, **kwargs) -> dict:
        """Override model_dump to serialize datetime to ISO format for JSON compatibility."""
        data = super().model_dump(**kwargs)
        if isinstance(data.get("timestamp"), datetime):
            data["timestamp"] = data["timestamp"].isoformat()
        return data


# ===== Output models =====

class DelegationRequestOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    owner_id: str
    beneficiary_id: str
    scope_kind: ScopeKind
    target_id: Optional[str] = None
    permission_kind: PermissionKind
    status: RequestStatus
    created_at: datetime
    decided_at: Optional[datetime] = None
    decided_by: Optional[str] = None
    reason: Optional[str] = None
    admin_comment: Optional[str] = None
    expires_at: Optional[datetime] = None


class ActivePermissionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    owner_id: str
    beneficiary_id: str
    scope_kind: ScopeKind
    target_id: Optional[str] = None
    permission_kind: PermissionKind
    granted_at: datetime
    expires_at: Optional[datetime] = None
    active: bool
    request_id: Optional[str] = None


class AuditEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    seq: int
    action: AuditAction
    actor_id: Optional[str] = None
    timestamp: datetime
    permission_id: Optional[str] = None
    request_id: Optional[str] = None
    detail: Optional[str] = None
    family_id: Optional[str] = None


class DecisionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    allowed: bool
    reason: str


class CreateOutcomeOut(BaseModel):
    """Either the new pending request or the permission that already covers it"""
    created: bool
    request: Optional[DelegationRequestOut] = None
    existing_permission: Optional[ActivePermissionOut] = None


class FamilyMemberOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    family_id: str
    display_name: str
    is_admin: bool
    is_responsible: bool
    role: FamilyRole


# ===== Request bodies =====

class CreateDelegationBody(BaseModel):
    owner_id: str
    scope_kind: ScopeKind
    target_id: Optional[str] = None
    permission_kind: PermissionKind
    reason: Optional[str] = None
    expires_at: Optional[datetime] = None
    beneficiary_id: Optional[str] = Field(None, description="Defaults to the acting member")


class DecisionBody(BaseModel):
    comment: Optional[str] = None


class RevokeBody(BaseModel):
    reason: Optional[str] = None


class GrantBody(BaseModel):
    beneficiary_id: str
    scope_kind: ScopeKind
    target_id: Optional[str] = None
    permission_kind: PermissionKind
    expires_at: Optional[datetime] = None


class RoleChangeBody(BaseModel):
    role: FamilyRole


class SweepResultOut(BaseModel):
    permissions_expired: int
    requests_expired: int


class StatisticsOut(BaseModel):
    requests_made: int
    requests_received: int
    pending_made: int
    pending_received: int
    active_granted: int
    active_held: int
    held_by_scope: Dict[str, int]


__all__ = [
    "SuccessResponse",
    "ErrorResponse",
    "DelegationRequestOut",
    "ActivePermissionOut",
    "AuditEntryOut",
    "DecisionOut",
    "CreateOutcomeOut",
    "FamilyMemberOut",
    "CreateDelegationBody",
    "DecisionBody",
    "RevokeBody",
    "GrantBody",
    "RoleChangeBody",
    "SweepResultOut",
    "StatisticsOut",
]
