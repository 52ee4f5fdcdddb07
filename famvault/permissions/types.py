"""
Permission Types

Core type definitions for delegated permissions, delegation requests and
the audit trail.
"""

from enum import Enum
from typing import Optional
from dataclasses import dataclass
from datetime import datetime


class ScopeKind(str, Enum):
    """Level of the resource hierarchy a grant or request targets"""
    SPACE = "space"
    CATEGORY = "category"
    FOLDER = "folder"
    FILE = "file"


class PermissionKind(str, Enum):
    """Delegable permission kinds, ordered read < write < delete < full_control"""
    READ = "read"
    WRITE = "write"
    DELETE = "delete"
    FULL_CONTROL = "full_control"


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    REVOKED = "revoked"


class AuditAction(str, Enum):
    """Audit trail actions"""
    GRANTED = "granted"
    REVOKED = "revoked"
    EXPIRED = "expired"
    REQUEST_CREATED = "request_created"
    REQUEST_APPROVED = "request_approved"
    REQUEST_REJECTED = "request_rejected"
    DENIED_ATTEMPT = "denied_attempt"


@dataclass(frozen=True)
class ResourceRef:
    """Typed pointer into the resource hierarchy"""
    kind: ScopeKind
    id: str

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.id}"


@dataclass
class DelegationRequest:
    """
    A member's request for access to another member's resources

    Attributes:
        id: Request identifier
        owner_id: Resource holder who decides the request
        beneficiary_id: Requesting member
        scope_kind: Level the request targets
        target_id: Resource id (None only for a whole-space request)
        permission_kind: Requested kind
        created_at: Creation time
        decided_at: Decision time, written once
        decided_by: Deciding member, written once
        status: Stored lifecycle status
        reason: Requester's justification
        admin_comment: Decider's comment
        expires_at: Expiry carried over to the granted permission
    """
    id: str
    owner_id: str
    beneficiary_id: str
    scope_kind: ScopeKind
    target_id: Optional[str]
    permission_kind: PermissionKind
    created_at: datetime
    status: RequestStatus = RequestStatus.PENDING
    decided_at: Optional[datetime] = None
    decided_by: Optional[str] = None
    reason: Optional[str] = None
    admin_comment: Optional[str] = None
    expires_at: Optional[datetime] = None


@dataclass
class ActivePermission:
    """
    A delegated permission; deactivated, never deleted

    `request_id` names the originating request for display only.
    """
    id: str
    owner_id: str
    beneficiary_id: str
    scope_kind: ScopeKind
    target_id: Optional[str]
    permission_kind: PermissionKind
    granted_at: datetime
    expires_at: Optional[datetime] = None
    active: bool = True
    request_id: Optional[str] = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def is_effective(self, now: datetime) -> bool:
        return self.active and not self.is_expired(now)


@dataclass
class AuditLogEntry:
    """Immutable audit snapshot"""
    id: str
    seq: int
    action: AuditAction
    actor_id: Optional[str]
    timestamp: datetime
    permission_id: Optional[str] = None
    request_id: Optional[str] = None
    detail: Optional[str] = None
    family_id: Optional[str] = None


@dataclass
class Decision:
    """Outcome of an authorization check"""
    allowed: bool
    reason: str

    @classmethod
    def allow(cls, reason: str) -> "Decision":
        return cls(allowed=True, reason=reason)

    @classmethod
    def deny(cls, reason: str) -> "Decision":
        return cls(allowed=False, reason=reason)

    def __bool__(self) -> bool:
        return self.allowed


@dataclass
class CreateOutcome:
    """
    Result of a delegation request creation

    Exactly one field is set: the new pending request, or the existing
    permission that already covers what was asked for.
    """
    request: Optional[DelegationRequest] = None
    existing_permission: Optional[ActivePermission] = None

    @property
    def created(self) -> bool:
        return self.request is not None
