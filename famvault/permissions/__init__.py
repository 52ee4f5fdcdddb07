"""
Permission system: role rules, delegated permissions and resolution

Import concrete services from their modules (store, engine); this package
only re-exports the shared types.
"""

from .types import (
    ScopeKind,
    PermissionKind,
    RequestStatus,
    AuditAction,
    ResourceRef,
    DelegationRequest,
    ActivePermission,
    AuditLogEntry,
    Decision,
    CreateOutcome,
)
from .hierarchy import KIND_HIERARCHY, kind_satisfies

__all__ = [
    "ScopeKind",
    "PermissionKind",
    "RequestStatus",
    "AuditAction",
    "ResourceRef",
    "DelegationRequest",
    "ActivePermission",
    "AuditLogEntry",
    "Decision",
    "CreateOutcome",
    "KIND_HIERARCHY",
    "kind_satisfies",
]
