"""
Permission Hierarchy

Defines the ordering of delegable permission kinds.
"""

from .types import PermissionKind


# Kind hierarchy (higher number = more access); full_control implies all others
KIND_HIERARCHY = {
    PermissionKind.READ: 1,
    PermissionKind.WRITE: 2,
    PermissionKind.DELETE: 3,
    PermissionKind.FULL_CONTROL: 4,
}


def kind_satisfies(held: PermissionKind, requested: PermissionKind) -> bool:
    """True if a grant of `held` covers a request for `requested`"""
    return KIND_HIERARCHY[held] >= KIND_HIERARCHY[requested]


def kinds_at_least(requested: PermissionKind) -> list[str]:
    """Stored values of every kind that satisfies `requested`, for SQL IN clauses"""
    return [kind.value for kind, rank in KIND_HIERARCHY.items() if rank >= KIND_HIERARCHY[requested]]
