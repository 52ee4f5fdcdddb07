"""
Delegation Request State Machine

    PENDING  -> APPROVED | REJECTED
    APPROVED -> REVOKED   (derived: the granted permission was deactivated)

REJECTED and REVOKED are terminal. A pending request whose expiry passes is
rejected implicitly by the expiry job.
"""

from typing import Dict, FrozenSet

from famvault.errors import InvalidTransitionError
from famvault.permissions.types import DelegationRequest, RequestStatus


TRANSITIONS: Dict[RequestStatus, FrozenSet[RequestStatus]] = {
    RequestStatus.PENDING: frozenset({RequestStatus.APPROVED, RequestStatus.REJECTED}),
    RequestStatus.APPROVED: frozenset({RequestStatus.REVOKED}),
    RequestStatus.REJECTED: frozenset(),
    RequestStatus.REVOKED: frozenset(),
}


def can_transition(current: RequestStatus, target: RequestStatus) -> bool:
    return target in TRANSITIONS[current]


def assert_transition(request_id: str, current: RequestStatus, target: RequestStatus) -> None:
    """Raise InvalidTransitionError carrying `current` unless current -> target is allowed"""
    if not can_transition(current, target):
        raise InvalidTransitionError(
            f"Request {request_id} is {current.value}; cannot move to {target.value}",
            status=current.value,
            details={"request_id": request_id, "requested": target.value},
        )


def is_terminal(status: RequestStatus) -> bool:
    return not TRANSITIONS[status]


def effective_status(request: DelegationRequest, permission_revoked: bool) -> RequestStatus:
    """
    Status as reported to callers.

    Stored requests are never rewritten after their decision; an approved
    request whose permission has since been revoked reads as REVOKED.
    Expiry of the permission is not revocation and keeps APPROVED.
    """
    if request.status == RequestStatus.APPROVED and permission_revoked:
        return RequestStatus.REVOKED
    return request.status
