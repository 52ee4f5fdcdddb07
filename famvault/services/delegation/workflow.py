"""
Delegation Workflow

Request lifecycle on top of the state machine: create, approve, reject,
revoke, and the implicit rejection of requests that expire while pending.

Approve and reject move a request with a compare-and-set on
`status = 'pending'` inside the write transaction; the loser of a race sees
the winner's status and gets InvalidTransitionError.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from famvault.audit_logger import AuditLogger
from famvault.db import DatabaseConnection
from famvault.errors import (
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    StructuralConflictError,
    ValidationError,
)
from famvault.permissions import roles
from famvault.permissions.store import ActivePermissionStore
from famvault.permissions.types import (
    ActivePermission,
    AuditAction,
    CreateOutcome,
    DelegationRequest,
    PermissionKind,
    RequestStatus,
    ResourceRef,
    ScopeKind,
)
from famvault.services.delegation.state_machine import assert_transition, effective_status
from famvault.services.vault.hierarchy import ResourceHierarchyIndex
from famvault.storage import audit as audit_store
from famvault.storage import delegations as request_store
from famvault.storage import members as member_store
from famvault.utils.clock import Clock, normalize, utcnow

logger = logging.getLogger(__name__)

EXPIRED_WHILE_PENDING = "expired while pending"


class DelegationWorkflow:
    """Delegation request operations"""

    def __init__(
        self,
        db: DatabaseConnection,
        store: ActivePermissionStore,
        hierarchy: ResourceHierarchyIndex,
        audit: AuditLogger,
        max_reason_length: int = 500,
        clock: Clock = utcnow,
    ):
        self.db = db
        self.store = store
        self.hierarchy = hierarchy
        self.audit = audit
        self.max_reason_length = max_reason_length
        self.clock = clock

    # ========================================================================
    # CREATE
    # ========================================================================

    def create(
        self,
        owner_id: str,
        beneficiary_id: str,
        scope_kind: ScopeKind,
        target_id: Optional[str],
        permission_kind: PermissionKind,
        reason: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> CreateOutcome:
        """
        Open a PENDING request for `beneficiary_id` on `owner_id`'s resource.

        If the beneficiary already holds an equal or broader effective
        permission from the owner over the target, no request is created and
        the outcome carries that permission instead.

        Args:
            owner_id: Resource holder who will decide
            beneficiary_id: Member asking for access
            scope_kind: Requested scope level
            target_id: Resource id (None only for a whole-space request)
            permission_kind: Requested kind
            reason: Optional justification (bounded length)
            expires_at: Optional expiry for the eventual permission

        Returns:
            CreateOutcome with either the new request or the covering permission

        Raises:
            ValidationError: reason too long, expiry in the past, missing target,
                or the owner does not own the target
            InvalidTransitionError: self-delegation or cross-family request
            StructuralConflictError: an identical request is already pending
            NotFoundError: unknown member or resource
        """
        now = normalize(now or self.clock())
        expires_at = normalize(expires_at)

        if reason is not None and len(reason) > self.max_reason_length:
            raise ValidationError(
                f"Reason exceeds {self.max_reason_length} characters",
                field="reason",
            )
        if expires_at is not None and expires_at <= now:
            raise ValidationError("Expiry must be in the future", field="expires_at")
        if target_id is None and scope_kind != ScopeKind.SPACE:
            raise ValidationError(f"A {scope_kind.value} request needs a target id", field="target_id")

        with self.db.write_transaction("create_request") as conn:
            owner = member_store.load_family_member(conn, owner_id)
            if owner is None:
                raise NotFoundError("member", owner_id)
            beneficiary = member_store.load_family_member(conn, beneficiary_id)
            if beneficiary is None:
                raise NotFoundError("member", beneficiary_id)

            if owner.id == beneficiary.id:
                raise InvalidTransitionError(
                    "A member cannot request access to their own resources",
                    details={"owner_id": owner_id, "beneficiary_id": beneficiary_id},
                )
            if owner.family_id != beneficiary.family_id:
                raise InvalidTransitionError(
                    "Owner and beneficiary belong to different families",
                    details={"owner_id": owner_id, "beneficiary_id": beneficiary_id},
                )

            if target_id is not None:
                ref = ResourceRef(scope_kind, target_id)
                if self.hierarchy.family_of(ref) != owner.family_id:
                    raise InvalidTransitionError(
                        f"{ref} is outside the owner's family",
                        details={"owner_id": owner_id, "target": str(ref)},
                    )
                if scope_kind != ScopeKind.SPACE and not self.hierarchy.owns(owner_id, ref):
                    raise ValidationError(
                        f"Member {owner_id} does not own {ref}",
                        field="target_id",
                        details={"owner_id": owner_id, "target": str(ref)},
                    )

            covering = self.store.find_covering(
                beneficiary_id, owner_id, scope_kind, target_id, permission_kind, now
            )
            if covering is not None:
                logger.info(
                    f"Request by {beneficiary_id} already covered by permission {covering.id}"
                )
                return CreateOutcome(existing_permission=covering)

            duplicate = request_store.find_pending_duplicate(
                conn, owner_id, beneficiary_id, scope_kind, target_id
            )
            if duplicate is not None:
                raise StructuralConflictError(
                    f"Request {duplicate.id} for the same target is already pending",
                    details={"request_id": duplicate.id},
                )

            request = DelegationRequest(
                id=str(uuid.uuid4()),
                owner_id=owner_id,
                beneficiary_id=beneficiary_id,
                scope_kind=scope_kind,
                target_id=target_id,
                permission_kind=permission_kind,
                created_at=now,
                status=RequestStatus.PENDING,
                reason=reason,
                expires_at=expires_at,
            )
            request_store.save_delegation_request(conn, request)
            self.audit.log(
                AuditAction.REQUEST_CREATED,
                actor_id=beneficiary_id,
                request_id=request.id,
                detail=f"{permission_kind.value} on {scope_kind.value}:{target_id or '*'}",
                timestamp=now,
            )

        logger.info(f"Delegation request {request.id} created by {beneficiary_id} for {owner_id}")
        return CreateOutcome(request=request)

    # ========================================================================
    # DECISIONS
    # ========================================================================

    def approve(
        self,
        request_id: str,
        actor_id: str,
        admin_comment: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ActivePermission:
        """
        PENDING -> APPROVED, granting the requested permission in the same
        transaction.

        Returns:
            The new ActivePermission
        """
        now = normalize(now or self.clock())

        with self.db.write_transaction("approve_request") as conn:
            request = self._load_decidable(conn, request_id, actor_id, RequestStatus.APPROVED)

            if request.expires_at is not None and request.expires_at <= now:
                raise InvalidTransitionError(
                    f"Request {request_id} expired while pending",
                    status=request.status.value,
                    details={"request_id": request_id},
                )

            self._compare_and_set(conn, request, RequestStatus.APPROVED, now, actor_id, admin_comment)

            permission = self.store.grant(
                request.owner_id,
                request.beneficiary_id,
                request.scope_kind,
                request.target_id,
                request.permission_kind,
                expires_at=request.expires_at,
                actor_id=actor_id,
                request_id=request.id,
                now=now,
            )
            self.audit.log(
                AuditAction.REQUEST_APPROVED,
                actor_id=actor_id,
                permission_id=permission.id,
                request_id=request.id,
                detail=admin_comment,
                timestamp=now,
            )

        logger.info(f"Request {request_id} approved by {actor_id}; permission {permission.id}")
        return permission

    def reject(
        self,
        request_id: str,
        actor_id: str,
        admin_comment: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> DelegationRequest:
        """PENDING -> REJECTED; no permission is created"""
        now = normalize(now or self.clock())

        with self.db.write_transaction("reject_request") as conn:
            request = self._load_decidable(conn, request_id, actor_id, RequestStatus.REJECTED)
            self._compare_and_set(conn, request, RequestStatus.REJECTED, now, actor_id, admin_comment)
            self.audit.log(
                AuditAction.REQUEST_REJECTED,
                actor_id=actor_id,
                request_id=request.id,
                detail=admin_comment,
                timestamp=now,
            )
            rejected = request_store.load_delegation_request(conn, request_id)

        logger.info(f"Request {request_id} rejected by {actor_id}")
        return rejected

    def revoke(
        self,
        permission_id: str,
        actor_id: str,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ActivePermission:
        """Revoke a granted permission; the originating request is not rewritten"""
        return self.store.revoke(permission_id, actor_id, reason=reason, now=now)

    def expire_pending(self, now: Optional[datetime] = None) -> int:
        """
        Reject every PENDING request whose expiry has passed.

        Each request is its own transaction and uses the same compare-and-set
        as a member decision, so repeated runs append nothing new.

        Returns:
            Number of requests this call rejected
        """
        now = normalize(now or self.clock())

        with self.db.read("list_expired_requests") as conn:
            lapsed = request_store.list_pending_expired(conn, now)

        expired = 0
        for request in lapsed:
            with self.db.write_transaction("expire_request") as conn:
                moved = request_store.decide_if_pending(
                    conn, request.id, RequestStatus.REJECTED, now, None, None
                )
                if not moved:
                    continue
                self.audit.log(
                    AuditAction.REQUEST_REJECTED,
                    actor_id=None,
                    request_id=request.id,
                    detail=EXPIRED_WHILE_PENDING,
                    timestamp=now,
                )
            expired += 1

        if expired:
            logger.info(f"Auto-rejected {expired} pending request(s) past expiry")
        return expired

    def _load_decidable(
        self,
        conn,
        request_id: str,
        actor_id: str,
        target: RequestStatus,
    ) -> DelegationRequest:
        request = request_store.load_delegation_request(conn, request_id)
        if request is None:
            raise NotFoundError("request", request_id)
        actor = member_store.load_family_member(conn, actor_id)
        if actor is None:
            raise NotFoundError("member", actor_id)
        owner = member_store.load_family_member(conn, request.owner_id)

        if not roles.can_decide_request(actor, owner):
            raise PermissionDeniedError(
                f"Member {actor_id} may not decide request {request_id}",
                details={"request_id": request_id, "actor_id": actor_id},
            )
        assert_transition(request.id, request.status, target)
        return request

    @staticmethod
    def _compare_and_set(
        conn,
        request: DelegationRequest,
        target: RequestStatus,
        now: datetime,
        actor_id: str,
        admin_comment: Optional[str],
    ) -> None:
        if not request_store.decide_if_pending(conn, request.id, target, now, actor_id, admin_comment):
            current = request_store.load_delegation_request(conn, request.id)
            assert_transition(request.id, current.status, target)

    # ========================================================================
    # LISTINGS
    # ========================================================================

    def get(self, request_id: str) -> DelegationRequest:
        with self.db.read("load_request") as conn:
            request = request_store.load_delegation_request(conn, request_id)
            if request is None:
                raise NotFoundError("request", request_id)
            return self._with_effective_status(conn, request)

    def list_pending_for(self, member_id: str) -> List[DelegationRequest]:
        """
        Pending requests the member may decide: requests on their own
        resources, plus every pending request in the family for an admin or
        responsible member.
        """
        with self.db.read("list_pending_requests") as conn:
            member = member_store.load_family_member(conn, member_id)
            if member is None:
                raise NotFoundError("member", member_id)

            owner_ids = [member.id]
            if roles.can_manage_family(member):
                owner_ids = [m.id for m in member_store.list_family_members(conn, member.family_id)]

            return request_store.list_pending_for_owners(conn, owner_ids)

    def list_requests_for(self, member_id: str, as_owner: bool) -> List[DelegationRequest]:
        """Every request the member owns or made, with REVOKED derived"""
        with self.db.read("list_requests") as conn:
            requests = request_store.list_requests_for_member(conn, member_id, as_owner)
            return [self._with_effective_status(conn, r) for r in requests]

    def statistics_for(self, member_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Request and permission counters for one member's dashboard"""
        now = normalize(now or self.clock())

        with self.db.read("request_statistics") as conn:
            if member_store.load_family_member(conn, member_id) is None:
                raise NotFoundError("member", member_id)
            stats: Dict[str, Any] = {
                "requests_made": request_store.count_requests(conn, member_id, as_owner=False),
                "requests_received": request_store.count_requests(conn, member_id, as_owner=True),
                "pending_made": request_store.count_requests(
                    conn, member_id, as_owner=False, status=RequestStatus.PENDING
                ),
                "pending_received": request_store.count_requests(
                    conn, member_id, as_owner=True, status=RequestStatus.PENDING
                ),
            }

        granted = self.store.list_for(member_id, as_owner=True)
        held = self.store.list_for(member_id, as_owner=False)
        stats["active_granted"] = sum(1 for p in granted if p.is_effective(now))
        stats["active_held"] = sum(1 for p in held if p.is_effective(now))
        stats["held_by_scope"] = self.store.summary_for(member_id, now)
        return stats

    @staticmethod
    def _with_effective_status(conn, request: DelegationRequest) -> DelegationRequest:
        revoked = request.status == RequestStatus.APPROVED and audit_store.has_entry_for_request(
            conn, request.id, AuditAction.REVOKED
        )
        request.status = effective_status(request, revoked)
        return request
