"""
Family Access Service

Boundary of the permission core. Every operation:
- takes the acting member id explicitly and re-loads that member before
  doing anything (role flags are never trusted from the caller)
- returns an OperationResult; no exception crosses this boundary
- records a denied_attempt audit entry when a mutation is refused for lack
  of authority (authorize() denials are never audited)
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, TypeVar

from famvault.audit_logger import AuditLogger
from famvault.config import FamVaultSettings, get_settings
from famvault.db import DatabaseConnection, init_schema
from famvault.errors import FamVaultError, NotFoundError, OperationResult, PermissionDeniedError
from famvault.models import FamilyMember, FamilyRole
from famvault.permissions.engine import PermissionEngine
from famvault.permissions.store import ActivePermissionStore
from famvault.permissions.types import (
    ActivePermission,
    AuditAction,
    AuditLogEntry,
    CreateOutcome,
    Decision,
    DelegationRequest,
    PermissionKind,
    ResourceRef,
    ScopeKind,
)
from famvault.services.delegation.workflow import DelegationWorkflow
from famvault.services.family.members import FamilyMembershipService
from famvault.services.vault.hierarchy import ResourceHierarchyIndex
from famvault.storage import members as member_store
from famvault.utils.clock import Clock, utcnow

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FamilyAccessService:
    """
    Facade over the hierarchy index, permission store, delegation workflow,
    resolution engine, membership service and audit log.
    """

    def __init__(
        self,
        db: DatabaseConnection,
        settings: Optional[FamVaultSettings] = None,
        clock: Clock = utcnow,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.clock = clock

        self.audit = AuditLogger(db)
        self.hierarchy = ResourceHierarchyIndex(db)
        self.store = ActivePermissionStore(db, self.hierarchy, self.audit, clock=clock)
        self.workflow = DelegationWorkflow(
            db,
            self.store,
            self.hierarchy,
            self.audit,
            max_reason_length=self.settings.max_reason_length,
            clock=clock,
        )
        self.engine = PermissionEngine(
            db,
            self.hierarchy,
            self.store,
            clock=clock,
            explain_enabled=self.settings.perms_explain,
        )
        self.members = FamilyMembershipService(
            db, self.store, self.audit, adult_age=self.settings.adult_age, clock=clock
        )

    @classmethod
    def from_settings(cls, settings: Optional[FamVaultSettings] = None) -> "FamilyAccessService":
        """Open (and initialize) the configured database"""
        settings = settings or get_settings()
        db = DatabaseConnection(settings.db_path, timeout=settings.db_timeout_seconds)
        init_schema(db)
        return cls(db, settings=settings)

    # ========================================================================
    # BOUNDARY HELPERS
    # ========================================================================

    def _load_actor(self, actor_id: str) -> FamilyMember:
        with self.db.read("load_family_member") as conn:
            actor = member_store.load_family_member(conn, actor_id)
        if actor is None:
            raise NotFoundError("member", actor_id)
        return actor

    def _run(self, operation: str, actor_id: str, fn: Callable[[], T]) -> OperationResult[T]:
        try:
            self._load_actor(actor_id)
            return OperationResult.success(fn())
        except FamVaultError as e:
            logger.debug(f"{operation} by {actor_id} failed: {e.kind.value}: {e.message}")
            return OperationResult.failure(e)

    def _run_mutation(
        self,
        operation: str,
        actor_id: str,
        fn: Callable[[], T],
        permission_id: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> OperationResult[T]:
        try:
            self._load_actor(actor_id)
            return OperationResult.success(fn())
        except PermissionDeniedError as e:
            # The refused transaction has rolled back; the attempt is recorded on its own
            logger.warning(f"Denied {operation} by {actor_id}: {e.message}")
            try:
                self.audit.log(
                    AuditAction.DENIED_ATTEMPT,
                    actor_id=actor_id,
                    permission_id=permission_id,
                    request_id=request_id,
                    detail=f"{operation}: {e.message}",
                    timestamp=self.clock(),
                )
            except FamVaultError as audit_error:
                return OperationResult.failure(audit_error)
            return OperationResult.failure(e)
        except FamVaultError as e:
            logger.info(f"{operation} by {actor_id} failed: {e.kind.value}: {e.message}")
            return OperationResult.failure(e)

    # ========================================================================
    # READ OPERATIONS
    # ========================================================================

    def authorize(
        self,
        actor_id: str,
        ref: ResourceRef,
        action: PermissionKind,
        now: Optional[datetime] = None,
    ) -> Decision:
        """Allow/deny decision; unknown ids come back as a Deny, never an error"""
        try:
            return self.engine.authorize(actor_id, ref, action, now)
        except FamVaultError as e:
            logger.error(f"authorize({actor_id}, {ref}, {action.value}) failed: {e.message}")
            return Decision.deny(e.kind.value)

    def explain(self, actor_id: str, ref: ResourceRef, action: PermissionKind) -> OperationResult[Dict[str, Any]]:
        return self._run("explain", actor_id, lambda: self.engine.explain(actor_id, ref, action))

    def list_pending_requests_for(self, actor_id: str) -> OperationResult[List[DelegationRequest]]:
        return self._run(
            "list_pending_requests", actor_id, lambda: self.workflow.list_pending_for(actor_id)
        )

    def list_requests_for(self, actor_id: str, as_owner: bool) -> OperationResult[List[DelegationRequest]]:
        return self._run(
            "list_requests", actor_id, lambda: self.workflow.list_requests_for(actor_id, as_owner)
        )

    def list_active_permissions_for(
        self,
        actor_id: str,
        as_owner: bool,
        include_inactive: bool = False,
    ) -> OperationResult[List[ActivePermission]]:
        return self._run(
            "list_active_permissions",
            actor_id,
            lambda: self.store.list_for(actor_id, as_owner, include_inactive),
        )

    def list_expiring_soon(
        self,
        actor_id: str,
        days: Optional[int] = None,
    ) -> OperationResult[List[ActivePermission]]:
        return self._run(
            "list_expiring_soon",
            actor_id,
            lambda: self.store.expiring_soon(
                self.clock(), days or self.settings.expiring_soon_days, member_id=actor_id
            ),
        )

    def audit_trail_for(self, actor_id: str, permission_id: str) -> OperationResult[List[AuditLogEntry]]:
        """
        History of one permission, oldest first.

        Visible to the owner, the beneficiary and admins of the owner's family.
        """
        def trail() -> List[AuditLogEntry]:
            actor = self._load_actor(actor_id)
            permission = self.store.get(permission_id)
            if actor.id not in (permission.owner_id, permission.beneficiary_id):
                with self.db.read("load_family_member") as conn:
                    owner = member_store.load_family_member(conn, permission.owner_id)
                if owner is None or owner.family_id != actor.family_id or actor.role != FamilyRole.ADMIN:
                    raise PermissionDeniedError(
                        f"Member {actor_id} may not view the trail of {permission_id}",
                        details={"permission_id": permission_id},
                    )
            return self.audit.trail_for(permission_id)

        return self._run("audit_trail", actor_id, trail)

    def audit_log_for(
        self,
        actor_id: str,
        member_id: Optional[str] = None,
        action: Optional[AuditAction] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> OperationResult[List[AuditLogEntry]]:
        """
        Audit entries of the actor's family, newest first.

        Admins see the whole family, optionally narrowed to one acting member;
        everyone else only sees entries they caused themselves.
        """
        def listing() -> List[AuditLogEntry]:
            actor = self._load_actor(actor_id)
            acting = member_id
            if actor.role != FamilyRole.ADMIN:
                if acting not in (None, actor.id):
                    raise PermissionDeniedError(
                        f"Member {actor_id} may not view the audit entries of {member_id}",
                        details={"member_id": member_id},
                    )
                acting = actor.id
            return self.audit.get_logs(
                actor_id=acting,
                family_id=actor.family_id,
                action=action,
                limit=limit,
                offset=offset,
            )

        return self._run("audit_log", actor_id, listing)

    def statistics_for(self, actor_id: str) -> OperationResult[Dict[str, Any]]:
        return self._run("statistics", actor_id, lambda: self.workflow.statistics_for(actor_id))

    def list_members(self, actor_id: str) -> OperationResult[List[FamilyMember]]:
        return self._run("list_members", actor_id, lambda: self.members.list_members(actor_id))

    # ========================================================================
    # MUTATIONS
    # ========================================================================

    def create(
        self,
        actor_id: str,
        owner_id: str,
        scope_kind: ScopeKind,
        target_id: Optional[str],
        permission_kind: PermissionKind,
        reason: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        beneficiary_id: Optional[str] = None,
    ) -> OperationResult[CreateOutcome]:
        """
        Request access to `owner_id`'s resource.

        The beneficiary defaults to the actor; requesting on someone else's
        behalf needs an admin or responsible actor of the same family.
        """
        beneficiary_id = beneficiary_id or actor_id

        def create_request() -> CreateOutcome:
            if beneficiary_id != actor_id:
                actor = self._load_actor(actor_id)
                with self.db.read("load_family_member") as conn:
                    beneficiary = member_store.load_family_member(conn, beneficiary_id)
                if beneficiary is None:
                    raise NotFoundError("member", beneficiary_id)
                if actor.family_id != beneficiary.family_id or actor.role == FamilyRole.ORDINARY:
                    raise PermissionDeniedError(
                        f"Member {actor_id} may not request on behalf of {beneficiary_id}",
                        details={"actor_id": actor_id, "beneficiary_id": beneficiary_id},
                    )
            return self.workflow.create(
                owner_id,
                beneficiary_id,
                scope_kind,
                target_id,
                permission_kind,
                reason=reason,
                expires_at=expires_at,
            )

        return self._run_mutation("create_request", actor_id, create_request)

    def approve(
        self,
        actor_id: str,
        request_id: str,
        admin_comment: Optional[str] = None,
    ) -> OperationResult[ActivePermission]:
        return self._run_mutation(
            "approve_request",
            actor_id,
            lambda: self.workflow.approve(request_id, actor_id, admin_comment),
            request_id=request_id,
        )

    def reject(
        self,
        actor_id: str,
        request_id: str,
        admin_comment: Optional[str] = None,
    ) -> OperationResult[DelegationRequest]:
        return self._run_mutation(
            "reject_request",
            actor_id,
            lambda: self.workflow.reject(request_id, actor_id, admin_comment),
            request_id=request_id,
        )

    def revoke(
        self,
        actor_id: str,
        permission_id: str,
        reason: Optional[str] = None,
    ) -> OperationResult[ActivePermission]:
        return self._run_mutation(
            "revoke_permission",
            actor_id,
            lambda: self.workflow.revoke(permission_id, actor_id, reason),
            permission_id=permission_id,
        )

    def grant_direct(
        self,
        actor_id: str,
        beneficiary_id: str,
        scope_kind: ScopeKind,
        target_id: Optional[str],
        permission_kind: PermissionKind,
        expires_at: Optional[datetime] = None,
    ) -> OperationResult[ActivePermission]:
        """Unmediated grant by the owner, treated as an already-approved request"""
        return self._run_mutation(
            "grant_direct",
            actor_id,
            lambda: self.store.grant(
                actor_id,
                beneficiary_id,
                scope_kind,
                target_id,
                permission_kind,
                expires_at=expires_at,
                actor_id=actor_id,
            ),
        )

    def change_member_role(
        self,
        actor_id: str,
        target_id: str,
        new_role: FamilyRole,
    ) -> OperationResult[FamilyMember]:
        return self._run_mutation(
            "change_member_role",
            actor_id,
            lambda: self.members.change_member_role(actor_id, target_id, new_role),
        )

    def remove_member(self, actor_id: str, target_id: str) -> OperationResult[List[str]]:
        return self._run_mutation(
            "remove_member",
            actor_id,
            lambda: self.members.remove_member(actor_id, target_id),
        )

    def delete_family(self, actor_id: str, family_id: str) -> OperationResult[int]:
        return self._run_mutation(
            "delete_family",
            actor_id,
            lambda: self.members.delete_family(actor_id, family_id),
        )

    # ========================================================================
    # MAINTENANCE
    # ========================================================================

    def sweep_expired(
        self,
        now: Optional[datetime] = None,
        actor_id: Optional[str] = None,
    ) -> OperationResult[Dict[str, int]]:
        """
        Expire permissions and auto-reject lapsed pending requests.

        The background job runs without an actor; a member triggering the
        sweep must exist.
        """
        try:
            if actor_id is not None:
                self._load_actor(actor_id)
            now = now or self.clock()
            return OperationResult.success({
                "permissions_expired": self.store.sweep_expired(now),
                "requests_expired": self.workflow.expire_pending(now),
            })
        except FamVaultError as e:
            return OperationResult.failure(e)

    def export_audit_csv(self, actor_id: str, output_path: Path) -> OperationResult[int]:
        """Admin-only CSV export of the actor's family audit entries"""
        def export() -> int:
            actor = self._load_actor(actor_id)
            if actor.role != FamilyRole.ADMIN:
                raise PermissionDeniedError(f"Member {actor_id} may not export the audit log")
            return self.audit.export_to_csv(output_path, family_id=actor.family_id)

        return self._run_mutation("export_audit", actor_id, export)
