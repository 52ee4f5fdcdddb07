"""
Active Permission Store

Granted delegated permissions, scoped coverage lookups and expiry.

Coverage rule: a permission covers resource R for kind K when it is active,
not yet expired, its owner is R's owner, its target is R or one of R's
ancestors (a space grant with no target covers the owner's resources in every
space of the family), and its kind ranks at or above K.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from famvault.audit_logger import AuditLogger
from famvault.db import DatabaseConnection
from famvault.errors import (
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from famvault.permissions import roles
from famvault.permissions.hierarchy import kinds_at_least
from famvault.permissions.types import (
    ActivePermission,
    AuditAction,
    PermissionKind,
    ResourceRef,
    ScopeKind,
)
from famvault.services.vault.hierarchy import ResourceHierarchyIndex
from famvault.storage import members as member_store
from famvault.storage import permissions as permission_store
from famvault.storage import resources as resource_store
from famvault.utils.clock import Clock, normalize, to_iso, utcnow

logger = logging.getLogger(__name__)


def _covers(permission: ActivePermission, chain: List[ResourceRef]) -> bool:
    if permission.scope_kind == ScopeKind.SPACE and permission.target_id is None:
        return True
    return ResourceRef(permission.scope_kind, permission.target_id) in chain


class ActivePermissionStore:
    """
    Delegated permission lifecycle: grant, revoke, expire

    Every mutation runs in one write transaction together with its audit
    entry. Deactivation is a conditional UPDATE on `active = 1`, so a
    permission is revoked or expired at most once.
    """

    def __init__(
        self,
        db: DatabaseConnection,
        hierarchy: ResourceHierarchyIndex,
        audit: AuditLogger,
        clock: Clock = utcnow,
    ):
        self.db = db
        self.hierarchy = hierarchy
        self.audit = audit
        self.clock = clock

    # ===== Mutations =====

    def grant(
        self,
        owner_id: str,
        beneficiary_id: str,
        scope_kind: ScopeKind,
        target_id: Optional[str],
        permission_kind: PermissionKind,
        expires_at: Optional[datetime] = None,
        actor_id: Optional[str] = None,
        request_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ActivePermission:
        """
        Create an active permission from `owner_id` to `beneficiary_id`

        Ownership of the target is checked against current state for
        category, folder and file scopes. Space scope skips the ownership
        check but requires the owner to be admin or responsible, or to own
        that space.

        Args:
            owner_id: Granting resource owner
            beneficiary_id: Receiving member
            scope_kind: Level of the grant
            target_id: Resource id; None only for a whole-space grant
            permission_kind: Granted kind
            expires_at: Optional expiry (must be in the future)
            actor_id: Member performing the grant, recorded in the audit entry
            request_id: Originating delegation request, if any
            now: Grant time (defaults to the store clock)

        Returns:
            The new ActivePermission

        Raises:
            NotFoundError: owner, beneficiary or target missing
            InvalidTransitionError: self-grant or cross-family target
            PermissionDeniedError: owner does not own the target
            ValidationError: missing target or expiry not in the future
        """
        now = normalize(now or self.clock())
        expires_at = normalize(expires_at)
        if expires_at is not None and expires_at <= now:
            raise ValidationError("Expiry must be in the future", field="expires_at")
        if target_id is None and scope_kind != ScopeKind.SPACE:
            raise ValidationError(f"A {scope_kind.value} grant needs a target id", field="target_id")

        permission = ActivePermission(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            beneficiary_id=beneficiary_id,
            scope_kind=scope_kind,
            target_id=target_id,
            permission_kind=permission_kind,
            granted_at=now,
            expires_at=expires_at,
            active=True,
            request_id=request_id,
        )

        with self.db.write_transaction("grant") as conn:
            owner = member_store.load_family_member(conn, owner_id)
            if owner is None:
                raise NotFoundError("member", owner_id)
            beneficiary = member_store.load_family_member(conn, beneficiary_id)
            if beneficiary is None:
                raise NotFoundError("member", beneficiary_id)
            if owner.id == beneficiary.id:
                raise InvalidTransitionError(
                    "A member cannot delegate to themself",
                    details={"owner_id": owner_id, "beneficiary_id": beneficiary_id},
                )
            if owner.family_id != beneficiary.family_id:
                raise InvalidTransitionError(
                    "Owner and beneficiary belong to different families",
                    details={"owner_id": owner_id, "beneficiary_id": beneficiary_id},
                )

            if scope_kind == ScopeKind.SPACE:
                self._check_space_grant(conn, owner, target_id)
            else:
                ref = ResourceRef(scope_kind, target_id)
                if self.hierarchy.family_of(ref) != owner.family_id:
                    raise InvalidTransitionError(
                        f"{ref} is outside the owner's family",
                        details={"owner_id": owner_id, "target": str(ref)},
                    )
                if not self.hierarchy.owns(owner_id, ref):
                    raise PermissionDeniedError(
                        f"Member {owner_id} does not own {ref}",
                        details={"owner_id": owner_id, "target": str(ref)},
                    )

            permission_store.save_active_permission(conn, permission)
            self.audit.log(
                AuditAction.GRANTED,
                actor_id=actor_id or owner_id,
                permission_id=permission.id,
                request_id=request_id,
                detail=f"{permission_kind.value} on {scope_kind.value}:{target_id or '*'} to {beneficiary_id}",
                timestamp=now,
            )

        logger.info(
            f"Granted {permission_kind.value} on {scope_kind.value}:{target_id or '*'} "
            f"from {owner_id} to {beneficiary_id} ({permission.id})"
        )
        return permission

    def _check_space_grant(self, conn, owner, target_id: Optional[str]) -> None:
        if target_id is None:
            if not roles.can_manage_family(owner):
                raise PermissionDeniedError(
                    "Whole-space grants require an admin or responsible owner",
                    details={"owner_id": owner.id},
                )
            return

        space = resource_store.require_resource(conn, ResourceRef(ScopeKind.SPACE, target_id))
        if space.family_id != owner.family_id:
            raise InvalidTransitionError(
                f"space:{target_id} is outside the owner's family",
                details={"owner_id": owner.id, "target": f"space:{target_id}"},
            )
        if space.owner_id != owner.id and not roles.can_manage_family(owner):
            raise PermissionDeniedError(
                "Space grants require an admin or responsible owner",
                details={"owner_id": owner.id, "target": f"space:{target_id}"},
            )

    def revoke(
        self,
        permission_id: str,
        actor_id: str,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
        check_authority: bool = True,
    ) -> ActivePermission:
        """
        Deactivate a permission; the row is kept

        `check_authority=False` is for callers that already authorized a
        broader operation (member removal, family deletion).

        Raises:
            NotFoundError: unknown permission or actor
            PermissionDeniedError: actor is neither owner, beneficiary nor an
                admin of the owner's family
            InvalidTransitionError: permission already inactive
        """
        now = now or self.clock()

        with self.db.write_transaction("revoke") as conn:
            permission = permission_store.load_active_permission(conn, permission_id)
            if permission is None:
                raise NotFoundError("permission", permission_id)
            actor = member_store.load_family_member(conn, actor_id)
            if actor is None:
                raise NotFoundError("member", actor_id)
            owner = member_store.load_family_member(conn, permission.owner_id)

            if check_authority and not roles.can_revoke_permission(actor, permission, owner):
                raise PermissionDeniedError(
                    f"Member {actor_id} may not revoke permission {permission_id}",
                    details={"permission_id": permission_id, "actor_id": actor_id},
                )

            if not permission_store.deactivate_if_active(conn, permission_id):
                raise InvalidTransitionError(
                    f"Permission {permission_id} is no longer active",
                    status="inactive",
                    details={"permission_id": permission_id},
                )

            self.audit.log(
                AuditAction.REVOKED,
                actor_id=actor_id,
                permission_id=permission_id,
                request_id=permission.request_id,
                detail=reason,
                timestamp=now,
            )

        permission.active = False
        logger.info(f"Revoked permission {permission_id} by {actor_id}")
        return permission

    def revoke_all_for_member(
        self,
        member_id: str,
        actor_id: str,
        reason: Optional[str] = None,
        check_authority: bool = True,
    ) -> List[str]:
        """
        Revoke every active permission the member owns or holds.

        Each revocation is its own unit; a permission that another caller
        deactivated in the meantime is skipped.

        Returns:
            Ids of the permissions this call revoked
        """
        with self.db.read("list_permissions") as conn:
            permission_ids = permission_store.list_active_involving(conn, member_id)

        revoked = []
        for permission_id in permission_ids:
            try:
                self.revoke(permission_id, actor_id, reason=reason, check_authority=check_authority)
            except InvalidTransitionError:
                logger.debug(f"Permission {permission_id} already inactive, skipping")
                continue
            revoked.append(permission_id)

        return revoked

    def sweep_expired(self, now: Optional[datetime] = None) -> int:
        """
        Deactivate every active permission with expires_at <= now.

        One Expired audit entry per permission; running it again at the same
        instant finds nothing to do.

        Returns:
            Number of permissions this call expired
        """
        now = now or self.clock()

        with self.db.read("list_expired_permissions") as conn:
            due = permission_store.list_due_for_expiry(conn, now)

        expired = 0
        for permission_id in due:
            with self.db.write_transaction("sweep_expired") as conn:
                if not permission_store.deactivate_if_active(conn, permission_id):
                    continue
                permission = permission_store.load_active_permission(conn, permission_id)
                self.audit.log(
                    AuditAction.EXPIRED,
                    actor_id=None,
                    permission_id=permission_id,
                    request_id=permission.request_id if permission else None,
                    detail=f"expired at {to_iso(permission.expires_at) if permission else to_iso(now)}",
                    timestamp=now,
                )
            expired += 1

        if expired:
            logger.info(f"Expiry sweep deactivated {expired} permission(s)")
        return expired

    # ===== Lookups =====

    def get(self, permission_id: str) -> ActivePermission:
        with self.db.read("load_permission") as conn:
            permission = permission_store.load_active_permission(conn, permission_id)
        if permission is None:
            raise NotFoundError("permission", permission_id)
        return permission

    def matching_permissions(
        self,
        beneficiary_id: str,
        ref: ResourceRef,
        permission_kind: PermissionKind,
        now: Optional[datetime] = None,
    ) -> List[ActivePermission]:
        """Every effective permission covering `ref` for `permission_kind`"""
        now = now or self.clock()
        owner_id = self.hierarchy.owner_of(ref)
        if owner_id is None:
            return []

        chain = [ref] + self.hierarchy.ancestors_of(ref)
        with self.db.read("load_permissions") as conn:
            candidates = permission_store.list_effective_for_pair(
                conn, beneficiary_id, owner_id, kinds_at_least(permission_kind), now
            )
        # Expiry is rechecked here so results stay correct between sweeps
        return [p for p in candidates if p.is_effective(now) and _covers(p, chain)]

    def is_granted(
        self,
        beneficiary_id: str,
        ref: ResourceRef,
        permission_kind: PermissionKind,
        now: Optional[datetime] = None,
    ) -> bool:
        return len(self.matching_permissions(beneficiary_id, ref, permission_kind, now)) > 0

    def find_covering(
        self,
        beneficiary_id: str,
        owner_id: str,
        scope_kind: ScopeKind,
        target_id: Optional[str],
        permission_kind: PermissionKind,
        now: Optional[datetime] = None,
    ) -> Optional[ActivePermission]:
        """
        An existing effective permission from `owner_id` that already covers
        the given scope/target at `permission_kind` or broader.
        """
        now = now or self.clock()
        if target_id is None:
            chain: List[ResourceRef] = []
        else:
            ref = ResourceRef(scope_kind, target_id)
            chain = [ref] + self.hierarchy.ancestors_of(ref)

        with self.db.read("load_permissions") as conn:
            candidates = permission_store.list_effective_for_pair(
                conn, beneficiary_id, owner_id, kinds_at_least(permission_kind), now
            )
        for permission in candidates:
            if permission.is_effective(now) and _covers(permission, chain):
                return permission
        return None

    def list_for(
        self,
        member_id: str,
        as_owner: bool,
        include_inactive: bool = False,
    ) -> List[ActivePermission]:
        with self.db.read("list_permissions") as conn:
            return permission_store.list_for_member(conn, member_id, as_owner, include_inactive)

    def expiring_soon(
        self,
        now: Optional[datetime] = None,
        days: int = 7,
        member_id: Optional[str] = None,
    ) -> List[ActivePermission]:
        """Active permissions expiring within `days` of `now`"""
        now = now or self.clock()
        with self.db.read("list_expiring_permissions") as conn:
            return permission_store.list_expiring_between(
                conn, now, now + timedelta(days=days), member_id
            )

    def summary_for(self, beneficiary_id: str, now: Optional[datetime] = None) -> Dict[str, int]:
        """Count of effective permissions held, per scope kind"""
        now = now or self.clock()
        summary = {kind.value: 0 for kind in ScopeKind}
        for permission in self.list_for(beneficiary_id, as_owner=False):
            if permission.is_effective(now):
                summary[permission.scope_kind.value] += 1
        return summary
