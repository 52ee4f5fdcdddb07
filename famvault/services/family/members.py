"""
Family Membership Operations

Family and member creation, role changes, member removal and family
deletion. Removal is admin only and leaves no pending request or resource
pointing at the removed member. Role changes and removals keep the admin
floor: a family with members always retains at least one admin.
"""

import logging
import uuid
from datetime import date, datetime
from typing import List, Optional

from famvault.audit_logger import AuditLogger
from famvault.db import DatabaseConnection
from famvault.errors import (
    NotFoundError,
    PermissionDeniedError,
    StructuralConflictError,
    ValidationError,
)
from famvault.models import Family, FamilyMember, FamilyRole
from famvault.permissions import roles
from famvault.permissions.store import ActivePermissionStore
from famvault.permissions.types import AuditAction, RequestStatus
from famvault.storage import delegations as request_store
from famvault.storage import members as member_store
from famvault.storage import resources as resource_store
from famvault.utils.clock import Clock, utcnow

logger = logging.getLogger(__name__)


def create_family(db: DatabaseConnection, name: str, created_at: Optional[datetime] = None) -> Family:
    family = Family(id=str(uuid.uuid4()), name=name, created_at=created_at or utcnow())
    with db.write_transaction("create_family") as conn:
        member_store.save_family(conn, family)
    logger.info(f"Created family {family.id}")
    return family


def add_member(
    db: DatabaseConnection,
    family_id: str,
    display_name: str,
    is_admin: bool = False,
    is_responsible: bool = False,
    birth_date: Optional[date] = None,
    gender: Optional[str] = None,
    credential_ref: Optional[str] = None,
    adult_age: int = 18,
    created_at: Optional[datetime] = None,
) -> FamilyMember:
    """
    Add a member to a family

    Args:
        db: Database connection manager
        family_id: Target family
        display_name: Name shown in listings
        is_admin: Admin flag
        is_responsible: Responsible flag
        birth_date: Birth date, checked against `adult_age` for elevated roles
        gender: Informational
        credential_ref: Opaque identity-layer reference
        adult_age: Minimum age for admin or responsible

    Returns:
        FamilyMember object
    """
    created = created_at or utcnow()
    member = FamilyMember(
        id=str(uuid.uuid4()),
        family_id=family_id,
        display_name=display_name,
        credential_ref=credential_ref,
        birth_date=birth_date,
        gender=gender,
        is_responsible=is_responsible,
        is_admin=is_admin,
        created_at=created,
    )

    if (is_admin or is_responsible) and not roles.can_hold_elevated_role(member, created.date(), adult_age):
        raise ValidationError(
            f"Members under {adult_age} cannot be admin or responsible",
            field="birth_date",
        )

    with db.write_transaction("add_member") as conn:
        if member_store.load_family(conn, family_id) is None:
            raise NotFoundError("family", family_id)
        member_store.save_family_member(conn, member)

    logger.info(f"Added member {member.id} to family {family_id} as {member.role.value}")
    return member


class FamilyMembershipService:
    """Admin-side membership mutations"""

    def __init__(
        self,
        db: DatabaseConnection,
        store: ActivePermissionStore,
        audit: AuditLogger,
        adult_age: int = 18,
        clock: Clock = utcnow,
    ):
        self.db = db
        self.store = store
        self.audit = audit
        self.adult_age = adult_age
        self.clock = clock

    def list_members(self, actor_id: str) -> List[FamilyMember]:
        """Members of the actor's family that the actor may see"""
        with self.db.read("list_members") as conn:
            actor = self._require_member(conn, actor_id)
            members = member_store.list_family_members(conn, actor.family_id)
        return [m for m in members if roles.can_access_member(actor, m)]

    def change_member_role(self, actor_id: str, target_id: str, new_role: FamilyRole) -> FamilyMember:
        """
        Set a member's role

        Raises:
            PermissionDeniedError: actor is not an admin of the target's
                family, or is changing their own role
            ValidationError: a minor would become admin or responsible
            StructuralConflictError: the family would be left without an admin
        """
        today = self.clock().date()

        with self.db.write_transaction("change_member_role") as conn:
            actor = self._require_member(conn, actor_id)
            target = self._require_member(conn, target_id)

            if actor.family_id != target.family_id or not roles.can_change_role(actor, target):
                raise PermissionDeniedError(
                    f"Member {actor_id} may not change the role of {target_id}",
                    details={"actor_id": actor_id, "target_id": target_id},
                )

            elevated = new_role in (FamilyRole.ADMIN, FamilyRole.RESPONSIBLE)
            if elevated and not roles.can_hold_elevated_role(target, today, self.adult_age):
                raise ValidationError(
                    f"Members under {self.adult_age} cannot be admin or responsible",
                    field="role",
                    details={"target_id": target_id},
                )

            if new_role != FamilyRole.ADMIN:
                members = member_store.list_family_members(conn, target.family_id)
                if not roles.can_remove_member(target, members):
                    raise StructuralConflictError(
                        "The family must keep at least one admin",
                        details={"target_id": target_id},
                    )

            member_store.update_member_flags(
                conn,
                target_id,
                is_admin=new_role == FamilyRole.ADMIN,
                is_responsible=new_role == FamilyRole.RESPONSIBLE,
            )
            updated = member_store.load_family_member(conn, target_id)

        logger.info(f"Role of {target_id} set to {new_role.value} by {actor_id}")
        return updated

    def remove_member(self, actor_id: str, target_id: str) -> List[str]:
        """
        Remove a member (admin only)

        In the same transaction every permission they own or hold is revoked,
        their pending requests on either side are rejected, and their spaces,
        categories, folders and files pass to the removing admin.

        Returns:
            Ids of the revoked permissions
        """
        with self.db.write_transaction("remove_member") as conn:
            actor = self._require_member(conn, actor_id)
            target = self._require_member(conn, target_id)

            if (
                actor.id == target.id
                or actor.family_id != target.family_id
                or not roles.can_manage_permissions(actor)
            ):
                raise PermissionDeniedError(
                    f"Member {actor_id} may not remove {target_id}",
                    details={"actor_id": actor_id, "target_id": target_id},
                )

            members = member_store.list_family_members(conn, target.family_id)
            if not roles.can_remove_member(target, members):
                raise StructuralConflictError(
                    "Cannot remove the only admin of the family",
                    details={"target_id": target_id},
                )

            revoked = self.store.revoke_all_for_member(
                target_id, actor_id, reason="member removed", check_authority=False
            )
            rejected = self._reject_pending(conn, target_id, actor_id, "member removed")
            moved = resource_store.reassign_owner(conn, target_id, actor_id)
            member_store.delete_family_member(conn, target_id)

        logger.info(
            f"Member {target_id} removed by {actor_id}: {len(revoked)} permission(s) revoked, "
            f"{rejected} pending request(s) rejected, {moved} resource(s) reassigned"
        )
        return revoked

    def delete_family(self, actor_id: str, family_id: str) -> int:
        """
        Delete a family, its members and its resource tree

        Permissions among its members are revoked first so the audit trail
        records their end. Audit entries themselves are kept.

        Returns:
            Number of revoked permissions
        """
        with self.db.write_transaction("delete_family") as conn:
            actor = self._require_member(conn, actor_id)
            if member_store.load_family(conn, family_id) is None:
                raise NotFoundError("family", family_id)
            if actor.family_id != family_id or not roles.can_manage_permissions(actor):
                raise PermissionDeniedError(
                    f"Member {actor_id} may not delete family {family_id}",
                    details={"actor_id": actor_id, "family_id": family_id},
                )

            revoked = 0
            for member in member_store.list_family_members(conn, family_id):
                revoked += len(self.store.revoke_all_for_member(
                    member.id, actor_id, reason="family deleted", check_authority=False
                ))
                self._reject_pending(conn, member.id, actor_id, "family deleted")
            member_store.delete_family(conn, family_id)

        logger.info(f"Family {family_id} deleted by {actor_id}")
        return revoked

    def _reject_pending(self, conn, member_id: str, actor_id: str, detail: str) -> int:
        now = self.clock()
        rejected = 0
        for request in request_store.list_pending_involving(conn, member_id):
            if request_store.decide_if_pending(conn, request.id, RequestStatus.REJECTED, now, actor_id, detail):
                self.audit.log(
                    AuditAction.REQUEST_REJECTED,
                    actor_id=actor_id,
                    request_id=request.id,
                    detail=detail,
                    timestamp=now,
                )
                rejected += 1
        return rejected

    @staticmethod
    def _require_member(conn, member_id: str) -> FamilyMember:
        member = member_store.load_family_member(conn, member_id)
        if member is None:
            raise NotFoundError("member", member_id)
        return member
