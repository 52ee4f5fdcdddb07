"""
Role & Ownership Rules

Pure predicates over family role. They never consult delegation state and
never touch storage: callers pass freshly loaded member records.
"""

from datetime import date
from typing import Iterable, Optional

from famvault.models import FamilyMember, FamilyRole
from famvault.permissions.types import ActivePermission


def role_of(member: FamilyMember) -> FamilyRole:
    return member.role


def can_manage_family(actor: FamilyMember) -> bool:
    """Admin or responsible"""
    return actor.role in (FamilyRole.ADMIN, FamilyRole.RESPONSIBLE)


def can_manage_permissions(actor: FamilyMember) -> bool:
    """Admin only"""
    return actor.role == FamilyRole.ADMIN


def can_see_all_files(actor: FamilyMember) -> bool:
    return actor.role in (FamilyRole.ADMIN, FamilyRole.RESPONSIBLE)


def can_access_member(actor: FamilyMember, target: FamilyMember) -> bool:
    if actor.id == target.id:
        return True
    return actor.role in (FamilyRole.ADMIN, FamilyRole.RESPONSIBLE)


def can_modify_member(actor: FamilyMember, target: FamilyMember) -> bool:
    if actor.id == target.id:
        return True
    if actor.role == FamilyRole.ADMIN:
        return True
    return actor.role == FamilyRole.RESPONSIBLE and target.role != FamilyRole.ADMIN


def can_change_role(actor: FamilyMember, target: FamilyMember) -> bool:
    """No self role-edit; only admins change roles"""
    if actor.id == target.id:
        return False
    return actor.role == FamilyRole.ADMIN


def can_remove_member(target: FamilyMember, all_members: Iterable[FamilyMember]) -> bool:
    """
    False only when `target` is the sole admin among `all_members`.

    Args:
        target: Member about to be removed (or demoted)
        all_members: Current members of the target's family

    Returns:
        True if removing `target` keeps at least one admin
    """
    if not target.is_admin:
        return True
    other_admins = [m for m in all_members if m.is_admin and m.id != target.id]
    return len(other_admins) > 0


def can_decide_request(actor: FamilyMember, owner: Optional[FamilyMember]) -> bool:
    """Owner, or an admin/responsible of the owner's family, may approve or reject"""
    if owner is None:
        return False
    if actor.id == owner.id:
        return True
    return actor.family_id == owner.family_id and can_manage_family(actor)


def can_revoke_permission(
    actor: FamilyMember,
    permission: ActivePermission,
    owner: Optional[FamilyMember],
) -> bool:
    """Owner, the beneficiary relinquishing it, or an admin of the owner's family"""
    if actor.id in (permission.owner_id, permission.beneficiary_id):
        return True
    if owner is None:
        return False
    return actor.family_id == owner.family_id and can_manage_permissions(actor)


def can_hold_elevated_role(member: FamilyMember, today: date, adult_age: int = 18) -> bool:
    """Minors may be neither admin nor responsible; unknown birth date is allowed"""
    age = member.age_on(today)
    return age is None or age >= adult_age
