"""
Module: test_family_members.py
Purpose: Family membership service

Coverage:
- Member creation and the minor check
- Role changes (admin only, no self-edit, admin floor)
- Member removal is admin only, revokes their permissions, rejects their
  pending requests and hands their resources to the removing admin
- Family deletion
"""

from datetime import date

import pytest

from famvault.errors import (
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from famvault.models import FamilyRole
from famvault.permissions import roles
from famvault.permissions.types import AuditAction, PermissionKind, RequestStatus, ResourceRef, ScopeKind
from famvault.services.family import add_member, create_family
from famvault.storage import members as member_store


@pytest.fixture
def members(service):
    return service.members


class TestAddMember:

    def test_minor_cannot_be_admin(self, db, household):
        with pytest.raises(ValidationError):
            add_member(db, household.family.id, "Kid", is_admin=True, birth_date=date(2020, 1, 1))

    def test_minor_as_ordinary_member(self, db, household):
        kid = add_member(db, household.family.id, "Kid", birth_date=date(2020, 1, 1))
        assert kid.role == FamilyRole.ORDINARY

    def test_unknown_family(self, db):
        with pytest.raises(NotFoundError):
            add_member(db, "no-such-family", "Nobody")


class TestListMembers:

    def test_manager_sees_everyone(self, members, household):
        assert len(members.list_members(household.responsible.id)) == 4

    def test_ordinary_sees_only_themself(self, members, household):
        assert [m.id for m in members.list_members(household.member.id)] == [household.member.id]


class TestRoleChanges:

    def test_admin_promotes_member(self, members, household):
        updated = members.change_member_role(household.admin.id, household.member.id, FamilyRole.ADMIN)
        assert updated.role == FamilyRole.ADMIN

    def test_responsible_cannot_change_roles(self, members, household):
        with pytest.raises(PermissionDeniedError):
            members.change_member_role(household.responsible.id, household.member.id, FamilyRole.RESPONSIBLE)

    def test_no_self_demotion(self, members, household):
        with pytest.raises(PermissionDeniedError):
            members.change_member_role(household.admin.id, household.admin.id, FamilyRole.ORDINARY)

    def test_demote_one_of_two_admins(self, members, household):
        second = members.change_member_role(household.admin.id, household.member.id, FamilyRole.ADMIN)

        demoted = members.change_member_role(second.id, household.admin.id, FamilyRole.ORDINARY)

        assert demoted.role == FamilyRole.ORDINARY
        # The remaining admin can no longer be demoted by the former one
        with pytest.raises(PermissionDeniedError):
            members.change_member_role(household.admin.id, second.id, FamilyRole.ORDINARY)

    def test_minor_cannot_be_promoted(self, db, members, household):
        kid = add_member(db, household.family.id, "Kid", birth_date=date(2020, 1, 1))
        with pytest.raises(ValidationError):
            members.change_member_role(household.admin.id, kid.id, FamilyRole.RESPONSIBLE)

    def test_cross_family(self, members, household, other_household):
        with pytest.raises(PermissionDeniedError):
            members.change_member_role(other_household.admin.id, household.member.id, FamilyRole.ADMIN)


class TestAdminFloor:
    """A family with members always keeps at least one admin"""

    def test_one_admin_three_members(self, db, service):
        family = create_family(db, "Small")
        admin = add_member(db, family.id, "Ann", is_admin=True)
        add_member(db, family.id, "Rob", is_responsible=True)
        other = add_member(db, family.id, "Max")

        with db.read() as conn:
            current = member_store.list_family_members(conn, family.id)
        assert roles.can_remove_member(admin, current) is False

        service.members.change_member_role(admin.id, other.id, FamilyRole.ADMIN)

        with db.read() as conn:
            current = member_store.list_family_members(conn, family.id)
        assert roles.can_remove_member(admin, current) is True


class TestRemoveMember:

    def test_removal_revokes_permissions(self, service, members, household):
        held = service.store.grant(
            household.owner.id, household.member.id, ScopeKind.FILE, household.file.id, PermissionKind.READ
        )

        revoked = members.remove_member(household.admin.id, household.member.id)

        assert revoked == [held.id]
        assert service.store.get(held.id).active is False
        trail = service.audit.trail_for(held.id)
        assert trail[-1].action == AuditAction.REVOKED
        assert trail[-1].detail == "member removed"
        with pytest.raises(NotFoundError):
            members.list_members(household.member.id)

    def test_responsible_cannot_remove_ordinary(self, members, household):
        with pytest.raises(PermissionDeniedError):
            members.remove_member(household.responsible.id, household.owner.id)

    def test_responsible_cannot_remove_admin(self, members, household):
        with pytest.raises(PermissionDeniedError):
            members.remove_member(household.responsible.id, household.admin.id)

    def test_ordinary_cannot_remove(self, members, household):
        with pytest.raises(PermissionDeniedError):
            members.remove_member(household.member.id, household.owner.id)

    def test_self_removal_refused(self, members, household):
        with pytest.raises(PermissionDeniedError):
            members.remove_member(household.admin.id, household.admin.id)

    def test_admin_removes_other_admin(self, members, household):
        second = members.change_member_role(household.admin.id, household.responsible.id, FamilyRole.ADMIN)

        members.remove_member(household.admin.id, second.id)

        assert [m.role for m in members.list_members(household.admin.id)].count(FamilyRole.ADMIN) == 1


class TestDeleteFamily:

    def test_admin_deletes_family(self, service, members, household):
        service.store.grant(
            household.owner.id, household.member.id, ScopeKind.FILE, household.file.id, PermissionKind.READ
        )

        assert members.delete_family(household.admin.id, household.family.id) == 1
        assert service.audit.count_logs(action=AuditAction.REVOKED) == 1
        with pytest.raises(NotFoundError):
            members.list_members(household.admin.id)

    def test_responsible_cannot_delete_family(self, members, household):
        with pytest.raises(PermissionDeniedError):
            members.delete_family(household.responsible.id, household.family.id)


class TestRemovalCleanup:
    """Nothing pending or owned is left pointing at a removed member"""

    def _request(self, service, household):
        return service.workflow.create(
            household.owner.id, household.member.id, ScopeKind.FILE, household.file.id, PermissionKind.WRITE
        ).request

    def test_beneficiary_requests_rejected(self, service, members, household):
        request = self._request(service, household)

        members.remove_member(household.admin.id, household.member.id)

        assert service.workflow.list_pending_for(household.owner.id) == []
        rejected = service.workflow.get(request.id)
        assert rejected.status == RequestStatus.REJECTED
        assert rejected.decided_by == household.admin.id
        assert rejected.admin_comment == "member removed"
        trail = service.audit.trail_for_request(request.id)
        assert trail[-1].action == AuditAction.REQUEST_REJECTED
        assert trail[-1].detail == "member removed"

    def test_owner_requests_rejected(self, service, members, household):
        request = self._request(service, household)

        members.remove_member(household.admin.id, household.owner.id)

        assert service.workflow.get(request.id).status == RequestStatus.REJECTED
        assert service.workflow.list_pending_for(household.admin.id) == []

    def test_resources_pass_to_removing_admin(self, service, members, household):
        members.remove_member(household.admin.id, household.owner.id)

        for ref in (
            ResourceRef(ScopeKind.CATEGORY, household.category.id),
            ResourceRef(ScopeKind.FOLDER, household.folder.id),
            ResourceRef(ScopeKind.FOLDER, household.subfolder.id),
            ResourceRef(ScopeKind.FILE, household.file.id),
        ):
            assert service.hierarchy.owner_of(ref) == household.admin.id

    def test_refused_removal_keeps_requests(self, service, members, household):
        request = self._request(service, household)

        with pytest.raises(PermissionDeniedError):
            members.remove_member(household.responsible.id, household.member.id)

        assert service.workflow.get(request.id).status == RequestStatus.PENDING
