"""
Module: test_permission_store.py
Purpose: Active permission grant, coverage, revocation and expiry

Coverage:
- Scope inheritance down a 2-level folder tree
- Kind ranking (write covers read, not delete)
- Grant validation (ownership, self, cross-family, expiry)
- Revocation is permanent
- Sweep idempotence
"""

from datetime import timedelta

import pytest

from famvault.errors import (
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from famvault.permissions.types import AuditAction, PermissionKind, ResourceRef, ScopeKind


@pytest.fixture
def store(service):
    return service.store


@pytest.fixture
def file_ref(household):
    return ResourceRef(ScopeKind.FILE, household.file.id)


class TestCoverage:

    def test_category_grant_reaches_leaf_file(self, store, household, file_ref, clock):
        """Read on a Category implies Read on every folder and file beneath it"""
        store.grant(
            household.owner.id,
            household.member.id,
            ScopeKind.CATEGORY,
            household.category.id,
            PermissionKind.READ,
        )

        assert store.is_granted(household.member.id, file_ref, PermissionKind.READ, clock())
        assert store.is_granted(
            household.member.id, ResourceRef(ScopeKind.FOLDER, household.subfolder.id), PermissionKind.READ
        )

    def test_folder_grant_does_not_reach_parent(self, store, household):
        store.grant(
            household.owner.id,
            household.member.id,
            ScopeKind.FOLDER,
            household.subfolder.id,
            PermissionKind.READ,
        )

        assert not store.is_granted(
            household.member.id, ResourceRef(ScopeKind.FOLDER, household.folder.id), PermissionKind.READ
        )

    def test_kind_ranking(self, store, household, file_ref):
        store.grant(household.owner.id, household.member.id, ScopeKind.FILE, household.file.id, PermissionKind.WRITE)

        assert store.is_granted(household.member.id, file_ref, PermissionKind.READ)
        assert store.is_granted(household.member.id, file_ref, PermissionKind.WRITE)
        assert not store.is_granted(household.member.id, file_ref, PermissionKind.DELETE)

    def test_whole_space_grant_covers_owner_resources(self, db, store, household):
        from famvault.services.vault import create_folder

        # Whole-space grants need an admin or responsible owner
        folder = create_folder(db, household.category.id, "Admin stuff", owner_id=household.responsible.id)
        store.grant(household.responsible.id, household.member.id, ScopeKind.SPACE, None, PermissionKind.READ)

        assert store.is_granted(household.member.id, ResourceRef(ScopeKind.FOLDER, folder.id), PermissionKind.READ)
        # Other owners' resources are not covered
        assert not store.is_granted(
            household.member.id, ResourceRef(ScopeKind.FOLDER, household.folder.id), PermissionKind.READ
        )

    def test_grant_from_other_owner_does_not_cover(self, db, store, household, file_ref):
        from famvault.services.vault import create_folder

        create_folder(db, household.category.id, "Bruno", owner_id=household.responsible.id)
        store.grant(household.responsible.id, household.member.id, ScopeKind.SPACE, None, PermissionKind.FULL_CONTROL)

        assert not store.is_granted(household.member.id, file_ref, PermissionKind.READ)


class TestGrantValidation:

    def test_non_owner_cannot_grant(self, store, household):
        with pytest.raises(PermissionDeniedError):
            store.grant(household.member.id, household.admin.id, ScopeKind.FILE, household.file.id, PermissionKind.READ)

    def test_self_grant(self, store, household):
        with pytest.raises(InvalidTransitionError):
            store.grant(household.owner.id, household.owner.id, ScopeKind.FILE, household.file.id, PermissionKind.READ)

    def test_cross_family_beneficiary(self, store, household, other_household):
        with pytest.raises(InvalidTransitionError):
            store.grant(
                household.owner.id, other_household.admin.id, ScopeKind.FILE, household.file.id, PermissionKind.READ
            )

    def test_ordinary_owner_cannot_grant_whole_space(self, store, household):
        with pytest.raises(PermissionDeniedError):
            store.grant(household.owner.id, household.member.id, ScopeKind.SPACE, None, PermissionKind.READ)

    def test_expiry_in_past(self, store, household, clock):
        with pytest.raises(ValidationError):
            store.grant(
                household.owner.id,
                household.member.id,
                ScopeKind.FILE,
                household.file.id,
                PermissionKind.READ,
                expires_at=clock() - timedelta(minutes=1),
            )

    def test_missing_target(self, store, household):
        with pytest.raises(ValidationError):
            store.grant(household.owner.id, household.member.id, ScopeKind.FOLDER, None, PermissionKind.READ)

    def test_unknown_target(self, store, household):
        with pytest.raises(NotFoundError):
            store.grant(household.owner.id, household.member.id, ScopeKind.FILE, "missing", PermissionKind.READ)

    def test_grant_is_audited(self, service, store, household):
        permission = store.grant(
            household.owner.id, household.member.id, ScopeKind.FILE, household.file.id, PermissionKind.READ
        )

        trail = service.audit.trail_for(permission.id)
        assert [e.action for e in trail] == [AuditAction.GRANTED]
        assert trail[0].actor_id == household.owner.id


class TestRevocation:

    def test_revoke_is_permanent(self, store, household, file_ref):
        permission = store.grant(
            household.owner.id, household.member.id, ScopeKind.FILE, household.file.id, PermissionKind.READ
        )

        store.revoke(permission.id, household.owner.id, reason="no longer needed")

        assert not store.is_granted(household.member.id, file_ref, PermissionKind.READ)
        assert store.get(permission.id).active is False
        with pytest.raises(InvalidTransitionError) as exc_info:
            store.revoke(permission.id, household.owner.id)
        assert exc_info.value.status == "inactive"

    def test_beneficiary_may_relinquish(self, store, household):
        permission = store.grant(
            household.owner.id, household.member.id, ScopeKind.FILE, household.file.id, PermissionKind.READ
        )
        assert store.revoke(permission.id, household.member.id).active is False

    def test_responsible_cannot_revoke_others_permission(self, store, household):
        permission = store.grant(
            household.owner.id, household.member.id, ScopeKind.FILE, household.file.id, PermissionKind.READ
        )
        with pytest.raises(PermissionDeniedError):
            store.revoke(permission.id, household.responsible.id)
        assert store.get(permission.id).active is True

    def test_revoke_all_for_member(self, store, household):
        first = store.grant(
            household.owner.id, household.member.id, ScopeKind.FILE, household.file.id, PermissionKind.READ
        )
        second = store.grant(
            household.owner.id, household.member.id, ScopeKind.FOLDER, household.folder.id, PermissionKind.WRITE
        )

        revoked = store.revoke_all_for_member(household.member.id, household.admin.id)

        assert sorted(revoked) == sorted([first.id, second.id])
        assert store.list_for(household.member.id, as_owner=False) == []


class TestExpiry:

    def test_sweep_twice_records_one_expired_entry(self, service, store, household, clock):
        permission = store.grant(
            household.owner.id,
            household.member.id,
            ScopeKind.FILE,
            household.file.id,
            PermissionKind.READ,
            expires_at=clock() + timedelta(hours=1),
        )
        later = clock() + timedelta(hours=2)

        assert store.sweep_expired(later) == 1
        assert store.sweep_expired(later) == 0

        expired = [e for e in service.audit.trail_for(permission.id) if e.action == AuditAction.EXPIRED]
        assert len(expired) == 1
        assert expired[0].actor_id is None

    def test_expired_permission_not_effective_before_sweep(self, store, household, file_ref, clock):
        store.grant(
            household.owner.id,
            household.member.id,
            ScopeKind.FILE,
            household.file.id,
            PermissionKind.READ,
            expires_at=clock() + timedelta(hours=1),
        )

        assert store.is_granted(household.member.id, file_ref, PermissionKind.READ, clock())
        assert not store.is_granted(household.member.id, file_ref, PermissionKind.READ, clock() + timedelta(hours=1))

    def test_expiring_soon(self, store, household, clock):
        soon = store.grant(
            household.owner.id,
            household.member.id,
            ScopeKind.FILE,
            household.file.id,
            PermissionKind.READ,
            expires_at=clock() + timedelta(days=2),
        )
        store.grant(
            household.owner.id,
            household.member.id,
            ScopeKind.FOLDER,
            household.folder.id,
            PermissionKind.READ,
            expires_at=clock() + timedelta(days=30),
        )

        assert [p.id for p in store.expiring_soon(clock(), days=7)] == [soon.id]

    def test_summary_for(self, store, household):
        store.grant(household.owner.id, household.member.id, ScopeKind.FILE, household.file.id, PermissionKind.READ)
        store.grant(household.owner.id, household.member.id, ScopeKind.FOLDER, household.folder.id, PermissionKind.READ)

        summary = store.summary_for(household.member.id)
        assert summary["file"] == 1
        assert summary["folder"] == 1
        assert summary["space"] == 0
