"""
Module: test_hierarchy.py
Purpose: Resource hierarchy index and resource creation

Coverage:
- Ancestor chains (immediate parent first, space last)
- Ownership, including unowned categories
- Folder moves: cycle rejection leaves the tree unchanged
- Cross-family structural checks
"""

import pytest

from famvault.errors import NotFoundError, StructuralConflictError
from famvault.permissions.types import ResourceRef, ScopeKind
from famvault.services.vault import (
    ResourceHierarchyIndex,
    create_category,
    create_folder,
    create_space,
)


@pytest.fixture
def index(db):
    return ResourceHierarchyIndex(db)


def _ref(kind, resource):
    return ResourceRef(kind, resource.id)


class TestAncestors:

    def test_file_chain(self, index, household):
        chain = index.ancestors_of(_ref(ScopeKind.FILE, household.file))

        assert chain == [
            _ref(ScopeKind.FOLDER, household.subfolder),
            _ref(ScopeKind.FOLDER, household.folder),
            _ref(ScopeKind.CATEGORY, household.category),
            _ref(ScopeKind.SPACE, household.space),
        ]

    def test_space_has_no_ancestors(self, index, household):
        assert index.ancestors_of(_ref(ScopeKind.SPACE, household.space)) == []

    def test_is_descendant(self, index, household):
        file_ref = _ref(ScopeKind.FILE, household.file)
        assert index.is_descendant(_ref(ScopeKind.CATEGORY, household.category), file_ref)
        assert not index.is_descendant(file_ref, _ref(ScopeKind.CATEGORY, household.category))

    def test_family_of(self, index, household):
        assert index.family_of(_ref(ScopeKind.FILE, household.file)) == household.family.id

    def test_unknown_resource(self, index):
        with pytest.raises(NotFoundError):
            index.ancestors_of(ResourceRef(ScopeKind.FOLDER, "missing"))
        assert not index.exists(ResourceRef(ScopeKind.FOLDER, "missing"))


class TestOwnership:

    def test_owner_of(self, index, household):
        assert index.owner_of(_ref(ScopeKind.FILE, household.file)) == household.owner.id
        assert index.owner_of(_ref(ScopeKind.SPACE, household.space)) is None

    def test_unowned_category_owned_through_folder(self, db, index, household):
        category = create_category(db, household.space.id, "Shared")
        create_folder(db, category.id, "Mine", owner_id=household.member.id)

        assert index.owns(household.member.id, _ref(ScopeKind.CATEGORY, category))
        assert not index.owns(household.owner.id, _ref(ScopeKind.CATEGORY, category))

    def test_explicit_owner(self, index, household):
        assert index.owns(household.owner.id, _ref(ScopeKind.FOLDER, household.folder))
        assert not index.owns(household.member.id, _ref(ScopeKind.FOLDER, household.folder))


class TestFolderMoves:

    def test_move_under_descendant_rejected(self, index, household):
        """Moving a folder under its own child must fail and change nothing"""
        before = index.ancestors_of(_ref(ScopeKind.FILE, household.file))

        with pytest.raises(StructuralConflictError):
            index.move_folder(household.folder.id, household.subfolder.id)

        assert index.ancestors_of(_ref(ScopeKind.FILE, household.file)) == before

    def test_move_under_itself_rejected(self, index, household):
        with pytest.raises(StructuralConflictError):
            index.move_folder(household.folder.id, household.folder.id)

    def test_move_to_category_root(self, index, household):
        moved = index.move_folder(household.subfolder.id, None)

        assert moved.parent_folder_id is None
        assert index.ancestors_of(_ref(ScopeKind.FILE, household.file)) == [
            _ref(ScopeKind.FOLDER, household.subfolder),
            _ref(ScopeKind.CATEGORY, household.category),
            _ref(ScopeKind.SPACE, household.space),
        ]

    def test_move_to_other_category_carries_subtree(self, db, index, household):
        archive = create_category(db, household.space.id, "Archive", owner_id=household.owner.id)
        target = create_folder(db, archive.id, "Old", owner_id=household.owner.id)

        index.move_folder(household.folder.id, target.id)

        chain = index.ancestors_of(_ref(ScopeKind.FILE, household.file))
        assert _ref(ScopeKind.CATEGORY, archive) in chain
        assert _ref(ScopeKind.CATEGORY, household.category) not in chain

    def test_move_across_families_rejected(self, index, household, other_household):
        with pytest.raises(StructuralConflictError):
            index.move_folder(household.folder.id, other_household.folder.id)


class TestResourceCreation:

    def test_parent_in_other_category_rejected(self, db, household):
        other = create_category(db, household.space.id, "Other", owner_id=household.owner.id)
        with pytest.raises(StructuralConflictError):
            create_folder(db, other.id, "Bad", owner_id=household.owner.id, parent_folder_id=household.folder.id)

    def test_owner_from_other_family_rejected(self, db, household, other_household):
        with pytest.raises(StructuralConflictError):
            create_folder(db, household.category.id, "Intruder", owner_id=other_household.admin.id)

    def test_unknown_family(self, db):
        with pytest.raises(NotFoundError):
            create_space(db, "no-such-family", "Nowhere")
