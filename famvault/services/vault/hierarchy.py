"""
Resource Hierarchy Index

Read view over Space -> Category -> Folder -> File containment and ownership,
plus the one structural mutation that can introduce a cycle (folder moves).
"""

import logging
from typing import List, Optional

from famvault.db import DatabaseConnection
from famvault.errors import NotFoundError, StructuralConflictError
from famvault.models import Category, Folder
from famvault.permissions.types import ResourceRef, ScopeKind
from famvault.storage import resources as resource_store

logger = logging.getLogger(__name__)


class ResourceHierarchyIndex:
    """
    Ownership and ancestry lookups keyed by ResourceRef

    Every walk is bounded; a chain that loops or runs past
    MAX_HIERARCHY_DEPTH raises StructuralConflictError instead of being
    truncated.
    """

    def __init__(self, db: DatabaseConnection):
        self.db = db

    def exists(self, ref: ResourceRef) -> bool:
        with self.db.read("resource_exists") as conn:
            return resource_store.load_resource(conn, ref) is not None

    def owner_of(self, ref: ResourceRef) -> Optional[str]:
        """Owner member id, None for an unowned space or category"""
        with self.db.read("load_resource_owner") as conn:
            return resource_store.load_resource_owner(conn, ref)

    def ancestors_of(self, ref: ResourceRef) -> List[ResourceRef]:
        """Ordered from immediate parent to the space root"""
        with self.db.read("load_resource_ancestors") as conn:
            return resource_store.load_resource_ancestors(conn, ref)

    def is_descendant(self, candidate_ancestor: ResourceRef, ref: ResourceRef) -> bool:
        """True if `candidate_ancestor` is a strict ancestor of `ref`"""
        return candidate_ancestor in self.ancestors_of(ref)

    def space_of(self, ref: ResourceRef) -> ResourceRef:
        if ref.kind == ScopeKind.SPACE:
            with self.db.read("load_space") as conn:
                resource_store.require_resource(conn, ref)
            return ref
        return self.ancestors_of(ref)[-1]

    def family_of(self, ref: ResourceRef) -> str:
        space_ref = self.space_of(ref)
        with self.db.read("load_space") as conn:
            family_id = resource_store.family_of_space(conn, space_ref.id)
        if family_id is None:
            raise NotFoundError("space", space_ref.id)
        return family_id

    def owns(self, member_id: str, ref: ResourceRef) -> bool:
        """
        Ownership test used when granting.

        A category with no explicit owner is considered owned by any member
        who owns a folder inside it.
        """
        with self.db.read("check_ownership") as conn:
            resource = resource_store.require_resource(conn, ref)
            if resource.owner_id == member_id:
                return True
            if isinstance(resource, Category) and resource.owner_id is None:
                return resource_store.member_owns_folder_in_category(conn, member_id, resource.id)
            return False

    def move_folder(self, folder_id: str, new_parent_id: Optional[str]) -> Folder:
        """
        Re-parent a folder, or move it to its category root when
        `new_parent_id` is None.

        The proposed ancestor chain is walked before anything is written; a
        move under the folder itself or one of its descendants raises
        StructuralConflictError and leaves the hierarchy unchanged.

        Returns:
            The folder as stored after the move
        """
        folder_ref = ResourceRef(ScopeKind.FOLDER, folder_id)

        with self.db.write_transaction("move_folder") as conn:
            folder = resource_store.require_resource(conn, folder_ref)

            if new_parent_id is None:
                target_category = folder.category_id
            else:
                if new_parent_id == folder_id:
                    raise StructuralConflictError(
                        "A folder cannot be its own parent",
                        details={"folder_id": folder_id},
                    )
                parent_ref = ResourceRef(ScopeKind.FOLDER, new_parent_id)
                parent = resource_store.require_resource(conn, parent_ref)
                proposed_chain = [parent_ref] + resource_store.load_resource_ancestors(conn, parent_ref)
                if folder_ref in proposed_chain:
                    raise StructuralConflictError(
                        f"Moving folder {folder_id} under {new_parent_id} would create a cycle",
                        details={"folder_id": folder_id, "new_parent_id": new_parent_id},
                    )
                if self._family_via(conn, proposed_chain) != self._family_via(
                    conn, resource_store.load_resource_ancestors(conn, folder_ref)
                ):
                    raise StructuralConflictError(
                        "Folders cannot be moved across families",
                        details={"folder_id": folder_id, "new_parent_id": new_parent_id},
                    )
                target_category = parent.category_id

            resource_store.update_folder_parent(conn, folder_id, new_parent_id, target_category)
            if target_category != folder.category_id:
                descendants = resource_store.list_subtree_folder_ids(conn, folder_id)
                resource_store.update_folders_category(conn, descendants, target_category)

            moved = resource_store.require_resource(conn, folder_ref)

        logger.info(f"Moved folder {folder_id} under {new_parent_id or 'category root'}")
        return moved

    @staticmethod
    def _family_via(conn, chain: List[ResourceRef]) -> Optional[str]:
        space_ref = chain[-1]
        return resource_store.family_of_space(conn, space_ref.id)

