"""
Vault Resource Operations

Creation of spaces, categories, folders and files. Byte storage is out of
scope; a File row records metadata only.
"""

import logging
import uuid
from datetime import datetime
from typing import Optional

from famvault.db import DatabaseConnection
from famvault.errors import NotFoundError, StructuralConflictError
from famvault.models import Category, File, Folder, Space
from famvault.permissions.types import ResourceRef, ScopeKind
from famvault.storage import members as member_store
from famvault.storage import resources as resource_store
from famvault.utils.clock import utcnow

logger = logging.getLogger(__name__)


def create_space(
    db: DatabaseConnection,
    family_id: str,
    name: str,
    owner_id: Optional[str] = None,
    created_at: Optional[datetime] = None,
) -> Space:
    """
    Create a space in a family

    Args:
        db: Database connection manager
        family_id: Family the space belongs to
        name: Display name
        owner_id: Optional owning member (must belong to the family)
        created_at: Creation time, defaults to now

    Returns:
        Space object
    """
    space = Space(
        id=str(uuid.uuid4()),
        name=name,
        family_id=family_id,
        owner_id=owner_id,
        created_at=created_at or utcnow(),
    )

    with db.write_transaction("create_space") as conn:
        if member_store.load_family(conn, family_id) is None:
            raise NotFoundError("family", family_id)
        if owner_id is not None:
            _require_member_of(conn, owner_id, family_id)
        resource_store.save_space(conn, space)

    logger.info(f"Created space {space.id} in family {family_id}")
    return space


def create_category(
    db: DatabaseConnection,
    space_id: str,
    name: str,
    owner_id: Optional[str] = None,
    created_at: Optional[datetime] = None,
) -> Category:
    category = Category(
        id=str(uuid.uuid4()),
        name=name,
        space_id=space_id,
        owner_id=owner_id,
        created_at=created_at or utcnow(),
    )

    with db.write_transaction("create_category") as conn:
        space = resource_store.require_resource(conn, ResourceRef(ScopeKind.SPACE, space_id))
        if owner_id is not None:
            _require_member_of(conn, owner_id, space.family_id)
        resource_store.save_category(conn, category)

    logger.info(f"Created category {category.id} in space {space_id}")
    return category


def create_folder(
    db: DatabaseConnection,
    category_id: str,
    name: str,
    owner_id: str,
    parent_folder_id: Optional[str] = None,
    created_at: Optional[datetime] = None,
) -> Folder:
    """
    Create a folder at a category root or under a parent folder

    The parent, when given, must live in the same category.
    """
    folder = Folder(
        id=str(uuid.uuid4()),
        name=name,
        category_id=category_id,
        owner_id=owner_id,
        parent_folder_id=parent_folder_id,
        created_at=created_at or utcnow(),
    )

    with db.write_transaction("create_folder") as conn:
        category_ref = ResourceRef(ScopeKind.CATEGORY, category_id)
        resource_store.require_resource(conn, category_ref)
        space_ref = resource_store.load_resource_ancestors(conn, category_ref)[-1]
        _require_member_of(conn, owner_id, resource_store.family_of_space(conn, space_ref.id))

        if parent_folder_id is not None:
            parent = resource_store.require_resource(conn, ResourceRef(ScopeKind.FOLDER, parent_folder_id))
            if parent.category_id != category_id:
                raise StructuralConflictError(
                    "Parent folder belongs to a different category",
                    details={"parent_folder_id": parent_folder_id, "category_id": category_id},
                )
        resource_store.save_folder(conn, folder)

    logger.info(f"Created folder {folder.id} in category {category_id}")
    return folder


def create_file(
    db: DatabaseConnection,
    folder_id: str,
    name: str,
    owner_id: str,
    creator_id: Optional[str] = None,
    size: int = 0,
    created_at: Optional[datetime] = None,
) -> File:
    file = File(
        id=str(uuid.uuid4()),
        name=name,
        folder_id=folder_id,
        owner_id=owner_id,
        creator_id=creator_id or owner_id,
        size=size,
        created_at=created_at or utcnow(),
    )

    with db.write_transaction("create_file") as conn:
        folder_ref = ResourceRef(ScopeKind.FOLDER, folder_id)
        resource_store.require_resource(conn, folder_ref)
        space_ref = resource_store.load_resource_ancestors(conn, folder_ref)[-1]
        _require_member_of(conn, owner_id, resource_store.family_of_space(conn, space_ref.id))
        resource_store.save_file(conn, file)

    logger.info(f"Created file {file.id} in folder {folder_id}")
    return file


def _require_member_of(conn, member_id: str, family_id: Optional[str]) -> None:
    member = member_store.load_family_member(conn, member_id)
    if member is None:
        raise NotFoundError("member", member_id)
    if member.family_id != family_id:
        raise StructuralConflictError(
            "Resource owner must belong to the resource's family",
            details={"member_id": member_id, "family_id": family_id},
        )
