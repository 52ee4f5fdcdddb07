"""
Resource hierarchy persistence

Spaces, categories, folders and files live in flat id-keyed tables. Parent
lookups return a ResourceRef one level up; walks over the chain are bounded.
"""

import sqlite3
from typing import List, Optional, Union

from famvault.errors import NotFoundError, StructuralConflictError
from famvault.models import Category, File, Folder, Space
from famvault.permissions.types import ResourceRef, ScopeKind
from famvault.utils.clock import from_iso, to_iso

Resource = Union[Space, Category, Folder, File]

_TABLES = {
    ScopeKind.SPACE: "spaces",
    ScopeKind.CATEGORY: "categories",
    ScopeKind.FOLDER: "folders",
    ScopeKind.FILE: "files",
}

# Deepest chain accepted before the walk is treated as corrupt
MAX_HIERARCHY_DEPTH = 256


# ===== Row mappers =====

def _row_to_space(row: sqlite3.Row) -> Space:
    return Space(
        id=row["id"],
        name=row["name"],
        family_id=row["family_id"],
        owner_id=row["owner_id"],
        created_at=from_iso(row["created_at"]),
    )


def _row_to_category(row: sqlite3.Row) -> Category:
    return Category(
        id=row["id"],
        name=row["name"],
        space_id=row["space_id"],
        owner_id=row["owner_id"],
        created_at=from_iso(row["created_at"]),
    )


def _row_to_folder(row: sqlite3.Row) -> Folder:
    return Folder(
        id=row["id"],
        name=row["name"],
        category_id=row["category_id"],
        owner_id=row["owner_id"],
        parent_folder_id=row["parent_folder_id"],
        created_at=from_iso(row["created_at"]),
    )


def _row_to_file(row: sqlite3.Row) -> File:
    return File(
        id=row["id"],
        name=row["name"],
        folder_id=row["folder_id"],
        owner_id=row["owner_id"],
        creator_id=row["creator_id"],
        size=row["size"],
        created_at=from_iso(row["created_at"]),
    )


_MAPPERS = {
    ScopeKind.SPACE: _row_to_space,
    ScopeKind.CATEGORY: _row_to_category,
    ScopeKind.FOLDER: _row_to_folder,
    ScopeKind.FILE: _row_to_file,
}


# ===== Inserts =====

def save_space(conn: sqlite3.Connection, space: Space) -> None:
    conn.execute(
        "INSERT INTO spaces (id, name, family_id, owner_id, created_at) VALUES (?, ?, ?, ?, ?)",
        (space.id, space.name, space.family_id, space.owner_id, to_iso(space.created_at)),
    )


def save_category(conn: sqlite3.Connection, category: Category) -> None:
    conn.execute(
        "INSERT INTO categories (id, name, space_id, owner_id, created_at) VALUES (?, ?, ?, ?, ?)",
        (category.id, category.name, category.space_id, category.owner_id, to_iso(category.created_at)),
    )


def save_folder(conn: sqlite3.Connection, folder: Folder) -> None:
    conn.execute(
        """
        INSERT INTO folders (id, name, category_id, parent_folder_id, owner_id, created_at)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (
            folder.id,
            folder.name,
            folder.category_id,
            folder.parent_folder_id,
            folder.owner_id,
            to_iso(folder.created_at),
        ),
    )


def save_file(conn: sqlite3.Connection, file: File) -> None:
    conn.execute(
        """
        INSERT INTO files (id, name, size, folder_id, owner_id, creator_id, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        (
            file.id,
            file.name,
            file.size,
            file.folder_id,
            file.owner_id,
            file.creator_id,
            to_iso(file.created_at),
        ),
    )


# ===== Lookups =====

def load_resource(conn: sqlite3.Connection, ref: ResourceRef) -> Optional[Resource]:
    row = conn.execute(
        f"SELECT * FROM {_TABLES[ref.kind]} WHERE id = ?", (ref.id,)  # noqa: S608
    ).fetchone()
    return _MAPPERS[ref.kind](row) if row else None


def require_resource(conn: sqlite3.Connection, ref: ResourceRef) -> Resource:
    resource = load_resource(conn, ref)
    if resource is None:
        raise NotFoundError(ref.kind.value, ref.id)
    return resource


def load_resource_owner(conn: sqlite3.Connection, ref: ResourceRef) -> Optional[str]:
    """Owner id of `ref` (None for an unowned space or category); NotFound if absent"""
    return require_resource(conn, ref).owner_id


def parent_of(resource: Resource) -> Optional[ResourceRef]:
    """One step up the containment chain; None for a space"""
    if isinstance(resource, File):
        return ResourceRef(ScopeKind.FOLDER, resource.folder_id)
    if isinstance(resource, Folder):
        if resource.parent_folder_id:
            return ResourceRef(ScopeKind.FOLDER, resource.parent_folder_id)
        return ResourceRef(ScopeKind.CATEGORY, resource.category_id)
    if isinstance(resource, Category):
        return ResourceRef(ScopeKind.SPACE, resource.space_id)
    return None


def load_resource_ancestors(conn: sqlite3.Connection, ref: ResourceRef) -> List[ResourceRef]:
    """
    Ancestor chain of `ref`, immediate parent first, space root last.

    Raises:
        NotFoundError: `ref` or a link in its chain does not exist
        StructuralConflictError: the chain loops or exceeds MAX_HIERARCHY_DEPTH
    """
    ancestors: List[ResourceRef] = []
    seen = {ref}
    current = require_resource(conn, ref)

    while True:
        parent = parent_of(current)
        if parent is None:
            return ancestors
        if parent in seen or len(ancestors) >= MAX_HIERARCHY_DEPTH:
            raise StructuralConflictError(
                f"Hierarchy above {ref} is cyclic or too deep",
                details={"resource": str(ref), "at": str(parent)},
            )
        seen.add(parent)
        ancestors.append(parent)
        current = require_resource(conn, parent)


def family_of_space(conn: sqlite3.Connection, space_id: str) -> Optional[str]:
    row = conn.execute("SELECT family_id FROM spaces WHERE id = ?", (space_id,)).fetchone()
    return row["family_id"] if row else None


def member_owns_folder_in_category(conn: sqlite3.Connection, member_id: str, category_id: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM folders WHERE category_id = ? AND owner_id = ? LIMIT 1",
        (category_id, member_id),
    ).fetchone()
    return row is not None


def update_folder_parent(
    conn: sqlite3.Connection,
    folder_id: str,
    parent_folder_id: Optional[str],
    category_id: str,
) -> int:
    return conn.execute(
        "UPDATE folders SET parent_folder_id = ?, category_id = ? WHERE id = ?",
        (parent_folder_id, category_id, folder_id),
    ).rowcount


def list_subtree_folder_ids(conn: sqlite3.Connection, folder_id: str) -> List[str]:
    """Ids of every folder beneath `folder_id` (breadth first, bounded)"""
    found: List[str] = []
    frontier = [folder_id]
    seen = {folder_id}
    while frontier:
        placeholders = ", ".join("?" * len(frontier))
        rows = conn.execute(
            f"SELECT id FROM folders WHERE parent_folder_id IN ({placeholders})",  # noqa: S608
            frontier,
        ).fetchall()
        frontier = []
        for row in rows:
            if row["id"] in seen:
                raise StructuralConflictError(
                    f"Folder tree under {folder_id} is cyclic",
                    details={"folder_id": folder_id, "at": row["id"]},
                )
            seen.add(row["id"])
            found.append(row["id"])
            frontier.append(row["id"])
        if len(found) > MAX_HIERARCHY_DEPTH * 64:
            raise StructuralConflictError(
                f"Folder tree under {folder_id} is too large to move",
                details={"folder_id": folder_id},
            )
    return found


def update_folders_category(conn: sqlite3.Connection, folder_ids: List[str], category_id: str) -> None:
    if not folder_ids:
        return
    placeholders = ", ".join("?" * len(folder_ids))
    conn.execute(
        f"UPDATE folders SET category_id = ? WHERE id IN ({placeholders})",  # noqa: S608
        [category_id, *folder_ids],
    )


def reassign_owner(conn: sqlite3.Connection, from_member_id: str, to_member_id: str) -> int:
    """Move ownership of every resource held by one member to another"""
    moved = 0
    for table in _TABLES.values():
        moved += conn.execute(
            f"UPDATE {table} SET owner_id = ? WHERE owner_id = ?",  # noqa: S608
            (to_member_id, from_member_id),
        ).rowcount
    return moved
