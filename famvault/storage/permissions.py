"""
Active permission persistence

Permissions are inserted active and only ever flipped to inactive through a
conditional UPDATE, so concurrent deactivations are counted once.
"""

import sqlite3
from datetime import datetime
from typing import List, Optional

from famvault.permissions.types import ActivePermission, PermissionKind, ScopeKind
from famvault.utils.clock import from_iso, to_iso


def _row_to_permission(row: sqlite3.Row) -> ActivePermission:
    return ActivePermission(
        id=row["id"],
        owner_id=row["owner_id"],
        beneficiary_id=row["beneficiary_id"],
        scope_kind=ScopeKind(row["scope_kind"]),
        target_id=row["target_id"],
        permission_kind=PermissionKind(row["permission_kind"]),
        granted_at=from_iso(row["granted_at"]),
        expires_at=from_iso(row["expires_at"]),
        active=bool(row["active"]),
        request_id=row["request_id"],
    )


def save_active_permission(conn: sqlite3.Connection, permission: ActivePermission) -> None:
    conn.execute(
        """
        INSERT INTO active_permissions
        (id, owner_id, beneficiary_id, scope_kind, target_id, permission_kind,
         granted_at, expires_at, active, request_id)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            permission.id,
            permission.owner_id,
            permission.beneficiary_id,
            permission.scope_kind.value,
            permission.target_id,
            permission.permission_kind.value,
            to_iso(permission.granted_at),
            to_iso(permission.expires_at),
            int(permission.active),
            permission.request_id,
        ),
    )


def load_active_permission(conn: sqlite3.Connection, permission_id: str) -> Optional[ActivePermission]:
    row = conn.execute("SELECT * FROM active_permissions WHERE id = ?", (permission_id,)).fetchone()
    return _row_to_permission(row) if row else None


def deactivate_if_active(conn: sqlite3.Connection, permission_id: str) -> bool:
    """Flip active -> inactive; False if another caller already did"""
    cursor = conn.execute(
        "UPDATE active_permissions SET active = 0 WHERE id = ? AND active = 1",
        (permission_id,),
    )
    return cursor.rowcount == 1


def list_effective_for_pair(
    conn: sqlite3.Connection,
    beneficiary_id: str,
    owner_id: str,
    kinds: List[str],
    now: datetime,
) -> List[ActivePermission]:
    """Active, unexpired grants from `owner_id` to `beneficiary_id` of any of `kinds`"""
    placeholders = ", ".join("?" * len(kinds))
    rows = conn.execute(
        f"""
        SELECT * FROM active_permissions
        WHERE beneficiary_id = ? AND owner_id = ? AND active = 1
          AND (expires_at IS NULL OR expires_at > ?)
          AND permission_kind IN ({placeholders})
        ORDER BY granted_at, id
        """,  # noqa: S608
        [beneficiary_id, owner_id, to_iso(now), *kinds],
    ).fetchall()
    return [_row_to_permission(row) for row in rows]


def list_due_for_expiry(conn: sqlite3.Connection, now: datetime) -> List[str]:
    rows = conn.execute(
        """
        SELECT id FROM active_permissions
        WHERE active = 1 AND expires_at IS NOT NULL AND expires_at <= ?
        ORDER BY expires_at, id
        """,
        (to_iso(now),),
    ).fetchall()
    return [row["id"] for row in rows]


def list_for_member(
    conn: sqlite3.Connection,
    member_id: str,
    as_owner: bool,
    include_inactive: bool = False,
) -> List[ActivePermission]:
    column = "owner_id" if as_owner else "beneficiary_id"
    query = f"SELECT * FROM active_permissions WHERE {column} = ?"  # noqa: S608
    if not include_inactive:
        query += " AND active = 1"
    query += " ORDER BY granted_at, id"
    rows = conn.execute(query, (member_id,)).fetchall()
    return [_row_to_permission(row) for row in rows]


def list_active_involving(conn: sqlite3.Connection, member_id: str) -> List[str]:
    """Ids of active permissions where the member is owner or beneficiary"""
    rows = conn.execute(
        """
        SELECT id FROM active_permissions
        WHERE active = 1 AND (owner_id = ? OR beneficiary_id = ?)
        ORDER BY granted_at, id
        """,
        (member_id, member_id),
    ).fetchall()
    return [row["id"] for row in rows]


def list_expiring_between(
    conn: sqlite3.Connection,
    start: datetime,
    end: datetime,
    member_id: Optional[str] = None,
) -> List[ActivePermission]:
    query = """
        SELECT * FROM active_permissions
        WHERE active = 1 AND expires_at IS NOT NULL AND expires_at > ? AND expires_at <= ?
    """
    params: list = [to_iso(start), to_iso(end)]
    if member_id is not None:
        query += " AND (owner_id = ? OR beneficiary_id = ?)"
        params.extend([member_id, member_id])
    query += " ORDER BY expires_at, id"
    rows = conn.execute(query, params).fetchall()
    return [_row_to_permission(row) for row in rows]
