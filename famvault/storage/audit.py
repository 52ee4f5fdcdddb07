"""
Audit log persistence

Append-only. `seq` is assigned by SQLite AUTOINCREMENT and breaks timestamp ties.
Each entry is stamped with the family it belongs to when it is appended, so
family-scoped queries keep working after members are removed.
"""

import sqlite3
import uuid
from datetime import datetime
from typing import List, Optional

from famvault.permissions.types import AuditAction, AuditLogEntry
from famvault.utils.clock import from_iso, to_iso

# Acting member first, then the owner behind the permission or request
_ENTRY_FAMILY = """
SELECT COALESCE(
    (SELECT family_id FROM family_members WHERE id = :actor_id),
    (SELECT m.family_id FROM active_permissions p
        JOIN family_members m ON m.id = p.owner_id WHERE p.id = :permission_id),
    (SELECT m.family_id FROM delegation_requests r
        JOIN family_members m ON m.id = r.owner_id WHERE r.id = :request_id)
)
"""


def _row_to_entry(row: sqlite3.Row) -> AuditLogEntry:
    return AuditLogEntry(
        id=row["id"],
        seq=row["seq"],
        action=AuditAction(row["action"]),
        actor_id=row["actor_id"],
        timestamp=from_iso(row["timestamp"]),
        permission_id=row["permission_id"],
        request_id=row["request_id"],
        detail=row["detail"],
        family_id=row["family_id"],
    )


def resolve_entry_family(
    conn: sqlite3.Connection,
    actor_id: Optional[str],
    permission_id: Optional[str],
    request_id: Optional[str],
) -> Optional[str]:
    return conn.execute(
        _ENTRY_FAMILY,
        {"actor_id": actor_id, "permission_id": permission_id, "request_id": request_id},
    ).fetchone()[0]


def append_audit_entry(
    conn: sqlite3.Connection,
    action: AuditAction,
    actor_id: Optional[str],
    timestamp: datetime,
    permission_id: Optional[str] = None,
    request_id: Optional[str] = None,
    detail: Optional[str] = None,
) -> AuditLogEntry:
    entry_id = str(uuid.uuid4())
    family_id = resolve_entry_family(conn, actor_id, permission_id, request_id)
    cursor = conn.execute(
        """
        INSERT INTO audit_log (id, permission_id, request_id, action, actor_id, timestamp, detail, family_id)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (entry_id, permission_id, request_id, action.value, actor_id, to_iso(timestamp), detail, family_id),
    )
    return AuditLogEntry(
        id=entry_id,
        seq=cursor.lastrowid,
        action=action,
        actor_id=actor_id,
        timestamp=from_iso(to_iso(timestamp)),
        permission_id=permission_id,
        request_id=request_id,
        detail=detail,
        family_id=family_id,
    )


def query_entries(
    conn: sqlite3.Connection,
    where: str = "1=1",
    params: Optional[list] = None,
    descending: bool = False,
    limit: Optional[int] = None,
    offset: int = 0,
) -> List[AuditLogEntry]:
    direction = "DESC" if descending else "ASC"
    query = f"SELECT * FROM audit_log WHERE {where} ORDER BY timestamp {direction}, seq {direction}"  # noqa: S608
    query_params = list(params or [])
    if limit is not None:
        query += " LIMIT ? OFFSET ?"
        query_params.extend([limit, offset])
    rows = conn.execute(query, query_params).fetchall()
    return [_row_to_entry(row) for row in rows]


def count_entries(conn: sqlite3.Connection, where: str = "1=1", params: Optional[list] = None) -> int:
    return conn.execute(
        f"SELECT COUNT(*) FROM audit_log WHERE {where}", list(params or [])  # noqa: S608
    ).fetchone()[0]


def has_entry_for_request(conn: sqlite3.Connection, request_id: str, action: AuditAction) -> bool:
    row = conn.execute(
        "SELECT 1 FROM audit_log WHERE request_id = ? AND action = ? LIMIT 1",
        (request_id, action.value),
    ).fetchone()
    return row is not None
