"""
Delegation request persistence

Requests are inserted once and only their decision columns are written
afterwards, through a compare-and-set on status.
"""

import sqlite3
from datetime import datetime
from typing import List, Optional

from famvault.permissions.types import DelegationRequest, PermissionKind, RequestStatus, ScopeKind
from famvault.utils.clock import from_iso, to_iso


def _row_to_request(row: sqlite3.Row) -> DelegationRequest:
    return DelegationRequest(
        id=row["id"],
        owner_id=row["owner_id"],
        beneficiary_id=row["beneficiary_id"],
        scope_kind=ScopeKind(row["scope_kind"]),
        target_id=row["target_id"],
        permission_kind=PermissionKind(row["permission_kind"]),
        created_at=from_iso(row["created_at"]),
        status=RequestStatus(row["status"]),
        decided_at=from_iso(row["decided_at"]),
        decided_by=row["decided_by"],
        reason=row["reason"],
        admin_comment=row["admin_comment"],
        expires_at=from_iso(row["expires_at"]),
    )


def save_delegation_request(conn: sqlite3.Connection, request: DelegationRequest) -> None:
    conn.execute(
        """
        INSERT INTO delegation_requests
        (id, owner_id, beneficiary_id, scope_kind, target_id, permission_kind,
         created_at, decided_at, decided_by, status, reason, admin_comment, expires_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            request.id,
            request.owner_id,
            request.beneficiary_id,
            request.scope_kind.value,
            request.target_id,
            request.permission_kind.value,
            to_iso(request.created_at),
            to_iso(request.decided_at),
            request.decided_by,
            request.status.value,
            request.reason,
            request.admin_comment,
            to_iso(request.expires_at),
        ),
    )


def load_delegation_request(conn: sqlite3.Connection, request_id: str) -> Optional[DelegationRequest]:
    row = conn.execute("SELECT * FROM delegation_requests WHERE id = ?", (request_id,)).fetchone()
    return _row_to_request(row) if row else None


def decide_if_pending(
    conn: sqlite3.Connection,
    request_id: str,
    new_status: RequestStatus,
    decided_at: datetime,
    decided_by: Optional[str],
    admin_comment: Optional[str],
) -> bool:
    """
    Compare-and-set PENDING -> new_status.

    Returns:
        True if this call moved the request; False if it was no longer pending
    """
    cursor = conn.execute(
        """
        UPDATE delegation_requests
        SET status = ?, decided_at = ?, decided_by = ?, admin_comment = ?
        WHERE id = ? AND status = ?
        """,
        (
            new_status.value,
            to_iso(decided_at),
            decided_by,
            admin_comment,
            request_id,
            RequestStatus.PENDING.value,
        ),
    )
    return cursor.rowcount == 1


def find_pending_duplicate(
    conn: sqlite3.Connection,
    owner_id: str,
    beneficiary_id: str,
    scope_kind: ScopeKind,
    target_id: Optional[str],
) -> Optional[DelegationRequest]:
    row = conn.execute(
        """
        SELECT * FROM delegation_requests
        WHERE owner_id = ? AND beneficiary_id = ? AND scope_kind = ?
          AND target_id IS ? AND status = ?
        LIMIT 1
        """,
        (owner_id, beneficiary_id, scope_kind.value, target_id, RequestStatus.PENDING.value),
    ).fetchone()
    return _row_to_request(row) if row else None


def list_pending_for_owners(conn: sqlite3.Connection, owner_ids: List[str]) -> List[DelegationRequest]:
    if not owner_ids:
        return []
    placeholders = ", ".join("?" * len(owner_ids))
    rows = conn.execute(
        f"""
        SELECT * FROM delegation_requests
        WHERE status = ? AND owner_id IN ({placeholders})
        ORDER BY created_at, id
        """,  # noqa: S608
        [RequestStatus.PENDING.value, *owner_ids],
    ).fetchall()
    return [_row_to_request(row) for row in rows]


def list_requests_for_member(
    conn: sqlite3.Connection,
    member_id: str,
    as_owner: bool,
) -> List[DelegationRequest]:
    column = "owner_id" if as_owner else "beneficiary_id"
    rows = conn.execute(
        f"SELECT * FROM delegation_requests WHERE {column} = ? ORDER BY created_at, id",  # noqa: S608
        (member_id,),
    ).fetchall()
    return [_row_to_request(row) for row in rows]


def list_pending_involving(conn: sqlite3.Connection, member_id: str) -> List[DelegationRequest]:
    """Pending requests where the member is either owner or beneficiary"""
    rows = conn.execute(
        """
        SELECT * FROM delegation_requests
        WHERE status = ? AND (owner_id = ? OR beneficiary_id = ?)
        ORDER BY created_at, id
        """,
        (RequestStatus.PENDING.value, member_id, member_id),
    ).fetchall()
    return [_row_to_request(row) for row in rows]


def list_pending_expired(conn: sqlite3.Connection, now: datetime) -> List[DelegationRequest]:
    rows = conn.execute(
        """
        SELECT * FROM delegation_requests
        WHERE status = ? AND expires_at IS NOT NULL AND expires_at <= ?
        ORDER BY expires_at, id
        """,
        (RequestStatus.PENDING.value, to_iso(now)),
    ).fetchall()
    return [_row_to_request(row) for row in rows]


def count_requests(
    conn: sqlite3.Connection,
    member_id: str,
    as_owner: bool,
    status: Optional[RequestStatus] = None,
) -> int:
    column = "owner_id" if as_owner else "beneficiary_id"
    query = f"SELECT COUNT(*) FROM delegation_requests WHERE {column} = ?"  # noqa: S608
    params: list = [member_id]
    if status is not None:
        query += " AND status = ?"
        params.append(status.value)
    return conn.execute(query, params).fetchone()[0]
