"""
Family and member persistence

Row mappers and id-keyed queries for the families and family_members tables.
All functions take an open connection; the caller owns the transaction.
"""

import sqlite3
from datetime import date
from typing import List, Optional

from famvault.models import Family, FamilyMember
from famvault.utils.clock import from_iso, to_iso


def _row_to_family(row: sqlite3.Row) -> Family:
    return Family(id=row["id"], name=row["name"], created_at=from_iso(row["created_at"]))


def _row_to_member(row: sqlite3.Row) -> FamilyMember:
    return FamilyMember(
        id=row["id"],
        family_id=row["family_id"],
        display_name=row["display_name"],
        credential_ref=row["credential_ref"],
        birth_date=date.fromisoformat(row["birth_date"]) if row["birth_date"] else None,
        gender=row["gender"],
        is_responsible=bool(row["is_responsible"]),
        is_admin=bool(row["is_admin"]),
        created_at=from_iso(row["created_at"]),
    )


def save_family(conn: sqlite3.Connection, family: Family) -> None:
    conn.execute(
        "INSERT INTO families (id, name, created_at) VALUES (?, ?, ?)",
        (family.id, family.name, to_iso(family.created_at)),
    )


def load_family(conn: sqlite3.Connection, family_id: str) -> Optional[Family]:
    row = conn.execute("SELECT * FROM families WHERE id = ?", (family_id,)).fetchone()
    return _row_to_family(row) if row else None


def delete_family(conn: sqlite3.Connection, family_id: str) -> int:
    """Delete a family; members and the resource tree cascade"""
    return conn.execute("DELETE FROM families WHERE id = ?", (family_id,)).rowcount


def save_family_member(conn: sqlite3.Connection, member: FamilyMember) -> None:
    conn.execute(
        """
        INSERT INTO family_members
        (id, family_id, display_name, credential_ref, birth_date, gender,
         is_responsible, is_admin, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            member.id,
            member.family_id,
            member.display_name,
            member.credential_ref,
            member.birth_date.isoformat() if member.birth_date else None,
            member.gender,
            int(member.is_responsible),
            int(member.is_admin),
            to_iso(member.created_at),
        ),
    )


def load_family_member(conn: sqlite3.Connection, member_id: str) -> Optional[FamilyMember]:
    row = conn.execute("SELECT * FROM family_members WHERE id = ?", (member_id,)).fetchone()
    return _row_to_member(row) if row else None


def list_family_members(conn: sqlite3.Connection, family_id: str) -> List[FamilyMember]:
    rows = conn.execute(
        "SELECT * FROM family_members WHERE family_id = ? ORDER BY created_at, id",
        (family_id,),
    ).fetchall()
    return [_row_to_member(row) for row in rows]


def update_member_flags(
    conn: sqlite3.Connection,
    member_id: str,
    is_admin: bool,
    is_responsible: bool,
) -> int:
    return conn.execute(
        "UPDATE family_members SET is_admin = ?, is_responsible = ? WHERE id = ?",
        (int(is_admin), int(is_responsible), member_id),
    ).rowcount


def delete_family_member(conn: sqlite3.Connection, member_id: str) -> int:
    return conn.execute("DELETE FROM family_members WHERE id = ?", (member_id,)).rowcount
