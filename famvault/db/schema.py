"""
Database Schema

Flat id-keyed tables. Resource containment is expressed with parent id
columns; delegation, permission and audit rows reference members by id only
so they survive member and family removal.
"""

import logging

from famvault.db.connection import DatabaseConnection

logger = logging.getLogger(__name__)


SCHEMA = """
CREATE TABLE IF NOT EXISTS families (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS family_members (
    id TEXT PRIMARY KEY,
    family_id TEXT NOT NULL REFERENCES families(id) ON DELETE CASCADE,
    display_name TEXT NOT NULL,
    credential_ref TEXT,
    birth_date TEXT,
    gender TEXT,
    is_responsible INTEGER NOT NULL DEFAULT 0,
    is_admin INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS spaces (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    family_id TEXT NOT NULL REFERENCES families(id) ON DELETE CASCADE,
    owner_id TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS categories (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    space_id TEXT NOT NULL REFERENCES spaces(id) ON DELETE CASCADE,
    owner_id TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS folders (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    category_id TEXT NOT NULL REFERENCES categories(id) ON DELETE CASCADE,
    parent_folder_id TEXT REFERENCES folders(id) ON DELETE CASCADE,
    owner_id TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS files (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    size INTEGER NOT NULL DEFAULT 0,
    folder_id TEXT NOT NULL REFERENCES folders(id) ON DELETE CASCADE,
    owner_id TEXT NOT NULL,
    creator_id TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS delegation_requests (
    id TEXT PRIMARY KEY,
    owner_id TEXT NOT NULL,
    beneficiary_id TEXT NOT NULL,
    scope_kind TEXT NOT NULL,
    target_id TEXT,
    permission_kind TEXT NOT NULL,
    created_at TEXT NOT NULL,
    decided_at TEXT,
    decided_by TEXT,
    status TEXT NOT NULL DEFAULT 'pending',
    reason TEXT,
    admin_comment TEXT,
    expires_at TEXT
);

CREATE TABLE IF NOT EXISTS active_permissions (
    id TEXT PRIMARY KEY,
    owner_id TEXT NOT NULL,
    beneficiary_id TEXT NOT NULL,
    scope_kind TEXT NOT NULL,
    target_id TEXT,
    permission_kind TEXT NOT NULL,
    granted_at TEXT NOT NULL,
    expires_at TEXT,
    active INTEGER NOT NULL DEFAULT 1,
    request_id TEXT
);

CREATE TABLE IF NOT EXISTS audit_log (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    permission_id TEXT,
    request_id TEXT,
    action TEXT NOT NULL,
    actor_id TEXT,
    timestamp TEXT NOT NULL,
    detail TEXT,
    family_id TEXT
);

CREATE INDEX IF NOT EXISTS idx_members_family ON family_members(family_id);
CREATE INDEX IF NOT EXISTS idx_spaces_family ON spaces(family_id);
CREATE INDEX IF NOT EXISTS idx_categories_space ON categories(space_id);
CREATE INDEX IF NOT EXISTS idx_folders_category ON folders(category_id);
CREATE INDEX IF NOT EXISTS idx_folders_parent ON folders(parent_folder_id);
CREATE INDEX IF NOT EXISTS idx_files_folder ON files(folder_id);
CREATE INDEX IF NOT EXISTS idx_requests_owner_status ON delegation_requests(owner_id, status);
CREATE INDEX IF NOT EXISTS idx_requests_beneficiary ON delegation_requests(beneficiary_id);
CREATE INDEX IF NOT EXISTS idx_permissions_beneficiary ON active_permissions(beneficiary_id, active);
CREATE INDEX IF NOT EXISTS idx_permissions_owner ON active_permissions(owner_id, active);
CREATE INDEX IF NOT EXISTS idx_permissions_expiry ON active_permissions(active, expires_at);
CREATE INDEX IF NOT EXISTS idx_audit_permission ON audit_log(permission_id);
CREATE INDEX IF NOT EXISTS idx_audit_request ON audit_log(request_id);
CREATE INDEX IF NOT EXISTS idx_audit_timestamp ON audit_log(timestamp, seq);
CREATE INDEX IF NOT EXISTS idx_audit_family ON audit_log(family_id, timestamp, seq);
"""


def init_schema(db: DatabaseConnection) -> None:
    """Create all tables and indexes if they don't exist"""
    with db.write_transaction("init_schema") as conn:
        for statement in SCHEMA.split(";"):
            if statement.strip():
                conn.execute(statement)
    logger.debug(f"Schema initialized at {db.db_path}")
