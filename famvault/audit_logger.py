"""
Audit Logging System

Append-only record of every permission and delegation transition.

Features:
- Always on (cannot be disabled), no retention cleanup: entries are never
  updated or deleted
- Entries are written inside the caller's write transaction, so an entry
  exists exactly when its transition committed
- Ordering by (timestamp, seq); seq is assigned at append time
- CSV export for compliance reviews
"""

import csv
import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from famvault.db import DatabaseConnection
from famvault.permissions.types import AuditAction, AuditLogEntry
from famvault.storage import audit as audit_store
from famvault.storage import permissions as permission_store
from famvault.utils.clock import to_iso, utcnow

logger = logging.getLogger(__name__)


class AuditLogger:
    """Audit logging service over the shared permission database"""

    def __init__(self, db: DatabaseConnection):
        self.db = db

    def log(
        self,
        action: AuditAction,
        actor_id: Optional[str],
        permission_id: Optional[str] = None,
        request_id: Optional[str] = None,
        detail: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> AuditLogEntry:
        """
        Append an audit entry

        Joins the caller's write transaction when one is open on this thread;
        failures propagate so the surrounding transition rolls back with it.

        Args:
            action: AuditAction being recorded
            actor_id: Member who caused it (None for system sweeps)
            permission_id: Permission the entry refers to
            request_id: Delegation request the entry refers to
            detail: Free-text context
            timestamp: Entry time (defaults to now)

        Returns:
            The stored AuditLogEntry, including its seq
        """
        with self.db.write_transaction("append_audit_entry") as conn:
            entry = audit_store.append_audit_entry(
                conn,
                action=action,
                actor_id=actor_id,
                timestamp=timestamp or utcnow(),
                permission_id=permission_id,
                request_id=request_id,
                detail=detail,
            )

        logger.debug(f"Audit log created: {action.value} by {actor_id} (seq {entry.seq})")
        return entry

    def trail_for(self, permission_id: str, include_request: bool = True) -> List[AuditLogEntry]:
        """
        Full history of one permission, oldest first

        With `include_request`, entries of the originating delegation request
        (creation, approval) are included as well.
        """
        with self.db.read("audit_trail") as conn:
            where = "permission_id = ?"
            params: list = [permission_id]
            if include_request:
                permission = permission_store.load_active_permission(conn, permission_id)
                if permission is not None and permission.request_id:
                    where = "(permission_id = ? OR request_id = ?)"
                    params.append(permission.request_id)
            return audit_store.query_entries(conn, where, params)

    def trail_for_request(self, request_id: str) -> List[AuditLogEntry]:
        with self.db.read("audit_trail") as conn:
            return audit_store.query_entries(conn, "request_id = ?", [request_id])

    def get_logs(
        self,
        actor_id: Optional[str] = None,
        family_id: Optional[str] = None,
        action: Optional[AuditAction] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: int = 100,
        offset: int = 0
    ) -> List[AuditLogEntry]:
        """
        Query audit logs, newest first

        Args:
            actor_id: Filter by acting member
            family_id: Only entries stamped with this family
            action: Filter by action type
            start_date: Filter by start date
            end_date: Filter by end date
            limit: Maximum number of results
            offset: Pagination offset

        Returns:
            List of audit entries
        """
        where, params = self._filters(actor_id, action, start_date, end_date, family_id)
        with self.db.read("get_audit_logs") as conn:
            return audit_store.query_entries(
                conn, where, params, descending=True, limit=limit, offset=offset
            )

    def count_logs(
        self,
        actor_id: Optional[str] = None,
        family_id: Optional[str] = None,
        action: Optional[AuditAction] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None
    ) -> int:
        where, params = self._filters(actor_id, action, start_date, end_date, family_id)
        with self.db.read("count_audit_logs") as conn:
            return audit_store.count_entries(conn, where, params)

    def export_to_csv(
        self,
        output_path: Path,
        family_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None
    ) -> int:
        """
        Export audit logs to CSV file, oldest first

        Args:
            output_path: Path to output CSV file
            family_id: Restrict the export to one family's entries
            start_date: Optional start date filter
            end_date: Optional end date filter

        Returns:
            Number of exported entries
        """
        where, params = self._filters(None, None, start_date, end_date, family_id)
        with self.db.read("export_audit_logs") as conn:
            logs = audit_store.query_entries(conn, where, params)

        with open(output_path, 'w', newline='') as csvfile:
            fieldnames = [
                'seq', 'id', 'timestamp', 'action', 'actor_id',
                'permission_id', 'request_id', 'detail', 'family_id'
            ]
            writer = csv.DictWriter(csvfile, fieldnames=fieldnames)

            writer.writeheader()
            for log in logs:
                writer.writerow({
                    'seq': log.seq,
                    'id': log.id,
                    'timestamp': to_iso(log.timestamp),
                    'action': log.action.value,
                    'actor_id': log.actor_id or '',
                    'permission_id': log.permission_id or '',
                    'request_id': log.request_id or '',
                    'detail': log.detail or '',
                    'family_id': log.family_id or '',
                })

        logger.info(f"Exported {len(logs)} audit logs to {output_path}")
        return len(logs)

    @staticmethod
    def _filters(
        actor_id: Optional[str],
        action: Optional[AuditAction],
        start_date: Optional[datetime],
        end_date: Optional[datetime],
        family_id: Optional[str] = None,
    ):
        # Build query dynamically
        clauses = ["1=1"]
        params: list = []

        if family_id:
            clauses.append("family_id = ?")
            params.append(family_id)

        if actor_id:
            clauses.append("actor_id = ?")
            params.append(actor_id)

        if action:
            clauses.append("action = ?")
            params.append(action.value)

        if start_date:
            clauses.append("timestamp >= ?")
            params.append(to_iso(start_date))

        if end_date:
            clauses.append("timestamp <= ?")
            params.append(to_iso(end_date))

        return " AND ".join(clauses), params
