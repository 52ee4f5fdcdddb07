"""
SQLite access for the permission core

One connection per thread, opened lazily in WAL mode so a reader always sees
either the state before or after a write transaction, never a mix. Writers
are serialized in-process by a re-entrant lock and in SQLite by
BEGIN IMMEDIATE; a component that opens a write transaction while its caller
already holds one simply joins it, so a whole operation commits or rolls back
as one unit.
"""
import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from famvault.errors import StorageFailureError

logger = logging.getLogger(__name__)

# Applied to every new connection
CONNECTION_PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=NORMAL",
    "PRAGMA foreign_keys=ON",
    "PRAGMA temp_store=MEMORY",
)


@contextmanager
def storage_errors(operation: str) -> Iterator[None]:
    """Re-raise sqlite3.Error as StorageFailureError, keeping the cause"""
    try:
        yield
    except sqlite3.Error as e:
        logger.error(f"SQLite failure during {operation}: {e}")
        raise StorageFailureError(operation, e) from e


class DatabaseConnection:
    """
    Per-thread SQLite connections over one database file.

    Safe to share between request handlers, asyncio.to_thread() workers and
    the background sweep; each thread talks to SQLite through its own handle.
    """

    def __init__(self, db_path: Path | str, timeout: float = 30.0):
        """
        Args:
            db_path: SQLite file; its directory is created if missing
            timeout: Seconds to wait on a locked database before failing
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.timeout = timeout

        self._local = threading.local()
        self._writer = threading.RLock()

        # Fail fast on an unusable path
        self.get()

    def get(self) -> sqlite3.Connection:
        """This thread's connection, opened on first use"""
        conn = getattr(self._local, "conn", None)
        if conn is None:
            with storage_errors("connect"):
                conn = self._open()
            self._local.conn = conn
            logger.debug(f"Opened {self.db_path.name} on thread {threading.current_thread().name}")
        return conn

    def _open(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            str(self.db_path),
            timeout=self.timeout,
            isolation_level="DEFERRED",
        )
        conn.row_factory = sqlite3.Row
        for pragma in CONNECTION_PRAGMAS:
            conn.execute(pragma)
        return conn

    @contextmanager
    def read(self, operation: str = "read") -> Iterator[sqlite3.Connection]:
        """
        Read access; inside a write transaction on the same thread this sees
        its uncommitted changes.

        Usage:
            with db.read("load_family_member") as conn:
                row = conn.execute("SELECT ...", (member_id,)).fetchone()
        """
        with storage_errors(operation):
            yield self.get()

    @contextmanager
    def write_transaction(self, operation: str = "write") -> Iterator[sqlite3.Connection]:
        """
        Run a block as one atomic write.

        The outermost call on a thread takes the writer lock, issues
        BEGIN IMMEDIATE and commits when the block exits cleanly; any
        exception rolls everything back and propagates. Nested calls reuse
        the open transaction.

        Usage:
            with db.write_transaction("approve_request") as conn:
                conn.execute("UPDATE delegation_requests ...")
                conn.execute("INSERT INTO active_permissions ...")
        """
        with self._writer:
            depth = getattr(self._local, "write_depth", 0)
            conn = self.get()

            if depth:
                self._local.write_depth = depth + 1
                try:
                    yield conn
                finally:
                    self._local.write_depth = depth
                return

            self._local.write_depth = 1
            try:
                with storage_errors(operation):
                    if not conn.in_transaction:
                        conn.execute("BEGIN IMMEDIATE")
                try:
                    with storage_errors(operation):
                        yield conn
                        conn.commit()
                except Exception:
                    conn.rollback()
                    raise
            finally:
                self._local.write_depth = 0

    def close(self) -> None:
        """Close this thread's connection, if open"""
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            conn.close()
            self._local.conn = None
