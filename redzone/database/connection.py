"""
RedZone Database Connection Management
======================================

Pooled SQLite access for the repositories. Connections are opened on
demand, configured for WAL and foreign keys, and up to ``pool_size`` idle
ones are kept for reuse.
"""

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from queue import Empty, Full, Queue
from typing import Dict, Generator, List, Optional

logger = logging.getLogger(__name__)

PRAGMAS = (
    "PRAGMA foreign_keys = ON",
    "PRAGMA journal_mode = WAL",
    "PRAGMA synchronous = NORMAL",
    "PRAGMA temp_store = MEMORY",
)

TABLES = ("sources", "contents", "tags", "content_tags")


class DatabaseConnection:
    """Thread-safe SQLite connection pool."""

    def __init__(self, db_path: str = "data/redzone.db", pool_size: int = 5):
        """Initialize the pool. No connection is opened until first use.

        Args:
            db_path: Path to SQLite database file
            pool_size: Idle connections kept for reuse
        """
        self.db_path = Path(db_path)
        self.pool_size = pool_size
        self._idle: Queue = Queue(maxsize=pool_size)

        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def _open(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=30.0)
        for pragma in PRAGMAS:
            conn.execute(pragma)
        conn.row_factory = sqlite3.Row
        logger.debug(f"Opened database connection to {self.db_path}")
        return conn

    @contextmanager
    def connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Borrow a connection; it goes back to the pool on exit.

        A transaction left open by the borrower is rolled back first.
        """
        try:
            conn = self._idle.get_nowait()
        except Empty:
            conn = self._open()

        try:
            yield conn
        finally:
            if conn.in_transaction:
                conn.rollback()
            try:
                self._idle.put_nowait(conn)
            except Full:
                conn.close()

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Connection, None, None]:
        """Run statements in one write transaction.

        Usage:
            with db.transaction() as conn:
                conn.execute("INSERT INTO contents ...")
                conn.execute("INSERT INTO content_tags ...")

        Commits on success. Any exception rolls back and propagates.
        Constraint violations are logged at debug level.
        """
        with self.connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except sqlite3.IntegrityError as e:
                conn.rollback()
                logger.debug(f"Transaction rolled back on constraint: {e}")
                raise
            except Exception as e:
                conn.rollback()
                logger.error(f"Transaction rolled back: {e}")
                raise
            conn.commit()

    def execute_query(self, query: str, params: tuple = ()) -> List[sqlite3.Row]:
        """Run a SELECT and return every row."""
        with self.connection() as conn:
            return conn.execute(query, params).fetchall()

    def execute_one(self, query: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        """Run a SELECT and return the first row, or None."""
        with self.connection() as conn:
            return conn.execute(query, params).fetchone()

    def execute_update(self, query: str, params: tuple = ()) -> int:
        """Run and commit a single INSERT/UPDATE/DELETE.

        Returns:
            Number of affected rows
        """
        with self.connection() as conn:
            rowcount = conn.execute(query, params).rowcount
            conn.commit()
            return rowcount

    def table_counts(self) -> Dict[str, int]:
        """Row count per RedZone table; a missing table counts as 0."""
        counts = {}
        with self.connection() as conn:
            for table in TABLES:
                try:
                    counts[table] = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
                except sqlite3.OperationalError:
                    counts[table] = 0
        return counts

    def close(self) -> None:
        """Close every idle connection in the pool."""
        closed = 0
        while True:
            try:
                conn = self._idle.get_nowait()
            except Empty:
                break
            conn.close()
            closed += 1
        logger.debug(f"Closed {closed} pooled database connection(s)")


_db_manager: Optional[DatabaseConnection] = None


def get_db_manager(db_path: str = "data/redzone.db", pool_size: int = 5) -> DatabaseConnection:
    """Process-wide connection pool, created on first call."""
    global _db_manager

    if _db_manager is None:
        _db_manager = DatabaseConnection(db_path, pool_size=pool_size)

    return _db_manager
