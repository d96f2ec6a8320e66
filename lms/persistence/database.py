"""
Database management and connection handling.
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from ..core.exceptions import PersistenceError

logger = logging.getLogger(__name__)


class SQLiteDatabase:
    """SQLite database holding entity documents and grades."""

    def __init__(self, database_path: str = "lms.db"):
        self._database_path = database_path
        self._lock = threading.RLock()
        self._transaction_conn: Optional[sqlite3.Connection] = None
        self._initialize_database()

    @property
    def database_path(self) -> str:
        return self._database_path

    def _initialize_database(self) -> None:
        """Initialize the database with basic schema."""
        with self._get_connection() as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS entities (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL,
                    kind TEXT NOT NULL,
                    data TEXT NOT NULL,
                    email TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    version INTEGER DEFAULT 1,
                    UNIQUE (kind, id)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS grades (
                    task_id TEXT NOT NULL,
                    student_id TEXT NOT NULL,
                    data TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    PRIMARY KEY (task_id, student_id)
                )
            """)

            cursor.execute("CREATE INDEX IF NOT EXISTS idx_entities_email ON entities (email)")

            conn.commit()
        logger.info("SQLite database ready at %s", self._database_path)

    @contextmanager
    def _get_connection(self):
        """Get database connection with proper cleanup."""
        conn = None
        try:
            conn = sqlite3.connect(self._database_path, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            yield conn
        except sqlite3.Error as e:
            if conn:
                conn.rollback()
            raise PersistenceError(f"Database error: {str(e)}")
        finally:
            if conn:
                conn.close()

    @contextmanager
    def _connection(self):
        # only the thread holding self._lock can see a transaction connection
        if self._transaction_conn is not None:
            try:
                yield self._transaction_conn
            except sqlite3.Error as e:
                raise PersistenceError(f"Database error: {str(e)}")
        else:
            with self._get_connection() as conn:
                yield conn

    @contextmanager
    def transaction(self):
        """Run every statement in the block on one connection and commit them together.

        Other threads wait until the block ends. Nested blocks join the
        outer transaction.
        """
        with self._lock:
            if self._transaction_conn is not None:
                yield
                return
            with self._get_connection() as conn:
                self._transaction_conn = conn
                try:
                    yield
                    conn.commit()
                except Exception:
                    conn.rollback()
                    raise
                finally:
                    self._transaction_conn = None

    def execute_query(self, query: str, params: Optional[tuple] = None) -> List[Dict[str, Any]]:
        """Execute a query and return results."""
        with self._lock, self._connection() as conn:
            cursor = conn.cursor()
            if params:
                cursor.execute(query, params)
            else:
                cursor.execute(query)

            columns = [description[0] for description in cursor.description]
            return [dict(zip(columns, row)) for row in cursor.fetchall()]

    def execute_update(self, query: str, params: Optional[tuple] = None) -> int:
        """Execute an update query and return affected rows."""
        with self._lock, self._connection() as conn:
            cursor = conn.cursor()
            if params:
                cursor.execute(query, params)
            else:
                cursor.execute(query)
            if conn is not self._transaction_conn:
                conn.commit()
            return cursor.rowcount

    def table_exists(self, table_name: str) -> bool:
        """Check if a table exists."""
        query = "SELECT name FROM sqlite_master WHERE type='table' AND name=?"
        results = self.execute_query(query, (table_name,))
        return len(results) > 0
