# Local_Sync_DB.py
#########################################
# Local Sync DB Library
# Thin adapter over a field device's local SQLite file.
#
# This library provides a `LocalSyncDB` class wrapping one SQLite database file
# that holds the CabinetPM tables. It does not own the application schema; the
# CRUD layer creates the tables. What it provides to the sync engine is:
#
# - Thread-local connections (one connection per thread, reopened when closed).
# - Query helpers (`execute_query`, `fetch_all`, `fetch_one`) that translate
#   sqlite3 errors into `DatabaseError`.
# - A `transaction()` context manager; nested use only commits at the outermost level,
#   and sqlite3 errors inside it become `DatabaseError` too.
# - Schema introspection: `table_exists`, `get_columns`, `add_column`.
# - The key/value metadata area (`sync_metadata`) holding the device id and the
#   per-table pull cursors.
####
import re
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union
#
# 3rd-Party Imports
from loguru import logger
#
# Local Imports
from cabinetpm_sync.Constants import METADATA_TABLE
from cabinetpm_sync.Utils.Timestamps import utc_now_str
#
########################################################################################################################
#
# Functions:

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


# --- Custom Exceptions ---
class DatabaseError(Exception):
    """Base exception for local database errors."""
    pass


class SchemaError(DatabaseError):
    """Raised when a table is missing or cannot be brought to the shape the sync engine needs."""
    def __init__(self, message: str, table: Optional[str] = None):
        super().__init__(message)
        self.table = table

    def __str__(self):
        base = super().__str__()
        return f"{base} (Table: {self.table})" if self.table else base


class InputError(ValueError):
    """Raised for invalid table/column names or arguments."""
    pass


def validate_identifier(name: str, kind: str = "identifier") -> str:
    """Table and column names are interpolated into SQL, so only plain identifiers are allowed."""
    if not isinstance(name, str) or not _IDENTIFIER_RE.match(name):
        raise InputError(f"Invalid {kind}: {name!r}")
    return name


class LocalSyncDB:
    """
    Manages the SQLite connection and the sync metadata area for one local store.
    """

    _METADATA_SQL = f"""
    CREATE TABLE IF NOT EXISTS {METADATA_TABLE} (
        key TEXT PRIMARY KEY,
        value TEXT,
        updated_at TEXT
    );
    """

    def __init__(self, db_path: Union[str, Path]):
        if isinstance(db_path, Path):
            self.db_path = db_path.resolve()
        else:
            self.db_path = Path(db_path).resolve()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.db_path_str = str(self.db_path)
        self._local = threading.local()
        try:
            self.execute_query(self._METADATA_SQL, commit=True)
        except DatabaseError as e:
            logger.critical(f"FATAL: Could not prepare {METADATA_TABLE} in {self.db_path_str}: {e}")
            raise
        logger.debug(f"LocalSyncDB ready at {self.db_path_str}")

    # --- Connection Management ---
    def _get_thread_connection(self) -> sqlite3.Connection:
        conn = getattr(self._local, 'conn', None)
        if conn is not None:
            try:
                conn.execute("SELECT 1")
                return conn
            except (sqlite3.ProgrammingError, sqlite3.OperationalError):
                logger.warning(f"Thread-local connection to {self.db_path_str} was closed. Reopening.")
                self._local.conn = None

        try:
            conn = sqlite3.connect(self.db_path_str, check_same_thread=False, timeout=10)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL;")
            self._local.conn = conn
            logger.debug(f"Opened SQLite connection to {self.db_path_str} [Thread: {threading.current_thread().name}]")
        except sqlite3.Error as e:
            self._local.conn = None
            logger.error(f"Failed to connect to database at {self.db_path_str}: {e}")
            raise DatabaseError(f"Failed to connect to database '{self.db_path_str}': {e}") from e
        return conn

    def get_connection(self) -> sqlite3.Connection:
        """Returns the database connection owned by the current thread."""
        return self._get_thread_connection()

    def close_connection(self):
        """Closes the database connection for the current thread, if open."""
        conn = getattr(self._local, 'conn', None)
        if conn is None:
            return
        self._local.conn = None
        try:
            conn.close()
            logger.debug(f"Closed connection for thread {threading.current_thread().name}.")
        except sqlite3.Error as e:
            logger.warning(f"Error closing connection: {e}")

    # --- Query Execution ---
    def execute_query(self, query: str, params: Optional[Tuple] = None, *, commit: bool = False) -> sqlite3.Cursor:
        """
        Executes a single SQL statement.

        Args:
            query (str): The SQL statement.
            params (Optional[tuple]): Positional parameters.
            commit (bool): Commit after execution. Usually managed by `transaction()`.

        Raises:
            DatabaseError: For any sqlite3 error, integrity violations included.
        """
        conn = self.get_connection()
        try:
            cursor = conn.cursor()
            logger.trace(f"Executing Query: {query[:200]} Params: {str(params)[:100]}")
            cursor.execute(query, params or ())
            if commit:
                conn.commit()
            return cursor
        except sqlite3.IntegrityError as e:
            logger.error(f"Integrity error: {query[:200]}... Error: {e}")
            raise DatabaseError(f"Integrity constraint violation: {e}") from e
        except sqlite3.Error as e:
            logger.error(f"Query failed: {query[:200]}... Error: {e}")
            raise DatabaseError(f"Query execution failed: {e}") from e

    def fetch_all(self, query: str, params: Optional[Tuple] = None) -> List[Dict[str, Any]]:
        cursor = self.execute_query(query, params)
        return [dict(row) for row in cursor.fetchall()]

    def fetch_one(self, query: str, params: Optional[Tuple] = None) -> Optional[Dict[str, Any]]:
        cursor = self.execute_query(query, params)
        row = cursor.fetchone()
        return dict(row) if row else None

    # --- Transaction Context ---
    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Context manager for an atomic block of statements.

        Commits on successful exit and rolls back on any exception. Nested use
        joins the outer transaction; only the outermost block commits. A
        sqlite3 error raised inside the block surfaces as `DatabaseError`.

        Yields:
            sqlite3.Connection: The current thread's connection.
        """
        conn = self.get_connection()
        in_outer = conn.in_transaction
        try:
            if not in_outer:
                conn.execute("BEGIN")
            yield conn
            if not in_outer:
                conn.commit()
        except Exception as e:
            if not in_outer:
                logger.debug(f"Transaction failed, rolling back: {type(e).__name__} - {e}")
                try:
                    conn.rollback()
                except sqlite3.Error as rb_err:
                    logger.error(f"Rollback FAILED: {rb_err}")
            if isinstance(e, sqlite3.Error):
                raise DatabaseError(f"Transaction failed: {e}") from e
            raise

    # --- Schema Introspection ---
    def table_exists(self, table: str) -> bool:
        validate_identifier(table, "table name")
        row = self.fetch_one(
            "SELECT name FROM sqlite_master WHERE type='table' AND name = ?", (table,)
        )
        return row is not None

    def get_columns(self, table: str) -> List[str]:
        """Column names of `table` in declaration order; empty if the table does not exist."""
        validate_identifier(table, "table name")
        rows = self.fetch_all(f"PRAGMA table_info({table})")
        return [row["name"] for row in rows]

    def get_primary_key(self, table: str) -> Optional[Tuple[str, str]]:
        """(column name, declared type) of the single-column primary key, if any."""
        validate_identifier(table, "table name")
        rows = self.fetch_all(f"PRAGMA table_info({table})")
        pk_rows = [row for row in rows if row["pk"]]
        if len(pk_rows) != 1:
            return None
        return pk_rows[0]["name"], (pk_rows[0]["type"] or "").upper()

    def add_column(self, table: str, column: str, definition: str) -> bool:
        """
        Adds a column with ALTER TABLE.

        Returns True if the column was added, False if it already existed
        ("duplicate column" is treated as success).

        Raises:
            SchemaError: For any other ALTER TABLE failure.
        """
        validate_identifier(table, "table name")
        validate_identifier(column, "column name")
        try:
            self.execute_query(f"ALTER TABLE {table} ADD COLUMN {column} {definition}", commit=True)
            logger.info(f"Added column '{column}' to table '{table}'")
            return True
        except DatabaseError as e:
            if "duplicate column" in str(e).lower():
                logger.debug(f"Column '{column}' already present on '{table}'")
                return False
            raise SchemaError(f"Could not add column '{column}': {e}", table=table) from e

    # --- Metadata Area ---
    def get_metadata(self, key: str, default: Optional[str] = None) -> Optional[str]:
        row = self.fetch_one(f"SELECT value FROM {METADATA_TABLE} WHERE key = ?", (key,))
        if row is None or row["value"] is None:
            return default
        return row["value"]

    def set_metadata(self, key: str, value: str):
        with self.transaction() as conn:
            conn.execute(
                f"INSERT INTO {METADATA_TABLE} (key, value, updated_at) VALUES (?, ?, ?) "
                f"ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at",
                (key, str(value), utc_now_str()),
            )

    def delete_metadata(self, key: str) -> bool:
        with self.transaction() as conn:
            cursor = conn.execute(f"DELETE FROM {METADATA_TABLE} WHERE key = ?", (key,))
            return cursor.rowcount > 0

    def list_metadata(self, prefix: str = "") -> Dict[str, str]:
        rows = self.fetch_all(
            f"SELECT key, value FROM {METADATA_TABLE} WHERE substr(key, 1, ?) = ? ORDER BY key",
            (len(prefix), prefix),
        )
        return {row["key"]: row["value"] for row in rows}

#
# End of Local_Sync_DB.py
########################################################################################################################
