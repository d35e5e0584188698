# conftest.py
# Shared fixtures: simulated field devices (each with its own SQLite store) against one in-memory central store.
#
# Imports
import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional
#
# Third-Party Imports
import pytest
#
# Local Imports
from cabinetpm_sync.central_api.memory_store import MemoryCentralStore
from cabinetpm_sync.DB.Local_Sync_DB import LocalSyncDB
from cabinetpm_sync.Sync.Sync_Coordinator import SyncCoordinator
#
########################################################################################################################
#
# Functions:

SYNC_COLUMNS_SQL = (
    "uuid TEXT, synced INTEGER DEFAULT 0, device_id TEXT DEFAULT '', deleted INTEGER DEFAULT 0, "
    "created_at TEXT, updated_at TEXT"
)

CABINETPM_TEST_SCHEMA = f"""
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    username TEXT UNIQUE NOT NULL,
    email TEXT,
    {SYNC_COLUMNS_SQL}
);
CREATE TABLE IF NOT EXISTS customers (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    location TEXT,
    {SYNC_COLUMNS_SQL}
);
CREATE TABLE IF NOT EXISTS sessions (
    id TEXT PRIMARY KEY,
    customer_id INTEGER,
    session_name TEXT NOT NULL,
    status TEXT DEFAULT 'active',
    {SYNC_COLUMNS_SQL}
);
CREATE TABLE IF NOT EXISTS nodes (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    customer_id INTEGER,
    node_name TEXT NOT NULL,
    node_type TEXT,
    {SYNC_COLUMNS_SQL}
);
CREATE TABLE IF NOT EXISTS session_node_maintenance (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT NOT NULL,
    node_id INTEGER NOT NULL,
    hf_updated INTEGER DEFAULT 0,
    completed INTEGER DEFAULT 0,
    notes TEXT,
    date_completed TEXT,
    {SYNC_COLUMNS_SQL}
);
CREATE TABLE IF NOT EXISTS session_node_tracker (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT NOT NULL,
    node_id INTEGER NOT NULL,
    completed INTEGER DEFAULT 0,
    notes TEXT,
    {SYNC_COLUMNS_SQL}
);
CREATE TABLE IF NOT EXISTS session_ii_equipment (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    document_id TEXT,
    equipment_name TEXT,
    {SYNC_COLUMNS_SQL}
);
"""

TEST_TABLES = [
    "users",
    "customers",
    "sessions",
    "nodes",
    "session_node_maintenance",
    "session_node_tracker",
    "session_ii_equipment",
]


def create_test_schema(db_path: str):
    conn = sqlite3.connect(db_path)
    try:
        conn.executescript(CABINETPM_TEST_SCHEMA)
        conn.commit()
    finally:
        conn.close()


class Device:
    """A simulated field device: local store + coordinator, with CRUD helpers that go through the change tracker."""

    def __init__(self, db_path: Path, central, tables: Optional[List[str]] = None, **coordinator_kwargs):
        create_test_schema(str(db_path))
        self.db = LocalSyncDB(db_path)
        self.coordinator = SyncCoordinator(self.db, central, tables=tables or TEST_TABLES, **coordinator_kwargs)
        self.tracker = self.coordinator.tracker

    @property
    def device_id(self) -> str:
        return self.coordinator.identity.get_or_create_device_id()

    def insert(self, table: str, **data) -> Any:
        row = self.tracker.prepare_new_record(data)
        columns = list(row.keys())
        with self.db.transaction() as conn:
            cursor = conn.execute(
                f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({', '.join('?' for _ in columns)})",
                tuple(row[c] for c in columns),
            )
        return data["id"] if "id" in data else cursor.lastrowid

    def update(self, table: str, local_id: Any, **data):
        row = self.tracker.prepare_update(data)
        assignments = ", ".join(f"{c} = ?" for c in row)
        with self.db.transaction() as conn:
            conn.execute(f"UPDATE {table} SET {assignments} WHERE id = ?", tuple(row.values()) + (local_id,))

    def delete(self, table: str, local_id: Any):
        self.tracker.mark_deleted(table, local_id)

    def row(self, table: str, local_id: Any) -> Optional[Dict[str, Any]]:
        return self.db.fetch_one(f"SELECT * FROM {table} WHERE id = ?", (local_id,))

    def rows(self, table: str, include_deleted: bool = True) -> List[Dict[str, Any]]:
        return self.tracker.list_all(table, include_deleted=include_deleted)

    def sync(self):
        return self.coordinator.run_full_sync()

    def close(self):
        self.coordinator.close()


# --- Fixtures ---

@pytest.fixture
def central():
    return MemoryCentralStore()


@pytest.fixture
def make_device(tmp_path, central):
    """Factory for devices sharing the `central` store. Each call gets its own database file."""
    created: List[Device] = []

    def _make(name: Optional[str] = None, **kwargs) -> Device:
        db_file = tmp_path / f"{name or f'device_{len(created)}'}.db"
        device = Device(db_file, kwargs.pop("central", central), **kwargs)
        created.append(device)
        return device

    yield _make
    for device in created:
        device.close()


@pytest.fixture
def local_db(tmp_path):
    db_file = tmp_path / "local_sync.db"
    create_test_schema(str(db_file))
    db = LocalSyncDB(db_file)
    yield db
    db.close_connection()
