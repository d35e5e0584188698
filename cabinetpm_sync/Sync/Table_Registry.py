# Table_Registry.py
# Description: The enumerated set of synced tables and the per-table handlers the coordinator dispatches to
#
# Imports
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple
#
# 3rd-Party Imports
from loguru import logger
#
# Local Imports
from cabinetpm_sync.Constants import (
    CREATED_AT_COLUMN,
    DELETED_COLUMN,
    GLOBAL_ID_COLUMN,
    LOCAL_ID_COLUMN,
    ORIGIN_DEVICE_COLUMN,
    SYNC_FLAG_COLUMN,
    SYNC_STATE_SYNCED,
    UPDATED_AT_COLUMN,
)
from cabinetpm_sync.DB.Local_Sync_DB import DatabaseError, InputError, LocalSyncDB
from cabinetpm_sync.Sync.Change_Tracker import ChangeTracker
#
########################################################################################################################
#
# Functions:

class SyncTable(str, Enum):
    """Synced tables. Declaration order is processing order."""
    USERS = "users"
    CUSTOMERS = "customers"
    SESSIONS = "sessions"
    CABINETS = "cabinets"
    NODES = "nodes"
    SESSION_NODE_MAINTENANCE = "session_node_maintenance"
    SESSION_NODE_TRACKER = "session_node_tracker"
    CABINET_LOCATIONS = "cabinet_locations"
    SESSION_PM_NOTES = "session_pm_notes"
    SESSION_II_DOCUMENTS = "session_ii_documents"
    SESSION_II_EQUIPMENT = "session_ii_equipment"
    SESSION_II_CHECKLIST = "session_ii_checklist"
    SESSION_II_EQUIPMENT_USED = "session_ii_equipment_used"
    CSV_IMPORT_HISTORY = "csv_import_history"

    @classmethod
    def from_name(cls, name: "str | SyncTable") -> "SyncTable":
        if isinstance(name, SyncTable):
            return name
        try:
            return cls(name)
        except ValueError as e:
            raise InputError(f"'{name}' is not a synced table") from e


_DEFAULT_DATE_FIELDS = (CREATED_AT_COLUMN, UPDATED_AT_COLUMN)


@dataclass(frozen=True)
class TableSpec:
    table: SyncTable
    pk_type: str = "INTEGER"
    natural_key: Tuple[str, ...] = ()
    required_fields: Tuple[str, ...] = ()
    date_fields: Tuple[str, ...] = _DEFAULT_DATE_FIELDS

    @property
    def name(self) -> str:
        return self.table.value

    @property
    def text_primary_key(self) -> bool:
        return self.pk_type == "TEXT"


TABLE_SPECS: Dict[SyncTable, TableSpec] = {
    SyncTable.USERS: TableSpec(SyncTable.USERS, natural_key=("username",)),
    SyncTable.CUSTOMERS: TableSpec(SyncTable.CUSTOMERS),
    SyncTable.SESSIONS: TableSpec(SyncTable.SESSIONS, pk_type="TEXT"),
    SyncTable.CABINETS: TableSpec(
        SyncTable.CABINETS, pk_type="TEXT", date_fields=_DEFAULT_DATE_FIELDS + ("completed_at",)
    ),
    SyncTable.NODES: TableSpec(SyncTable.NODES),
    SyncTable.SESSION_NODE_MAINTENANCE: TableSpec(
        SyncTable.SESSION_NODE_MAINTENANCE,
        natural_key=("session_id", "node_id"),
        required_fields=("session_id", "node_id"),
        date_fields=_DEFAULT_DATE_FIELDS + ("date_completed",),
    ),
    SyncTable.SESSION_NODE_TRACKER: TableSpec(
        SyncTable.SESSION_NODE_TRACKER,
        natural_key=("session_id", "node_id"),
        required_fields=("session_id", "node_id"),
    ),
    SyncTable.CABINET_LOCATIONS: TableSpec(SyncTable.CABINET_LOCATIONS, pk_type="TEXT"),
    SyncTable.SESSION_PM_NOTES: TableSpec(SyncTable.SESSION_PM_NOTES, required_fields=("session_id",)),
    SyncTable.SESSION_II_DOCUMENTS: TableSpec(
        SyncTable.SESSION_II_DOCUMENTS, pk_type="TEXT", date_fields=_DEFAULT_DATE_FIELDS + ("ii_date_performed",)
    ),
    SyncTable.SESSION_II_EQUIPMENT: TableSpec(SyncTable.SESSION_II_EQUIPMENT, required_fields=("document_id",)),
    SyncTable.SESSION_II_CHECKLIST: TableSpec(SyncTable.SESSION_II_CHECKLIST, required_fields=("document_id",)),
    SyncTable.SESSION_II_EQUIPMENT_USED: TableSpec(
        SyncTable.SESSION_II_EQUIPMENT_USED,
        required_fields=("document_id",),
        date_fields=_DEFAULT_DATE_FIELDS + ("recalibration_date",),
    ),
    SyncTable.CSV_IMPORT_HISTORY: TableSpec(SyncTable.CSV_IMPORT_HISTORY),
}

# Columns the sync engine manages itself; never copied from a remote document as data.
SYNC_MANAGED_COLUMNS = frozenset({
    LOCAL_ID_COLUMN, GLOBAL_ID_COLUMN, ORIGIN_DEVICE_COLUMN, SYNC_FLAG_COLUMN,
    DELETED_COLUMN, CREATED_AT_COLUMN, UPDATED_AT_COLUMN,
})


class TableHandler:
    """
    Table-specific access used by the coordinator: listing dirty rows, local
    lookups by global id or natural key, and writing accepted remote versions.
    """

    def __init__(self, spec: TableSpec, db: LocalSyncDB, tracker: ChangeTracker):
        self.spec = spec
        self.db = db
        self.tracker = tracker
        self._columns: Optional[List[str]] = None

    @property
    def name(self) -> str:
        return self.spec.name

    def exists(self) -> bool:
        return self.db.table_exists(self.name)

    def columns(self, refresh: bool = False) -> List[str]:
        if self._columns is None or refresh:
            self._columns = self.db.get_columns(self.name)
        return self._columns

    # --- Reads ---
    def list_unsynced(self) -> List[Dict[str, Any]]:
        return self.tracker.list_unsynced(self.name)

    def find_by_global_id(self, global_id: str) -> Optional[Dict[str, Any]]:
        if not global_id:
            return None
        return self.db.fetch_one(
            f"SELECT * FROM {self.name} WHERE {GLOBAL_ID_COLUMN} = ? ORDER BY {LOCAL_ID_COLUMN} LIMIT 1",
            (global_id,),
        )

    def natural_key(self, record: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """The natural-key values of `record`, or None if the table has none or a value is missing."""
        if not self.spec.natural_key:
            return None
        values = {}
        for field in self.spec.natural_key:
            value = record.get(field)
            if value is None or value == "":
                return None
            values[field] = value
        return values

    def find_by_natural_key(self, record: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        key = self.natural_key(record)
        if key is None:
            return None
        where = " AND ".join(f"{field} = ?" for field in key)
        return self.db.fetch_one(
            f"SELECT * FROM {self.name} WHERE {where} "
            f"ORDER BY COALESCE({DELETED_COLUMN}, 0), {LOCAL_ID_COLUMN} LIMIT 1",
            tuple(key.values()),
        )

    def missing_required_fields(self, record: Dict[str, Any]) -> List[str]:
        return [f for f in self.spec.required_fields if record.get(f) is None or record.get(f) == ""]

    # --- Writes ---
    def upsert_local(self, values: Dict[str, Any], local_id: Any = None, preferred_text_id: Any = None) -> Any:
        """
        Writes an accepted remote version as a synced local row, in its own transaction.

        With `local_id` the existing row is updated. Otherwise a row is
        inserted; INTEGER keys are assigned by SQLite, TEXT keys use
        `preferred_text_id` when free and the global id otherwise.

        Returns:
            The local primary key of the written row.
        """
        values = {k: v for k, v in values.items() if k != LOCAL_ID_COLUMN}
        values[SYNC_FLAG_COLUMN] = SYNC_STATE_SYNCED
        columns = list(values.keys())
        if not columns:
            raise InputError(f"Nothing to write for table '{self.name}'")

        try:
            with self.db.transaction() as conn:
                if local_id is not None:
                    assignments = ", ".join(f"{c} = ?" for c in columns)
                    conn.execute(
                        f"UPDATE {self.name} SET {assignments} WHERE {LOCAL_ID_COLUMN} = ?",
                        tuple(values[c] for c in columns) + (local_id,),
                    )
                    return local_id

                if self.spec.text_primary_key:
                    new_id = self._choose_text_id(conn, preferred_text_id, values.get(GLOBAL_ID_COLUMN))
                    columns = [LOCAL_ID_COLUMN] + columns
                    values[LOCAL_ID_COLUMN] = new_id
                placeholders = ", ".join("?" for _ in columns)
                cursor = conn.execute(
                    f"INSERT INTO {self.name} ({', '.join(columns)}) VALUES ({placeholders})",
                    tuple(values[c] for c in columns),
                )
                return values[LOCAL_ID_COLUMN] if self.spec.text_primary_key else cursor.lastrowid
        except DatabaseError as e:
            logger.warning(f"Writing remote version into '{self.name}' failed: {e}")
            raise DatabaseError(f"Write into '{self.name}' failed: {e}") from e

    def _choose_text_id(self, conn, preferred: Any, global_id: Optional[str]) -> str:
        for candidate in (preferred, global_id):
            if candidate is None or candidate == "":
                continue
            taken = conn.execute(
                f"SELECT 1 FROM {self.name} WHERE {LOCAL_ID_COLUMN} = ?", (str(candidate),)
            ).fetchone()
            if not taken:
                return str(candidate)
        raise DatabaseError(f"No free primary key for incoming '{self.name}' record {global_id}")

    def mark_synced(self, local_record: Dict[str, Any], synced_at: Optional[str] = None) -> bool:
        """Marks a pushed row synced unless it was modified after `local_record` was read."""
        return self.tracker.mark_synced(
            self.name, local_record[LOCAL_ID_COLUMN], synced_at=synced_at,
            expected_updated_at=local_record.get(UPDATED_AT_COLUMN),
        )


class TableRegistry:
    """Maps each enabled SyncTable to its TableHandler, iterated in processing order."""

    def __init__(self, db: LocalSyncDB, tracker: ChangeTracker, tables: Optional[List[str]] = None):
        if tables is None:
            enabled = list(SyncTable)
        else:
            wanted = {SyncTable.from_name(t) for t in tables}
            enabled = [t for t in SyncTable if t in wanted]
        self._handlers: Dict[SyncTable, TableHandler] = {
            table: TableHandler(TABLE_SPECS[table], db, tracker) for table in enabled
        }

    def __iter__(self) -> Iterator[TableHandler]:
        return iter(self._handlers.values())

    def __len__(self) -> int:
        return len(self._handlers)

    def handler(self, table: "str | SyncTable") -> TableHandler:
        key = SyncTable.from_name(table)
        if key not in self._handlers:
            raise InputError(f"Table '{key.value}' is not enabled for sync")
        return self._handlers[key]

    def names(self) -> List[str]:
        return [table.value for table in self._handlers]

#
# End of Table_Registry.py
########################################################################################################################
