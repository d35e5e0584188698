# Schema_Guard.py
# Description: Brings synced tables up to the column set the sync engine needs, additively and idempotently
#
# Imports
import uuid
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Optional
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
    METADATA_DEVICE_ID_KEY,
    ORIGIN_DEVICE_COLUMN,
    REQUIRED_SYNC_COLUMNS,
    SYNC_FLAG_COLUMN,
    UPDATED_AT_COLUMN,
)
from cabinetpm_sync.DB.Local_Sync_DB import DatabaseError, LocalSyncDB, SchemaError, validate_identifier
from cabinetpm_sync.Utils.Timestamps import utc_now_str
#
########################################################################################################################
#
# Functions:

@dataclass
class TableSchemaResult:
    table: str
    added_columns: List[str] = field(default_factory=list)
    backfilled_rows: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class SchemaGuardReport:
    tables: Dict[str, TableSchemaResult] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return all(result.ok for result in self.tables.values())

    @property
    def ready_tables(self) -> List[str]:
        return [name for name, result in self.tables.items() if result.ok]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "tables": {name: asdict(result) for name, result in self.tables.items()},
        }


class SchemaGuard:
    """
    Adds missing sync columns and backfills rows that predate them.

    Never drops or rewrites existing columns. Running it again on a prepared
    store adds nothing and backfills nothing.
    """

    def __init__(self, db: LocalSyncDB, device_id: Optional[str] = None):
        self.db = db
        self.device_id = device_id

    def ensure_sync_columns(self, table_names: Iterable[str]) -> SchemaGuardReport:
        report = SchemaGuardReport()
        for table in table_names:
            result = TableSchemaResult(table=table)
            report.tables[table] = result
            try:
                validate_identifier(table, "table name")
                if not self.db.table_exists(table):
                    raise SchemaError("Table does not exist", table=table)
                existing = set(self.db.get_columns(table))
                for column, definition in REQUIRED_SYNC_COLUMNS.items():
                    if column in existing:
                        continue
                    if self.db.add_column(table, column, definition):
                        result.added_columns.append(column)
                result.backfilled_rows = self._backfill(table)
            except (SchemaError, DatabaseError, ValueError) as e:
                result.error = str(e)
                logger.error(f"Schema guard could not prepare table '{table}': {e}")
                continue
            if result.added_columns or result.backfilled_rows:
                logger.info(
                    f"Schema guard prepared '{table}': added {result.added_columns or 'no columns'}, "
                    f"backfilled {result.backfilled_rows} row(s)"
                )
        return report

    def _backfill(self, table: str) -> int:
        """Fills sync columns left NULL/empty by rows written before the columns existed."""
        now = utc_now_str()
        touched = 0
        with self.db.transaction() as conn:
            rows = conn.execute(
                f"SELECT {LOCAL_ID_COLUMN} FROM {table} "
                f"WHERE {GLOBAL_ID_COLUMN} IS NULL OR {GLOBAL_ID_COLUMN} = ''"
            ).fetchall()
            for row in rows:
                conn.execute(
                    f"UPDATE {table} SET {GLOBAL_ID_COLUMN} = ? WHERE {LOCAL_ID_COLUMN} = ?",
                    (str(uuid.uuid4()), row[0]),
                )
            touched += len(rows)

            if self.device_id:
                # Synced rows came from (or already reached) the central store; their origin is not ours to claim
                cursor = conn.execute(
                    f"UPDATE {table} SET {ORIGIN_DEVICE_COLUMN} = ? "
                    f"WHERE ({ORIGIN_DEVICE_COLUMN} IS NULL OR {ORIGIN_DEVICE_COLUMN} = '') "
                    f"AND ({SYNC_FLAG_COLUMN} IS NULL OR {SYNC_FLAG_COLUMN} = 0)",
                    (self.device_id,),
                )
                touched += max(cursor.rowcount, 0)

            for statement, params in (
                (f"UPDATE {table} SET {SYNC_FLAG_COLUMN} = 0 WHERE {SYNC_FLAG_COLUMN} IS NULL", ()),
                (f"UPDATE {table} SET {DELETED_COLUMN} = 0 WHERE {DELETED_COLUMN} IS NULL", ()),
                (f"UPDATE {table} SET {CREATED_AT_COLUMN} = ? WHERE {CREATED_AT_COLUMN} IS NULL", (now,)),
                (f"UPDATE {table} SET {UPDATED_AT_COLUMN} = COALESCE({CREATED_AT_COLUMN}, ?) "
                 f"WHERE {UPDATED_AT_COLUMN} IS NULL", (now,)),
            ):
                cursor = conn.execute(statement, params)
                touched += max(cursor.rowcount, 0)
        return touched

    def check_migration_status(self, table_names: Iterable[str]) -> Dict[str, Any]:
        """Read-only report of what `ensure_sync_columns` would still have to do."""
        status: Dict[str, Any] = {
            "device_id_present": bool(self.db.get_metadata(METADATA_DEVICE_ID_KEY)),
            "tables": {},
            "issues": [],
        }
        if not status["device_id_present"]:
            status["issues"].append("Device id not yet generated")

        for table in table_names:
            entry: Dict[str, Any] = {"exists": False, "missing_columns": [], "records_without_global_id": 0}
            status["tables"][table] = entry
            if not self.db.table_exists(table):
                status["issues"].append(f"{table}: table does not exist")
                continue
            entry["exists"] = True
            columns = set(self.db.get_columns(table))
            entry["missing_columns"] = [c for c in REQUIRED_SYNC_COLUMNS if c not in columns]
            if entry["missing_columns"]:
                status["issues"].append(f"{table}: missing columns {', '.join(entry['missing_columns'])}")
            if GLOBAL_ID_COLUMN in columns:
                row = self.db.fetch_one(
                    f"SELECT COUNT(*) AS n FROM {table} WHERE {GLOBAL_ID_COLUMN} IS NULL OR {GLOBAL_ID_COLUMN} = ''"
                )
                entry["records_without_global_id"] = row["n"] if row else 0
                if entry["records_without_global_id"]:
                    status["issues"].append(
                        f"{table}: {entry['records_without_global_id']} record(s) without a global id"
                    )

        status["ready_for_sync"] = not status["issues"]
        return status

#
# End of Schema_Guard.py
########################################################################################################################
