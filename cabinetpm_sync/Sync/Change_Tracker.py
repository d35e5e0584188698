# Change_Tracker.py
# Description: Dirty-flag bookkeeping for local rows of the synced tables
#
# Imports
import uuid
from typing import Any, Dict, List, Optional
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
    SYNC_STATE_UNSYNCED,
    UPDATED_AT_COLUMN,
)
from cabinetpm_sync.DB.Local_Sync_DB import InputError, LocalSyncDB, validate_identifier
from cabinetpm_sync.Sync.Device_Identity import DeviceIdentityProvider
from cabinetpm_sync.Utils.Timestamps import utc_now_str
#
########################################################################################################################
#
# Functions:

_UNCHECKED = object()


class ChangeTracker:
    """
    Marks local rows unsynced on create/update/delete and answers the
    "what still has to be pushed" question per table.

    Deletes are soft: the row stays with `deleted = 1` and is pushed as a tombstone.
    """

    def __init__(self, db: LocalSyncDB, identity: DeviceIdentityProvider):
        self.db = db
        self.identity = identity

    # --- Mutations ---
    def mark_dirty(self, table: str, local_id: Any) -> bool:
        """Flags a row unsynced, stamps this device and the current time. Assigns a global id if missing."""
        validate_identifier(table, "table name")
        now = utc_now_str()
        with self.db.transaction() as conn:
            cursor = conn.execute(
                f"UPDATE {table} SET {SYNC_FLAG_COLUMN} = ?, {ORIGIN_DEVICE_COLUMN} = ?, {UPDATED_AT_COLUMN} = ?, "
                f"{GLOBAL_ID_COLUMN} = COALESCE(NULLIF({GLOBAL_ID_COLUMN}, ''), ?) "
                f"WHERE {LOCAL_ID_COLUMN} = ?",
                (SYNC_STATE_UNSYNCED, self.identity.get_or_create_device_id(), now, str(uuid.uuid4()), local_id),
            )
            found = cursor.rowcount > 0
        if not found:
            logger.warning(f"mark_dirty: no row {local_id} in '{table}'")
        return found

    def mark_deleted(self, table: str, local_id: Any) -> bool:
        """Soft delete. The row is tombstoned, never removed."""
        validate_identifier(table, "table name")
        with self.db.transaction():
            self.db.execute_query(
                f"UPDATE {table} SET {DELETED_COLUMN} = 1 WHERE {LOCAL_ID_COLUMN} = ?", (local_id,)
            )
            return self.mark_dirty(table, local_id)

    def mark_synced(self, table: str, local_id: Any, synced_at: Optional[str] = None,
                    expected_updated_at: Any = _UNCHECKED) -> bool:
        """
        Clears the dirty flag.

        `synced_at` aligns the local updated_at with the value the central store
        holds. With `expected_updated_at`, the row is only marked if it was not
        modified since it was read for the push.

        Returns:
            bool: False if no row matched (missing, or modified in the meantime).
        """
        validate_identifier(table, "table name")
        assignments = f"{SYNC_FLAG_COLUMN} = ?"
        params: list = [SYNC_STATE_SYNCED]
        if synced_at:
            assignments += f", {UPDATED_AT_COLUMN} = ?"
            params.append(synced_at)
        where = f"{LOCAL_ID_COLUMN} = ?"
        params.append(local_id)
        if expected_updated_at is not _UNCHECKED:
            where += f" AND {UPDATED_AT_COLUMN} IS ?"
            params.append(expected_updated_at)
        with self.db.transaction() as conn:
            cursor = conn.execute(f"UPDATE {table} SET {assignments} WHERE {where}", tuple(params))
            marked = cursor.rowcount > 0
        if not marked:
            logger.info(f"{table} row {local_id} changed during push; left unsynced for the next cycle")
        return marked

    def set_all_sync_state(self, table: str, synced: bool) -> int:
        """Sets the flag on every row of the table. Returns the number of rows changed."""
        validate_identifier(table, "table name")
        target = SYNC_STATE_SYNCED if synced else SYNC_STATE_UNSYNCED
        with self.db.transaction() as conn:
            cursor = conn.execute(
                f"UPDATE {table} SET {SYNC_FLAG_COLUMN} = ? "
                f"WHERE {SYNC_FLAG_COLUMN} IS NULL OR {SYNC_FLAG_COLUMN} != ?",
                (target, target),
            )
            return cursor.rowcount

    # --- Queries ---
    def list_unsynced(self, table: str) -> List[Dict[str, Any]]:
        """Rows waiting to be pushed, tombstones included."""
        validate_identifier(table, "table name")
        return self.db.fetch_all(
            f"SELECT * FROM {table} WHERE {SYNC_FLAG_COLUMN} IS NULL OR {SYNC_FLAG_COLUMN} = ? "
            f"ORDER BY {LOCAL_ID_COLUMN}",
            (SYNC_STATE_UNSYNCED,),
        )

    def list_all(self, table: str, include_deleted: bool = False) -> List[Dict[str, Any]]:
        validate_identifier(table, "table name")
        if include_deleted:
            return self.db.fetch_all(f"SELECT * FROM {table} ORDER BY {LOCAL_ID_COLUMN}")
        return self.db.fetch_all(
            f"SELECT * FROM {table} WHERE {DELETED_COLUMN} IS NULL OR {DELETED_COLUMN} = 0 ORDER BY {LOCAL_ID_COLUMN}"
        )

    def count_local(self, table: str) -> int:
        validate_identifier(table, "table name")
        row = self.db.fetch_one(f"SELECT COUNT(*) AS n FROM {table}")
        return row["n"] if row else 0

    def count_unsynced(self, table: str) -> int:
        validate_identifier(table, "table name")
        row = self.db.fetch_one(
            f"SELECT COUNT(*) AS n FROM {table} WHERE {SYNC_FLAG_COLUMN} IS NULL OR {SYNC_FLAG_COLUMN} = ?",
            (SYNC_STATE_UNSYNCED,),
        )
        return row["n"] if row else 0

    # --- Helpers for the CRUD layer ---
    def prepare_new_record(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Returns a copy of `data` carrying the sync columns for an INSERT."""
        if not isinstance(data, dict):
            raise InputError("Record data must be a dict")
        now = utc_now_str()
        prepared = dict(data)
        prepared[GLOBAL_ID_COLUMN] = prepared.get(GLOBAL_ID_COLUMN) or str(uuid.uuid4())
        prepared[ORIGIN_DEVICE_COLUMN] = self.identity.get_or_create_device_id()
        prepared[SYNC_FLAG_COLUMN] = SYNC_STATE_UNSYNCED
        prepared.setdefault(DELETED_COLUMN, 0)
        prepared[CREATED_AT_COLUMN] = prepared.get(CREATED_AT_COLUMN) or now
        prepared[UPDATED_AT_COLUMN] = now
        return prepared

    def prepare_update(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Returns a copy of `data` carrying the sync columns for an UPDATE."""
        if not isinstance(data, dict):
            raise InputError("Record data must be a dict")
        prepared = dict(data)
        prepared[ORIGIN_DEVICE_COLUMN] = self.identity.get_or_create_device_id()
        prepared[SYNC_FLAG_COLUMN] = SYNC_STATE_UNSYNCED
        prepared[UPDATED_AT_COLUMN] = utc_now_str()
        return prepared

#
# End of Change_Tracker.py
########################################################################################################################
