# Identity_Reconciler.py
# Description: Maps records between the local primary-key space and the global id space
#
# Imports
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
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
    REMOTE_CREATED_AT,
    REMOTE_DELETED,
    REMOTE_EDITED_AT,
    REMOTE_GLOBAL_ID,
    REMOTE_ORIGIN_DEVICE,
    REMOTE_ORIGIN_LOCAL_ID,
    REMOTE_UPDATED_AT,
    SYNC_FLAG_COLUMN,
    UPDATED_AT_COLUMN,
)
from cabinetpm_sync.central_api.base import CentralStore
from cabinetpm_sync.DB.Local_Sync_DB import LocalSyncDB
from cabinetpm_sync.Sync.Table_Registry import SYNC_MANAGED_COLUMNS, TableHandler, TableRegistry
#
########################################################################################################################
#
# Functions:

TIER_GLOBAL_ID = "global_id"
TIER_NATURAL_KEY = "natural_key"
TIER_NEW = "new"

_REMOTE_SYNC_FIELDS = frozenset({
    REMOTE_GLOBAL_ID, REMOTE_ORIGIN_DEVICE, REMOTE_DELETED,
    REMOTE_CREATED_AT, REMOTE_UPDATED_AT, REMOTE_EDITED_AT, REMOTE_ORIGIN_LOCAL_ID,
})


@dataclass
class LocalMatch:
    """Where an incoming record lands locally."""
    tier: str
    local: Optional[Dict[str, Any]] = None
    local_form: Dict[str, Any] = field(default_factory=dict)

    @property
    def local_id(self) -> Any:
        return self.local.get(LOCAL_ID_COLUMN) if self.local else None


class IdentityReconciler:
    """
    Global ids are assigned once and never change, except when a device
    discovers that the same logical row (same natural key) already has a
    global id elsewhere; the local row then adopts that id.
    """

    def __init__(self, db: LocalSyncDB, registry: TableRegistry):
        self.db = db
        self.registry = registry

    def _handler(self, table: str) -> TableHandler:
        return self.registry.handler(table)

    # --- Local -> global ---
    def assign_global_id(self, table: str, local_record: Dict[str, Any]) -> str:
        """Returns the record's global id, generating and persisting one if it has none."""
        existing = local_record.get(GLOBAL_ID_COLUMN)
        if existing:
            return existing
        new_id = str(uuid.uuid4())
        with self.db.transaction() as conn:
            conn.execute(
                f"UPDATE {self._handler(table).name} SET {GLOBAL_ID_COLUMN} = ? WHERE {LOCAL_ID_COLUMN} = ?",
                (new_id, local_record.get(LOCAL_ID_COLUMN)),
            )
        local_record[GLOBAL_ID_COLUMN] = new_id
        logger.debug(f"Assigned global id {new_id} to {table} row {local_record.get(LOCAL_ID_COLUMN)}")
        return new_id

    def adopt_global_id(self, table: str, local_id: Any, global_id: str):
        with self.db.transaction() as conn:
            conn.execute(
                f"UPDATE {self._handler(table).name} SET {GLOBAL_ID_COLUMN} = ? WHERE {LOCAL_ID_COLUMN} = ?",
                (global_id, local_id),
            )

    def to_remote_document(self, table: str, local_record: Dict[str, Any],
                           origin_device: Optional[str] = None, updated_at: Optional[str] = None) -> Dict[str, Any]:
        """
        Central form of a local row: data columns plus sync fields, without the local primary key.

        `updated_at` overrides the document's central timestamp (the push time);
        `edited_at` always carries the row's own last-change time.
        """
        doc = {k: v for k, v in local_record.items() if k not in SYNC_MANAGED_COLUMNS}
        doc[REMOTE_GLOBAL_ID] = local_record.get(GLOBAL_ID_COLUMN)
        doc[REMOTE_ORIGIN_DEVICE] = origin_device or local_record.get(ORIGIN_DEVICE_COLUMN)
        doc[REMOTE_DELETED] = bool(local_record.get(DELETED_COLUMN))
        doc[REMOTE_CREATED_AT] = local_record.get(CREATED_AT_COLUMN)
        doc[REMOTE_UPDATED_AT] = updated_at or local_record.get(UPDATED_AT_COLUMN)
        doc[REMOTE_EDITED_AT] = local_record.get(UPDATED_AT_COLUMN)
        doc[REMOTE_ORIGIN_LOCAL_ID] = local_record.get(LOCAL_ID_COLUMN)
        return doc

    def reconcile_push_identity(self, table: str, local_record: Dict[str, Any], store: CentralStore) -> str:
        """
        Before the first push of a row, checks whether the central store
        already holds the same logical row under another global id and, if
        so, adopts that id so the push replaces it instead of duplicating it.
        """
        handler = self._handler(table)
        global_id = self.assign_global_id(table, local_record)
        key = handler.natural_key(local_record)
        if key is None:
            return global_id
        if store.get(handler.name, global_id) is not None:
            return global_id
        existing = store.find_by_natural_key(handler.name, key)
        if existing and existing.get(REMOTE_GLOBAL_ID) and existing[REMOTE_GLOBAL_ID] != global_id:
            adopted = existing[REMOTE_GLOBAL_ID]
            holder = handler.find_by_global_id(adopted)
            if holder is not None and holder.get(LOCAL_ID_COLUMN) != local_record.get(LOCAL_ID_COLUMN):
                # Another local row already carries that id; a global id maps to one local row
                logger.warning(
                    f"{table} row {local_record.get(LOCAL_ID_COLUMN)} matches central {adopted} by natural key, "
                    f"but local row {holder.get(LOCAL_ID_COLUMN)} already holds it; keeping {global_id}"
                )
                return global_id
            logger.info(
                f"{table} row {local_record.get(LOCAL_ID_COLUMN)} matches central {adopted} by natural key "
                f"{key}; adopting its global id (was {global_id})"
            )
            self.adopt_global_id(table, local_record.get(LOCAL_ID_COLUMN), adopted)
            local_record[GLOBAL_ID_COLUMN] = adopted
            return adopted
        return global_id

    # --- Global -> local ---
    def to_local_row(self, table: str, remote_doc: Dict[str, Any]) -> Dict[str, Any]:
        """Local column values for a remote document, restricted to columns the local table has."""
        columns = set(self._handler(table).columns())
        row = {
            k: v for k, v in remote_doc.items()
            if k not in _REMOTE_SYNC_FIELDS and k not in SYNC_MANAGED_COLUMNS and k in columns
        }
        row[GLOBAL_ID_COLUMN] = remote_doc.get(REMOTE_GLOBAL_ID)
        row[ORIGIN_DEVICE_COLUMN] = remote_doc.get(REMOTE_ORIGIN_DEVICE) or ""
        row[DELETED_COLUMN] = 1 if remote_doc.get(REMOTE_DELETED) else 0
        if remote_doc.get(REMOTE_CREATED_AT):
            row[CREATED_AT_COLUMN] = remote_doc.get(REMOTE_CREATED_AT)
        row[UPDATED_AT_COLUMN] = remote_doc.get(REMOTE_UPDATED_AT)
        return {k: v for k, v in row.items() if k in columns and k != SYNC_FLAG_COLUMN}

    def map_incoming(self, table: str, remote_doc: Dict[str, Any]) -> LocalMatch:
        """
        Finds the local counterpart of an incoming record.

        1. Same global id.
        2. Same natural key (tables that declare one); the local row adopts
           the incoming global id in place, whatever the value decision later is.
        3. Nothing: the record is new locally.
        """
        handler = self._handler(table)
        local_form = self.to_local_row(table, remote_doc)
        global_id = remote_doc.get(REMOTE_GLOBAL_ID)

        local = handler.find_by_global_id(global_id)
        if local is not None:
            return LocalMatch(TIER_GLOBAL_ID, local, local_form)

        local = handler.find_by_natural_key(remote_doc)
        if local is not None:
            previous = local.get(GLOBAL_ID_COLUMN)
            logger.info(
                f"{table} {global_id} matches local row {local.get(LOCAL_ID_COLUMN)} by natural key; "
                f"adopting incoming global id (was {previous})"
            )
            self.adopt_global_id(table, local.get(LOCAL_ID_COLUMN), global_id)
            local[GLOBAL_ID_COLUMN] = global_id
            return LocalMatch(TIER_NATURAL_KEY, local, local_form)

        return LocalMatch(TIER_NEW, None, local_form)

#
# End of Identity_Reconciler.py
########################################################################################################################
