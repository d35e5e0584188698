# Constants.py
# Description: Column names, metadata keys and table ordering shared by the sync engine
#
# Imports
#
# 3rd-Party Imports
#
# Local Imports
#
########################################################################################################################
#
# Functions:

# --- Sync columns (local SQLite names) ---
LOCAL_ID_COLUMN = "id"
GLOBAL_ID_COLUMN = "uuid"
ORIGIN_DEVICE_COLUMN = "device_id"
SYNC_FLAG_COLUMN = "synced"
DELETED_COLUMN = "deleted"
CREATED_AT_COLUMN = "created_at"
UPDATED_AT_COLUMN = "updated_at"

SYNC_STATE_UNSYNCED = 0
SYNC_STATE_SYNCED = 1

# Column name -> column definition used by the schema guard when a column is missing.
# ALTER TABLE cannot use non-constant defaults, timestamps are backfilled instead.
REQUIRED_SYNC_COLUMNS = {
    GLOBAL_ID_COLUMN: "TEXT",
    SYNC_FLAG_COLUMN: "INTEGER DEFAULT 0",
    ORIGIN_DEVICE_COLUMN: "TEXT DEFAULT ''",
    DELETED_COLUMN: "INTEGER DEFAULT 0",
    CREATED_AT_COLUMN: "TEXT",
    UPDATED_AT_COLUMN: "TEXT",
}

# --- Remote document field names ---
REMOTE_GLOBAL_ID = "global_id"
REMOTE_ORIGIN_DEVICE = "origin_device"
REMOTE_DELETED = "deleted"
REMOTE_CREATED_AT = "created_at"
REMOTE_UPDATED_AT = "updated_at"
REMOTE_EDITED_AT = "edited_at"
REMOTE_ORIGIN_LOCAL_ID = "origin_local_id"

# --- Local metadata area ---
METADATA_TABLE = "sync_metadata"
METADATA_DEVICE_ID_KEY = "device_id"
METADATA_CURSOR_PREFIX = "last_sync_"

# --- Timestamps ---
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

# --- Synced tables, in processing order ---
SYNC_TABLE_ORDER = [
    "users",
    "customers",
    "sessions",
    "cabinets",
    "nodes",
    "session_node_maintenance",
    "session_node_tracker",
    "cabinet_locations",
    "session_pm_notes",
    "session_ii_documents",
    "session_ii_equipment",
    "session_ii_checklist",
    "session_ii_equipment_used",
    "csv_import_history",
]

# --- Coordinator states ---
STATE_IDLE = "idle"
STATE_CONNECTING = "connecting"
STATE_PULLING = "pulling"
STATE_PUSHING = "pushing"
STATE_FAILED = "failed"

SYNC_IN_PROGRESS_MESSAGE = "sync already in progress"
SYNC_CANCELLED_MESSAGE = "cancelled"

#
# End of Constants.py
########################################################################################################################
