# Sync_Errors.py
# Description: Exceptions raised inside a sync cycle
#
#######################################################################################################################
#
# Functions:

class SyncError(Exception):
    """Base exception for sync engine errors."""
    pass

class SyncInProgressError(SyncError):
    """Raised when a cycle or admin operation is requested while another cycle is running."""
    pass

class TableTimeoutError(SyncError):
    """Raised when a table exceeds its time budget."""
    def __init__(self, table: str, timeout_seconds: float):
        super().__init__(f"Table '{table}' exceeded its sync timeout of {timeout_seconds}s")
        self.table = table
        self.timeout_seconds = timeout_seconds

class RecordValidationError(SyncError):
    """Raised for a single malformed incoming or outgoing record; the record is skipped."""
    def __init__(self, message: str, table: str = None, global_id: str = None):
        super().__init__(message)
        self.table = table
        self.global_id = global_id

    def __str__(self):
        base = super().__str__()
        details = []
        if self.table: details.append(f"Table: {self.table}")
        if self.global_id: details.append(f"Global ID: {self.global_id}")
        return f"{base} ({', '.join(details)})" if details else base

#
# End of Sync_Errors.py
########################################################################################################################
