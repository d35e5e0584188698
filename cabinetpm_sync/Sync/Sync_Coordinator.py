# Sync_Coordinator.py
#########################################
# Sync Coordinator
# Orchestrates pull/push cycles between one local store and the central store.
#
# A cycle moves IDLE -> CONNECTING -> PULLING -> PUSHING -> IDLE, or ends in
# FAILED when it cannot start (central store unreachable). Tables are
# processed one at a time in the registry order; each table is independent, so
# a failing table is reported and the cycle moves on to the next one.
#
# Key rules:
# - One cycle per local store at a time, across all coordinators of this process.
#   A concurrent request is rejected, never queued.
# - A full sync always pulls before it pushes.
# - The central session is opened at the start of a cycle and closed on every exit path.
# - The pull cursor of a table is written only after that table's pull completed.
# - Cancellation is honoured between tables only.
####
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Tuple
#
# 3rd-Party Imports
from loguru import logger
#
# Local Imports
from cabinetpm_sync.Constants import (
    DELETED_COLUMN,
    GLOBAL_ID_COLUMN,
    LOCAL_ID_COLUMN,
    METADATA_CURSOR_PREFIX,
    REMOTE_DELETED,
    REMOTE_EDITED_AT,
    REMOTE_GLOBAL_ID,
    REMOTE_ORIGIN_LOCAL_ID,
    REMOTE_UPDATED_AT,
    STATE_CONNECTING,
    STATE_FAILED,
    STATE_IDLE,
    STATE_PULLING,
    STATE_PUSHING,
    SYNC_CANCELLED_MESSAGE,
    SYNC_FLAG_COLUMN,
    SYNC_IN_PROGRESS_MESSAGE,
    SYNC_STATE_SYNCED,
    UPDATED_AT_COLUMN,
)
from cabinetpm_sync.DB.Local_Sync_DB import DatabaseError, LocalSyncDB
from cabinetpm_sync.DB.Schema_Guard import SchemaGuard, SchemaGuardReport
from cabinetpm_sync.Metrics.metrics_logger import MetricsLogger
from cabinetpm_sync.Sync.Change_Tracker import ChangeTracker
from cabinetpm_sync.Sync.Conflict_Resolver import ConflictPolicy, ConflictResolver, DEFAULT_CONFLICT_POLICY
from cabinetpm_sync.Sync.Device_Identity import DeviceIdentityProvider
from cabinetpm_sync.Sync.Identity_Reconciler import IdentityReconciler
from cabinetpm_sync.Sync.Sync_Errors import RecordValidationError, SyncInProgressError, TableTimeoutError
from cabinetpm_sync.Sync.Sync_Reports import PullReport, PushReport, SyncReport, TablePullResult, TablePushResult
from cabinetpm_sync.Sync.Table_Registry import TableHandler, TableRegistry
from cabinetpm_sync.Utils.Timestamps import parse_timestamp, try_parse_timestamp, utc_now_str
from cabinetpm_sync.central_api.base import CentralStore
from cabinetpm_sync.central_api.client import HttpCentralStore
from cabinetpm_sync.central_api.exceptions import CentralConnectionError, CentralStoreError
#
########################################################################################################################
#
# Functions:

def cursor_key(table: str) -> str:
    return f"{METADATA_CURSOR_PREFIX}{table}"


# One cycle lock per local store file, shared by every coordinator in this process
_STORE_CYCLE_LOCKS: Dict[str, threading.Lock] = {}
_STORE_CYCLE_LOCKS_GUARD = threading.Lock()


def store_cycle_lock(db_path: str) -> threading.Lock:
    with _STORE_CYCLE_LOCKS_GUARD:
        lock = _STORE_CYCLE_LOCKS.get(db_path)
        if lock is None:
            lock = _STORE_CYCLE_LOCKS[db_path] = threading.Lock()
        return lock


def _has_text_affinity(declared_type: str) -> bool:
    return any(marker in declared_type for marker in ("CHAR", "CLOB", "TEXT"))


class SyncCoordinator:
    """
    Entry point of the sync engine for one local store.

    Construct it explicitly with the local store and a central store adapter,
    use it, and `close()` it (or use it as a context manager). All public
    operations return structured results carrying `success` and `error`;
    only unexpected internal errors propagate.
    """

    def __init__(
        self,
        db: LocalSyncDB,
        central_store: CentralStore,
        *,
        tables: Optional[List[str]] = None,
        conflict_policy: "str | ConflictPolicy" = DEFAULT_CONFLICT_POLICY,
        table_timeout_seconds: Optional[float] = 120.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.db = db
        self.store = central_store
        self.identity = DeviceIdentityProvider(db)
        self.tracker = ChangeTracker(db, self.identity)
        self.registry = TableRegistry(db, self.tracker, tables)
        self.reconciler = IdentityReconciler(db, self.registry)
        self.resolver = ConflictResolver(ConflictPolicy.from_value(conflict_policy))
        self.table_timeout_seconds = table_timeout_seconds
        self._clock = clock

        self._cycle_lock = store_cycle_lock(self.db.db_path_str)
        self._cancel_event = threading.Event()
        self._state = STATE_IDLE
        self._state_lock = threading.Lock()
        self.last_report: Optional[SyncReport] = None
        self.metrics = MetricsLogger({"component": "sync"})
        logger.info(
            f"SyncCoordinator initialized for {self.db.db_path_str} "
            f"({len(self.registry)} tables, policy '{self.resolver.policy.value}')"
        )

    @classmethod
    def from_settings(cls, settings, central_store: Optional[CentralStore] = None) -> "SyncCoordinator":
        """Builds a coordinator from `SyncSettings`; the HTTP adapter is used unless a store is given."""
        if central_store is None:
            if not settings.central_url:
                raise ValueError("No central store URL configured ([central].url)")
            central_store = HttpCentralStore(
                settings.central_url,
                token=settings.api_token,
                connect_timeout=settings.connect_timeout,
                request_timeout=settings.request_timeout,
            )
        return cls(
            LocalSyncDB(settings.local_db_path),
            central_store,
            tables=settings.sync_tables,
            conflict_policy=settings.conflict_policy,
            table_timeout_seconds=settings.table_timeout_seconds,
        )

    # --- Lifecycle ---
    def close(self):
        self.store.close()
        self.db.close_connection()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    @property
    def state(self) -> str:
        with self._state_lock:
            return self._state

    def _set_state(self, new_state: str):
        with self._state_lock:
            old, self._state = self._state, new_state
        if old != new_state:
            logger.debug(f"Sync state: {old} -> {new_state}")

    @property
    def is_running(self) -> bool:
        return self._cycle_lock.locked()

    def _acquire_cycle(self, operation: str):
        """Takes the cycle lock without waiting; the caller releases it."""
        if not self._cycle_lock.acquire(blocking=False):
            logger.warning(f"{operation} requested while a sync cycle is running; rejected")
            raise SyncInProgressError(SYNC_IN_PROGRESS_MESSAGE)

    def cancel(self):
        """Requests cancellation; the running cycle stops at the next table boundary."""
        if self.is_running:
            logger.info("Sync cancellation requested")
            self._cancel_event.set()

    def set_conflict_policy(self, policy: "str | ConflictPolicy") -> Dict[str, Any]:
        try:
            self.resolver.set_policy(policy)
        except ValueError as e:
            return {"success": False, "error": str(e), "conflict_policy": self.resolver.policy.value}
        return {"success": True, "error": None, "conflict_policy": self.resolver.policy.value}

    # --- Public sync operations ---
    def run_full_sync(self) -> SyncReport:
        return self._run_cycle(do_pull=True, do_push=True)

    def run_pull_only(self) -> PullReport:
        report = self._run_cycle(do_pull=True, do_push=False)
        return report.pull_result or PullReport(success=False, error=report.error)

    def run_push_only(self) -> PushReport:
        report = self._run_cycle(do_pull=False, do_push=True)
        return report.push_result or PushReport(success=False, error=report.error)

    def _run_cycle(self, do_pull: bool, do_push: bool) -> SyncReport:
        try:
            self._acquire_cycle("Sync")
        except SyncInProgressError as e:
            return SyncReport(success=False, error=str(e))

        started = time.perf_counter()
        report = SyncReport()
        try:
            self._cancel_event.clear()
            self.resolver.reset()
            self._set_state(STATE_CONNECTING)
            device_id = self.identity.get_or_create_device_id()
            if not self.identity.durable:
                logger.critical("Device id is not durable; continuing with a process-local id")

            try:
                self.store.connect()
            except CentralStoreError as e:
                self._set_state(STATE_FAILED)
                report.success = False
                report.error = f"connectivity error: {e}"
                logger.error(f"Sync aborted, central store unreachable: {e}")
                self.metrics.log_counter("sync_cycles_total", labels={"status": "connect_failed"})
                return report

            try:
                schema_errors = self._prepare_schema(device_id)
                cancelled = False
                if do_pull:
                    self._set_state(STATE_PULLING)
                    report.pull_result, cancelled = self._pull_all(device_id, schema_errors)
                if do_push and not cancelled:
                    self._set_state(STATE_PUSHING)
                    report.push_result, cancelled = self._push_all(device_id, schema_errors)
                if cancelled:
                    report.success = False
                    report.error = SYNC_CANCELLED_MESSAGE
                    for partial in (report.pull_result, report.push_result):
                        if partial is not None:
                            partial.success = False
                            partial.error = SYNC_CANCELLED_MESSAGE
            finally:
                self._close_store()

            self._set_state(STATE_IDLE)
            report.duration_seconds = time.perf_counter() - started
            self._log_cycle_metrics(report)
            logger.success(
                f"Sync cycle finished in {report.duration_seconds:.2f}s: "
                f"pulled {report.pull_result.total_pulled if report.pull_result else 0}, "
                f"pushed {report.push_result.total_pushed if report.push_result else 0}, "
                f"conflicts {report.pull_result.total_conflicts if report.pull_result else 0}"
                + (f" ({report.error})" if report.error else "")
            )
            return report
        except Exception:
            self._set_state(STATE_FAILED)
            logger.exception("Unexpected error during sync cycle")
            raise
        finally:
            self.last_report = report
            self._cycle_lock.release()

    def _close_store(self):
        try:
            self.store.close()
        except CentralStoreError as e:
            logger.warning(f"Error closing central store session: {e}")

    def _prepare_schema(self, device_id: str) -> Dict[str, str]:
        """Runs the schema guard; returns {table: error} for tables that cannot be synced."""
        guard_report = SchemaGuard(self.db, device_id).ensure_sync_columns(self.registry.names())
        errors = {name: result.error for name, result in guard_report.tables.items() if result.error}
        for handler in self.registry:
            handler.columns(refresh=True)
            if handler.name not in errors:
                pk_error = self._check_primary_key(handler)
                if pk_error:
                    errors[handler.name] = pk_error
        return errors

    def _check_primary_key(self, handler: TableHandler) -> Optional[str]:
        """Incoming rows get text or integer local ids by table; the real key has to agree."""
        primary_key = self.db.get_primary_key(handler.name)
        if primary_key is None:
            return None
        column, declared_type = primary_key
        if column != LOCAL_ID_COLUMN:
            return None
        if _has_text_affinity(declared_type) == handler.spec.text_primary_key:
            return None
        message = (
            f"primary key '{column}' is declared {declared_type or 'untyped'}, "
            f"expected {handler.spec.pk_type}"
        )
        logger.error(f"Table '{handler.name}' cannot be synced: {message}")
        return message

    # --- Deadlines ---
    def _deadline(self) -> Optional[float]:
        if self.table_timeout_seconds is None:
            return None
        return self._clock() + self.table_timeout_seconds

    def _check_deadline(self, table: str, deadline: Optional[float]):
        if deadline is not None and self._clock() >= deadline:
            raise TableTimeoutError(table, self.table_timeout_seconds)

    # --- Pull ---
    def _pull_all(self, device_id: str, schema_errors: Dict[str, str]) -> Tuple[PullReport, bool]:
        report = PullReport()
        handlers = list(self.registry)
        for index, handler in enumerate(handlers):
            if self._cancel_event.is_set():
                for remaining in handlers[index:]:
                    report.per_table[remaining.name] = TablePullResult(cancelled=True)
                logger.info(f"Pull cancelled before '{handler.name}'")
                report.conflicts = list(self.resolver.conflicts)
                return report, True
            if handler.name in schema_errors:
                report.per_table[handler.name] = TablePullResult(error=f"schema error: {schema_errors[handler.name]}")
                continue
            report.per_table[handler.name] = self._pull_table_guarded(handler, device_id)
        report.conflicts = list(self.resolver.conflicts)
        return report, False

    def _pull_table_guarded(self, handler: TableHandler, device_id: str) -> TablePullResult:
        result = TablePullResult()
        table_metrics = self.metrics.with_labels({"table": handler.name, "phase": "pull"})
        try:
            with table_metrics.timer("sync_table_duration_seconds"):
                self._pull_table(handler, device_id, result)
        except (TableTimeoutError, CentralStoreError, DatabaseError) as e:
            result.error = str(e)
            logger.error(f"Pull of '{handler.name}' failed: {e}")
            table_metrics.log_counter("sync_table_errors_total")
        return result

    def _pull_table(self, handler: TableHandler, device_id: str, result: TablePullResult):
        table = handler.name
        deadline = self._deadline()
        key = cursor_key(table)
        since = self.db.get_metadata(key)
        # Captured before the fetch: anything written after this moment is fetched next time
        pull_started = utc_now_str()

        self._check_deadline(table, deadline)
        records = self.store.fetch_changed(table, since, exclude_device=device_id)
        logger.debug(f"Pull '{table}': {len(records)} candidate record(s) since {since or 'beginning'}")

        for remote in records:
            self._check_deadline(table, deadline)
            try:
                self._apply_remote(handler, remote, device_id, result)
            except (RecordValidationError, DatabaseError) as e:
                result.errors += 1
                logger.warning(f"Skipping incoming {table} record {remote.get(REMOTE_GLOBAL_ID)}: {e}")

        new_cursor = pull_started
        since_dt = try_parse_timestamp(since)
        if since_dt is not None and since_dt > parse_timestamp(pull_started):
            new_cursor = since
        self.db.set_metadata(key, new_cursor)
        if result.pulled or result.conflicts or result.errors:
            logger.info(
                f"Pulled '{table}': {result.pulled} applied ({result.deleted} deletes), "
                f"{result.conflicts} conflict(s), {result.errors} error(s)"
            )

    def _validate_incoming(self, handler: TableHandler, remote: Dict[str, Any]):
        global_id = remote.get(REMOTE_GLOBAL_ID)
        if not global_id:
            raise RecordValidationError("Incoming record has no global id", table=handler.name)
        missing = handler.missing_required_fields(remote)
        if missing:
            raise RecordValidationError(
                f"Missing required field(s): {', '.join(missing)}", table=handler.name, global_id=global_id
            )
        try:
            parse_timestamp(remote.get(REMOTE_UPDATED_AT))
            if remote.get(REMOTE_EDITED_AT):
                parse_timestamp(remote.get(REMOTE_EDITED_AT))
            for date_field in handler.spec.date_fields:
                value = remote.get(date_field)
                if value not in (None, ""):
                    parse_timestamp(value)
        except ValueError as e:
            raise RecordValidationError(str(e), table=handler.name, global_id=global_id) from e

    def _apply_remote(self, handler: TableHandler, remote: Dict[str, Any], device_id: str,
                      result: TablePullResult):
        self._validate_incoming(handler, remote)
        table = handler.name
        match = self.reconciler.map_incoming(table, remote)
        resolution = self.resolver.resolve(table, match.local, remote, device_id)
        if resolution.conflict is not None:
            result.conflicts += 1
        if not resolution.apply_remote:
            return

        if remote.get(REMOTE_DELETED):
            if match.local is None:
                # Never had it; nothing to tombstone
                result.skipped += 1
                return
            handler.upsert_local(match.local_form, local_id=match.local_id)
            result.pulled += 1
            result.deleted += 1
            return

        handler.upsert_local(
            match.local_form,
            local_id=match.local_id,
            preferred_text_id=remote.get(REMOTE_ORIGIN_LOCAL_ID),
        )
        result.pulled += 1

    # --- Push ---
    def _push_all(self, device_id: str, schema_errors: Dict[str, str]) -> Tuple[PushReport, bool]:
        report = PushReport()
        handlers = list(self.registry)
        for index, handler in enumerate(handlers):
            if self._cancel_event.is_set():
                for remaining in handlers[index:]:
                    report.per_table[remaining.name] = TablePushResult(cancelled=True)
                logger.info(f"Push cancelled before '{handler.name}'")
                return report, True
            if handler.name in schema_errors:
                report.per_table[handler.name] = TablePushResult(error=f"schema error: {schema_errors[handler.name]}")
                continue
            result = TablePushResult()
            table_metrics = self.metrics.with_labels({"table": handler.name, "phase": "push"})
            try:
                with table_metrics.timer("sync_table_duration_seconds"):
                    self._push_table(handler, device_id, result)
            except (TableTimeoutError, CentralConnectionError, DatabaseError) as e:
                result.error = str(e)
                logger.error(f"Push of '{handler.name}' failed: {e}")
                table_metrics.log_counter("sync_table_errors_total")
            report.per_table[handler.name] = result
        return report, False

    def _push_table(self, handler: TableHandler, device_id: str, result: TablePushResult):
        table = handler.name
        deadline = self._deadline()
        self._check_deadline(table, deadline)
        records = handler.list_unsynced()
        if records:
            logger.debug(f"Push '{table}': {len(records)} unsynced record(s)")
        for local in records:
            self._check_deadline(table, deadline)
            try:
                self._push_record(handler, local, device_id, result)
            except CentralConnectionError:
                raise
            except (RecordValidationError, CentralStoreError, DatabaseError) as e:
                result.errors += 1
                logger.warning(f"Could not push {table} row {local.get(LOCAL_ID_COLUMN)}: {e}")
        if result.pushed or result.deleted or result.errors:
            logger.info(f"Pushed '{table}': {result.pushed} upserted, {result.deleted} deleted, {result.errors} error(s)")

    def _push_record(self, handler: TableHandler, local: Dict[str, Any], device_id: str, result: TablePushResult):
        table = handler.name
        missing = handler.missing_required_fields(local)
        if missing:
            raise RecordValidationError(
                f"Missing required field(s): {', '.join(missing)}", table=table,
                global_id=local.get(GLOBAL_ID_COLUMN),
            )
        global_id = self.reconciler.reconcile_push_identity(table, local, self.store)
        pushed_at = utc_now_str()

        if local.get(DELETED_COLUMN):
            found = self.store.tombstone(table, global_id, device_id, pushed_at,
                                         edited_at=local.get(UPDATED_AT_COLUMN))
            if not found:
                logger.debug(f"{table} {global_id} deleted before it ever reached the central store")
            result.deleted += 1
        else:
            document = self.reconciler.to_remote_document(table, local, origin_device=device_id, updated_at=pushed_at)
            self.store.upsert(table, document)
            result.pushed += 1
        handler.mark_synced(local, synced_at=pushed_at)

    # --- Metrics ---
    def _log_cycle_metrics(self, report: SyncReport):
        labels = {"status": "success" if report.success else "incomplete"}
        self.metrics.log_counter("sync_cycles_total", labels=labels)
        self.metrics.log_histogram("sync_cycle_duration_seconds", report.duration_seconds, labels=labels)
        self.metrics.log_resource_usage()
        if report.pull_result:
            self.metrics.log_counter("sync_records_pulled_total", report.pull_result.total_pulled)
            self.metrics.log_counter("sync_conflicts_total", report.pull_result.total_conflicts)
            self.metrics.log_counter("sync_record_errors_total", report.pull_result.total_errors, labels={"phase": "pull"})
        if report.push_result:
            self.metrics.log_counter("sync_records_pushed_total", report.push_result.total_pushed)
            self.metrics.log_counter("sync_record_errors_total", report.push_result.total_errors, labels={"phase": "push"})

    # --- Status and diagnostics (never connect) ---
    def get_status(self) -> Dict[str, Any]:
        per_table: Dict[str, Any] = {}
        for handler in self.registry:
            if not handler.exists():
                per_table[handler.name] = {"error": "table does not exist"}
                continue
            try:
                per_table[handler.name] = {
                    "local_count": self.tracker.count_local(handler.name),
                    "unsynced_count": self.tracker.count_unsynced(handler.name),
                    "last_sync_time": self.db.get_metadata(cursor_key(handler.name)),
                }
            except DatabaseError as e:
                per_table[handler.name] = {"error": str(e)}
        return {
            "device_id": self.identity.get_or_create_device_id(),
            "device_id_durable": self.identity.durable,
            "state": self.state,
            "sync_in_progress": self.is_running,
            "connected": self.store.is_connected,
            "conflict_policy": self.resolver.policy.value,
            "per_table": per_table,
        }

    def get_device_info(self) -> Dict[str, Any]:
        info = self.identity.get_device_info()
        info["sync_tables"] = self.registry.names()
        info["conflict_policy"] = self.resolver.policy.value
        return info

    def get_unsynced_counts(self) -> Dict[str, int]:
        return {
            handler.name: self.tracker.count_unsynced(handler.name)
            for handler in self.registry if handler.exists()
        }

    def get_last_sync_times(self) -> Dict[str, Optional[str]]:
        return {handler.name: self.db.get_metadata(cursor_key(handler.name)) for handler in self.registry}

    def ensure_schema(self) -> Dict[str, Any]:
        report: SchemaGuardReport = SchemaGuard(self.db, self.identity.get_or_create_device_id()).ensure_sync_columns(
            self.registry.names()
        )
        return report.to_dict()

    def check_migration_status(self) -> Dict[str, Any]:
        return SchemaGuard(self.db).check_migration_status(self.registry.names())

    # --- Administrative operations ---
    def force_mark_all_synced(self) -> Dict[str, Any]:
        """Marks every local row synced without pushing it. Bypasses conflict resolution."""
        try:
            self._acquire_cycle("force_mark_all_synced")
        except SyncInProgressError as e:
            return {"success": False, "error": str(e), "total_marked": 0, "per_table": {}}
        try:
            per_table: Dict[str, Any] = {}
            for handler in self.registry:
                if not handler.exists():
                    per_table[handler.name] = {"error": "table does not exist"}
                    continue
                per_table[handler.name] = {"marked": self.tracker.set_all_sync_state(handler.name, synced=True)}
            total = sum(entry.get("marked", 0) for entry in per_table.values())
            logger.warning(f"Force-marked {total} record(s) as synced")
            return {"success": True, "error": None, "total_marked": total, "per_table": per_table}
        except DatabaseError as e:
            logger.error(f"force_mark_all_synced failed: {e}")
            return {"success": False, "error": str(e), "total_marked": 0, "per_table": {}}
        finally:
            self._cycle_lock.release()

    def reset_sync_state(self) -> Dict[str, Any]:
        """Marks every local row unsynced and clears every pull cursor, forcing a full re-sync."""
        try:
            self._acquire_cycle("reset_sync_state")
        except SyncInProgressError as e:
            return {"success": False, "error": str(e), "total_reset": 0,
                    "per_table": {}, "cursors_cleared": 0}
        try:
            per_table: Dict[str, Any] = {}
            cursors_cleared = 0
            for handler in self.registry:
                if self.db.delete_metadata(cursor_key(handler.name)):
                    cursors_cleared += 1
                if not handler.exists():
                    per_table[handler.name] = {"error": "table does not exist"}
                    continue
                per_table[handler.name] = {"reset": self.tracker.set_all_sync_state(handler.name, synced=False)}
            total = sum(entry.get("reset", 0) for entry in per_table.values())
            logger.warning(f"Sync state reset: {total} record(s) marked unsynced, {cursors_cleared} cursor(s) cleared")
            return {"success": True, "error": None, "total_reset": total,
                    "per_table": per_table, "cursors_cleared": cursors_cleared}
        except DatabaseError as e:
            logger.error(f"reset_sync_state failed: {e}")
            return {"success": False, "error": str(e), "total_reset": 0, "per_table": {}, "cursors_cleared": 0}
        finally:
            self._cycle_lock.release()

    # --- Operations that open their own central session ---
    def test_connection(self) -> Dict[str, Any]:
        try:
            self._acquire_cycle("test_connection")
        except SyncInProgressError as e:
            return {"success": False, "error": str(e)}
        try:
            started = time.perf_counter()
            with self.store.session() as store:
                server = store.ping()
            latency_ms = (time.perf_counter() - started) * 1000
            logger.info(f"Central store reachable ({latency_ms:.0f} ms)")
            return {"success": True, "error": None, "latency_ms": round(latency_ms, 1), "server": server}
        except CentralStoreError as e:
            logger.warning(f"Central store connection test failed: {e}")
            return {"success": False, "error": str(e)}
        finally:
            self._cycle_lock.release()

    def detect_orphans(self) -> Dict[str, Any]:
        """
        Lists synced local rows whose global id has no live document centrally.

        Read-only: orphans are reported, never deleted.
        """
        try:
            self._acquire_cycle("detect_orphans")
        except SyncInProgressError as e:
            return {"success": False, "error": str(e), "per_table": {}}
        try:
            per_table: Dict[str, Any] = {}
            with self.store.session() as store:
                for handler in self.registry:
                    if not handler.exists():
                        continue
                    central_ids = set(store.list_global_ids(handler.name))
                    orphans = [
                        row[LOCAL_ID_COLUMN] for row in self.tracker.list_all(handler.name)
                        if row.get(GLOBAL_ID_COLUMN)
                        and row.get(SYNC_FLAG_COLUMN) == SYNC_STATE_SYNCED
                        and row[GLOBAL_ID_COLUMN] not in central_ids
                    ]
                    per_table[handler.name] = {"count": len(orphans), "local_ids": orphans}
            total = sum(entry["count"] for entry in per_table.values())
            if total:
                logger.warning(f"Found {total} local record(s) without a live central document")
            return {"success": True, "error": None, "total_orphans": total, "per_table": per_table}
        except (CentralStoreError, DatabaseError) as e:
            logger.error(f"Orphan detection failed: {e}")
            return {"success": False, "error": str(e), "per_table": {}}
        finally:
            self._cycle_lock.release()

#
# End of Sync_Coordinator.py
########################################################################################################################
