# test_sync_properties.py
#
# Property-based tests for the sync engine using Hypothesis.
#
# Imports
import sqlite3
import uuid
from collections import Counter
#
# Third-Party Imports
import pytest
from hypothesis import given, strategies as st, settings, HealthCheck
#
# Local Imports
from cabinetpm_sync.central_api.memory_store import MemoryCentralStore
from cabinetpm_sync.DB.Local_Sync_DB import LocalSyncDB
from cabinetpm_sync.DB.Schema_Guard import SchemaGuard
from conftest import Device
#
########################################################################################################################
#
# Functions:
# --- Hypothesis Tests ---

settings.register_profile(
    "sync_friendly",
    deadline=None,
    max_examples=25,
    suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
)
settings.load_profile("sync_friendly")

DEVICE_NAMES = ("a", "b", "c")
PROPERTY_TABLES = ["nodes", "session_node_maintenance"]


@pytest.fixture
def make_world(tmp_path):
    """Each call returns a fresh central store and three devices; everything is closed at teardown."""
    devices = []

    def _make():
        world_dir = tmp_path / uuid.uuid4().hex
        world_dir.mkdir()
        central = MemoryCentralStore()
        world = {
            name: Device(world_dir / f"{name}.db", central, tables=PROPERTY_TABLES)
            for name in DEVICE_NAMES
        }
        devices.extend(world.values())
        return central, world

    yield _make
    for device in devices:
        device.close()


# --- Strategies ---
st_device = st.sampled_from(DEVICE_NAMES)
st_pick = st.integers(min_value=0, max_value=20)
st_operation = st.one_of(
    st.tuples(st.just("insert_node"), st_device, st.text(min_size=1, max_size=12)),
    st.tuples(st.just("update_node"), st_device, st_pick),
    st.tuples(st.just("delete_node"), st_device, st_pick),
    st.tuples(st.just("insert_association"), st_device, st.integers(min_value=1, max_value=3)),
    st.tuples(st.just("delete_association"), st_device, st_pick),
    st.tuples(st.just("sync"), st_device, st.none()),
)


def live_rows(device, table):
    return device.rows(table, include_deleted=False)


def apply_operation(world, operation):
    kind, name, arg = operation
    device = world[name]
    if kind == "insert_node":
        device.insert("nodes", node_name=arg)
    elif kind == "update_node":
        rows = live_rows(device, "nodes")
        if rows:
            row = rows[arg % len(rows)]
            device.update("nodes", row["id"], node_name=f"{row['node_name']}*")
    elif kind == "delete_node":
        rows = live_rows(device, "nodes")
        if rows:
            device.delete("nodes", rows[arg % len(rows)]["id"])
    elif kind == "insert_association":
        taken = {r["node_id"] for r in live_rows(device, "session_node_maintenance")}
        if arg not in taken:
            device.insert("session_node_maintenance", session_id="sess-1", node_id=arg)
    elif kind == "delete_association":
        rows = live_rows(device, "session_node_maintenance")
        if rows:
            device.delete("session_node_maintenance", rows[arg % len(rows)]["id"])
    elif kind == "sync":
        report = device.sync()
        assert report.success, report.error


def quiesce(world):
    for _ in range(2):
        for device in world.values():
            assert device.sync().success


class TestSyncProperties:
    @given(operations=st.lists(st_operation, max_size=25))
    def test_global_ids_are_unique_per_device(self, make_world, operations):
        _, world = make_world()
        for operation in operations:
            apply_operation(world, operation)
        quiesce(world)

        for device in world.values():
            for table in PROPERTY_TABLES:
                counts = Counter(row["uuid"] for row in device.rows(table))
                duplicates = [gid for gid, n in counts.items() if n > 1]
                assert not duplicates, f"{table} on {device.device_id}: {duplicates}"
                assert all(row["uuid"] for row in device.rows(table))

    @given(operations=st.lists(st_operation, max_size=25))
    def test_devices_converge_after_quiet_period(self, make_world, operations):
        central, world = make_world()
        for operation in operations:
            apply_operation(world, operation)
        quiesce(world)

        expected = {
            doc["global_id"]: doc["node_name"]
            for doc in central.all_documents("nodes") if not doc["deleted"]
        }
        for device in world.values():
            assert device.tracker.count_unsynced("nodes") == 0
            assert {r["uuid"]: r["node_name"] for r in live_rows(device, "nodes")} == expected


# --- Schema guard ---
st_legacy_rows = st.lists(
    st.tuples(st.text(min_size=1, max_size=20), st.one_of(st.none(), st.text(max_size=20))),
    max_size=15,
)
st_present_columns = st.sets(st.sampled_from(["uuid", "synced", "device_id", "deleted", "created_at", "updated_at"]))


@given(rows=st_legacy_rows, present=st_present_columns)
def test_schema_guard_is_idempotent(tmp_path, rows, present):
    path = tmp_path / f"{uuid.uuid4().hex}.db"
    column_types = {"uuid": "TEXT", "synced": "INTEGER", "device_id": "TEXT",
                    "deleted": "INTEGER", "created_at": "TEXT", "updated_at": "TEXT"}
    extra = "".join(f", {c} {column_types[c]}" for c in sorted(present))
    conn = sqlite3.connect(str(path))
    conn.execute(f"CREATE TABLE customers (id INTEGER PRIMARY KEY AUTOINCREMENT, name TEXT NOT NULL, location TEXT{extra})")
    conn.executemany("INSERT INTO customers (name, location) VALUES (?, ?)", rows)
    conn.commit()
    conn.close()

    db = LocalSyncDB(path)
    try:
        guard = SchemaGuard(db, device_id="prop-device_1700000000000_0badf00d")
        first = guard.ensure_sync_columns(["customers"])
        snapshot = db.fetch_all("SELECT * FROM customers ORDER BY id")
        second = guard.ensure_sync_columns(["customers"])

        assert first.success and second.success
        assert second.tables["customers"].added_columns == []
        assert second.tables["customers"].backfilled_rows == 0
        assert db.fetch_all("SELECT * FROM customers ORDER BY id") == snapshot
        assert len({row["uuid"] for row in snapshot}) == len(rows)
    finally:
        db.close_connection()
