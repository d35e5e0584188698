# test_sync_scenarios.py
#
# End-to-end behaviour of several field devices sharing one central store.
#
# Third-Party Imports
import pytest
#
# Local Imports
from cabinetpm_sync.Sync.Sync_Coordinator import cursor_key
#
########################################################################################################################
#
# Functions:

def only_row(device, table):
    rows = device.rows(table)
    assert len(rows) == 1, rows
    return rows[0]


class TestPropagation:
    def test_insert_reaches_other_device(self, make_device):
        a, b = make_device("a"), make_device("b")
        a.insert("customers", name="Acme Chemical", location="Geismar")
        assert a.sync().success

        report = b.sync()

        assert report.pull_result.per_table["customers"].pulled == 1
        row = only_row(b, "customers")
        assert row["name"] == "Acme Chemical"
        assert row["uuid"] == only_row(a, "customers")["uuid"]
        assert row["synced"] == 1
        assert row["device_id"] == a.device_id
        # A pulled-in row is not pushed back
        assert report.push_result.total_pushed == 0

    def test_update_reaches_other_device(self, make_device):
        a, b = make_device("a"), make_device("b")
        local_id = a.insert("customers", name="Acme")
        a.sync()
        b.sync()

        b_row = only_row(b, "customers")
        b.update("customers", b_row["id"], name="Acme Renamed")
        b.sync()
        a.sync()

        assert a.row("customers", local_id)["name"] == "Acme Renamed"
        assert a.row("customers", local_id)["synced"] == 1

    def test_device_never_pulls_its_own_records(self, make_device):
        a = make_device("a")
        a.insert("customers", name="Mine")
        a.sync()
        report = a.sync()
        assert report.pull_result.total_pulled == 0
        assert len(a.rows("customers")) == 1

    def test_refetched_records_are_idempotent(self, make_device):
        a, b = make_device("a"), make_device("b")
        a.insert("nodes", node_name="DCS-01")
        a.sync()
        b.sync()
        before = only_row(b, "nodes")

        # Rewind the cursor so the same document is fetched again
        b.db.delete_metadata(cursor_key("nodes"))
        report = b.coordinator.run_pull_only()

        assert report.per_table["nodes"].pulled == 0
        assert report.per_table["nodes"].conflicts == 0
        assert only_row(b, "nodes") == before

    def test_text_primary_key_is_kept_across_devices(self, make_device):
        a, b = make_device("a"), make_device("b")
        a.insert("sessions", id="sess-2024-0042", session_name="Spring PM")
        a.sync()
        b.sync()

        row = b.row("sessions", "sess-2024-0042")
        assert row is not None
        assert row["session_name"] == "Spring PM"

    def test_text_primary_key_collision_falls_back_to_global_id(self, make_device):
        a, b = make_device("a"), make_device("b")
        a.insert("sessions", id="sess-1", session_name="From A")
        b.insert("sessions", id="sess-1", session_name="From B")
        a.sync()

        b.coordinator.run_pull_only()

        a_gid = only_row(a, "sessions")["uuid"]
        assert b.row("sessions", "sess-1")["session_name"] == "From B"
        assert b.row("sessions", a_gid)["session_name"] == "From A"


class TestDeletes:
    def test_tombstone_propagates(self, make_device, central):
        a, b = make_device("a"), make_device("b")
        local_id = a.insert("customers", name="Short-lived")
        a.sync()
        b.sync()

        a.delete("customers", local_id)
        push = a.sync().push_result
        assert push.per_table["customers"].deleted == 1
        assert central.all_documents("customers")[0]["deleted"] is True

        report = b.sync()

        assert report.pull_result.per_table["customers"].deleted == 1
        row = only_row(b, "customers")
        assert row["deleted"] == 1
        assert row["synced"] == 1
        assert b.rows("customers", include_deleted=False) == []

    def test_tombstone_for_unknown_record_is_skipped(self, make_device):
        a, c = make_device("a"), make_device("c")
        c.sync()
        local_id = a.insert("customers", name="Never seen by c")
        a.sync()
        a.delete("customers", local_id)
        a.sync()

        report = c.sync()

        assert report.pull_result.per_table["customers"].skipped == 1
        assert c.rows("customers") == []

    def test_fresh_device_does_not_receive_tombstones(self, make_device):
        a = make_device("a")
        keep = a.insert("customers", name="Keep")
        gone = a.insert("customers", name="Gone")
        a.sync()
        a.delete("customers", gone)
        a.sync()

        fresh = make_device("fresh")
        fresh.sync()

        assert [r["name"] for r in fresh.rows("customers")] == ["Keep"]
        assert a.row("customers", keep)["deleted"] == 0

    def test_delete_before_first_push(self, make_device, central):
        a = make_device("a")
        local_id = a.insert("customers", name="Typo")
        a.delete("customers", local_id)

        report = a.coordinator.run_push_only()

        assert report.per_table["customers"].deleted == 1
        assert report.per_table["customers"].errors == 0
        assert central.all_documents("customers") == []
        assert a.row("customers", local_id)["synced"] == 1


class TestConflicts:
    def _diverge(self, make_device, policy_a="local_wins"):
        a = make_device("a", conflict_policy=policy_a)
        b = make_device("b")
        a_id = a.insert("customers", name="Original")
        a.sync()
        b.sync()
        b_id = only_row(b, "customers")["id"]

        a.update("customers", a_id, name="Edited on A")
        b.update("customers", b_id, name="Edited on B")
        return a, b, a_id, b_id

    def test_local_wins(self, make_device, central):
        a, b, a_id, b_id = self._diverge(make_device)
        assert b.sync().success

        report = a.sync()

        assert report.pull_result.total_conflicts == 1
        assert report.pull_result.conflicts[0].kept == "local"
        assert a.row("customers", a_id)["name"] == "Edited on A"
        assert central.all_documents("customers")[0]["name"] == "Edited on A"

        # B's copy was synced, so the newer central version replaces it
        b.sync()
        assert b.row("customers", b_id)["name"] == "Edited on A"

    def test_remote_wins(self, make_device, central):
        a, b, a_id, _ = self._diverge(make_device, policy_a="remote_wins")
        b.sync()

        report = a.sync()

        assert report.pull_result.total_conflicts == 1
        row = a.row("customers", a_id)
        assert row["name"] == "Edited on B"
        assert row["synced"] == 1
        assert report.push_result.per_table["customers"].pushed == 0
        assert central.all_documents("customers")[0]["name"] == "Edited on B"

    def test_latest_wins_prefers_newer_remote(self, make_device):
        a = make_device("a", conflict_policy="latest_wins")
        b = make_device("b")
        a_id = a.insert("customers", name="Original")
        a.sync()
        b.sync()
        a.update("customers", a_id, name="Older edit on A")
        b.update("customers", only_row(b, "customers")["id"], name="Newer edit on B")
        b.sync()

        a.sync()

        assert a.row("customers", a_id)["name"] == "Newer edit on B"

    def test_latest_wins_keeps_newer_local(self, make_device):
        a = make_device("a", conflict_policy="latest_wins")
        b = make_device("b")
        a_id = a.insert("customers", name="Original")
        a.sync()
        b.sync()
        b.update("customers", only_row(b, "customers")["id"], name="Older edit on B")
        b.sync()
        a.update("customers", a_id, name="Newer edit on A")

        a.sync()

        assert a.row("customers", a_id)["name"] == "Newer edit on A"

    def test_latest_wins_older_edit_pushed_last_loses(self, make_device, central):
        a = make_device("a", conflict_policy="latest_wins")
        b = make_device("b")
        a_id = a.insert("customers", name="Original")
        a.sync()
        b.sync()
        b.update("customers", only_row(b, "customers")["id"], name="Older edit on B")
        a.update("customers", a_id, name="Newer edit on A")
        b.sync()

        a.sync()

        assert a.row("customers", a_id)["name"] == "Newer edit on A"
        assert central.all_documents("customers")[0]["name"] == "Newer edit on A"

    def test_conflict_policy_can_change_between_cycles(self, make_device):
        a, b, a_id, _ = self._diverge(make_device)
        b.sync()
        a.coordinator.set_conflict_policy("master_wins")
        a.sync()
        assert a.row("customers", a_id)["name"] == "Edited on B"


class TestNaturalKeyIdentity:
    def test_same_association_created_on_two_devices(self, make_device, central):
        a, b = make_device("a"), make_device("b")
        a.insert("session_node_maintenance", session_id="sess-5", node_id=9, notes="done by A")
        b.insert("session_node_maintenance", session_id="sess-5", node_id=9, notes="done by B")

        a.sync()
        b.sync()
        a.sync()

        a_rows, b_rows = a.rows("session_node_maintenance"), b.rows("session_node_maintenance")
        assert len(a_rows) == 1 and len(b_rows) == 1
        assert a_rows[0]["uuid"] == b_rows[0]["uuid"]
        assert len(central.all_documents("session_node_maintenance")) == 1
        assert a_rows[0]["notes"] == b_rows[0]["notes"] == "done by B"

    def test_pushing_second_device_adopts_central_id(self, make_device, central):
        a, b = make_device("a"), make_device("b")
        a.insert("users", username="jtech", email="a@example.com")
        a.sync()
        b_id = b.insert("users", username="jtech", email="b@example.com")

        b.coordinator.run_push_only()

        docs = central.all_documents("users")
        assert len(docs) == 1
        assert b.row("users", b_id)["uuid"] == docs[0]["global_id"] == only_row(a, "users")["uuid"]

    def test_different_associations_stay_separate(self, make_device, central):
        a, b = make_device("a"), make_device("b")
        a.insert("session_node_tracker", session_id="sess-5", node_id=9)
        b.insert("session_node_tracker", session_id="sess-5", node_id=10)
        a.sync()
        b.sync()
        a.sync()
        assert len(a.rows("session_node_tracker")) == 2
        assert len(b.rows("session_node_tracker")) == 2
        assert len(central.all_documents("session_node_tracker")) == 2


class TestLocalEditsDuringPush:
    def test_row_edited_while_pushing_stays_unsynced(self, make_device, central, mocker):
        a = make_device("a", tables=["customers"])
        local_id = a.insert("customers", name="v1")
        real_upsert = central.upsert

        def upsert_then_edit(table, document):
            created = real_upsert(table, document)
            a.update("customers", local_id, name="v2")
            return created

        mocker.patch.object(central, "upsert", side_effect=upsert_then_edit)
        a.coordinator.run_push_only()
        mocker.stopall()

        assert a.row("customers", local_id)["synced"] == 0
        a.coordinator.run_push_only()
        assert central.all_documents("customers")[0]["name"] == "v2"


@pytest.mark.parametrize("rounds", [1, 3])
def test_devices_converge(make_device, central, rounds):
    devices = [make_device(name) for name in ("a", "b", "c")]
    for round_no in range(rounds):
        for index, device in enumerate(devices):
            device.insert("nodes", node_name=f"node-{round_no}-{index}")
        for device in devices:
            device.sync()
    for device in devices:
        device.sync()

    expected = {doc["global_id"] for doc in central.all_documents("nodes")}
    assert len(expected) == 3 * rounds
    for device in devices:
        assert {row["uuid"] for row in device.rows("nodes")} == expected
