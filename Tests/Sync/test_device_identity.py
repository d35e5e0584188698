# test_device_identity.py
#
# Imports
import re
#
# Third-Party Imports
from loguru import logger
#
# Local Imports
from cabinetpm_sync.DB.Local_Sync_DB import LocalSyncDB
from cabinetpm_sync.Sync.Device_Identity import DeviceIdentityProvider, generate_device_id
#
########################################################################################################################
#
# Functions:

DEVICE_ID_RE = re.compile(r"^[A-Za-z0-9_-]+_\d{13}_[0-9a-f]{8}$")


def test_generated_id_format():
    device_id = generate_device_id("Field Tablet #3.local")
    assert DEVICE_ID_RE.match(device_id)
    assert device_id.startswith("Field-Tablet-3-local_")


def test_generated_ids_are_unique():
    assert len({generate_device_id("host") for _ in range(200)}) == 200


def test_id_is_created_once_and_persisted(local_db):
    provider = DeviceIdentityProvider(local_db)
    first = provider.get_or_create_device_id()
    assert provider.get_or_create_device_id() == first
    assert local_db.get_metadata("device_id") == first
    assert provider.durable is True


def test_id_survives_restart(tmp_path):
    path = tmp_path / "restart.db"
    db = LocalSyncDB(path)
    first = DeviceIdentityProvider(db).get_or_create_device_id()
    db.close_connection()

    reopened = LocalSyncDB(path)
    assert DeviceIdentityProvider(reopened).get_or_create_device_id() == first
    reopened.close_connection()


def test_existing_id_is_never_regenerated(local_db):
    local_db.set_metadata("device_id", "legacy-tablet_1600000000000_deadbeef")
    assert DeviceIdentityProvider(local_db).get_or_create_device_id() == "legacy-tablet_1600000000000_deadbeef"


def test_persist_failure_still_returns_id_and_flags_it(local_db):
    local_db.execute_query(
        "CREATE TRIGGER refuse_metadata BEFORE INSERT ON sync_metadata "
        "BEGIN SELECT RAISE(ABORT, 'disk I/O error'); END",
        commit=True,
    )
    messages = []
    sink_id = logger.add(lambda message: messages.append(message.record), level="WARNING")
    provider = DeviceIdentityProvider(local_db)
    try:
        device_id = provider.get_or_create_device_id()
    finally:
        logger.remove(sink_id)

    assert DEVICE_ID_RE.match(device_id)
    assert provider.durable is False
    assert provider.get_or_create_device_id() == device_id
    assert provider.get_device_info()["durable"] is False
    assert local_db.get_metadata("device_id") is None
    assert any(device_id in r["message"] and r["level"].name == "CRITICAL" for r in messages)


def test_device_info_fields(local_db):
    info = DeviceIdentityProvider(local_db).get_device_info()
    assert set(info) >= {"device_id", "hostname", "platform", "arch", "durable"}
