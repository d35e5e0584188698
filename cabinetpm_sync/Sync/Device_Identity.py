# Device_Identity.py
# Description: Stable per-device identifier stored in the local metadata area
#
# Imports
import platform
import re
import secrets
import socket
import threading
import time
from typing import Any, Dict, Optional
#
# 3rd-Party Imports
from loguru import logger
#
# Local Imports
from cabinetpm_sync.Constants import METADATA_DEVICE_ID_KEY
from cabinetpm_sync.DB.Local_Sync_DB import DatabaseError, LocalSyncDB
#
########################################################################################################################
#
# Functions:

_HOSTNAME_SANITIZE_RE = re.compile(r"[^A-Za-z0-9_-]+")


def generate_device_id(hostname: Optional[str] = None) -> str:
    """Builds '<hostname>_<epoch millis>_<8 hex chars>'."""
    host = hostname if hostname is not None else socket.gethostname()
    host = _HOSTNAME_SANITIZE_RE.sub("-", host or "").strip("-") or "device"
    return f"{host}_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


class DeviceIdentityProvider:
    """
    Supplies the identifier of this device.

    The id is created once, persisted in `sync_metadata` and never regenerated
    while the local store survives. If persisting a freshly generated id fails,
    the id is still used for this process and `durable` is False.
    """

    def __init__(self, db: LocalSyncDB):
        self.db = db
        self._device_id: Optional[str] = None
        self.durable = True
        self._lock = threading.Lock()

    def get_or_create_device_id(self) -> str:
        with self._lock:
            if self._device_id is not None:
                return self._device_id

            stored = self.db.get_metadata(METADATA_DEVICE_ID_KEY)
            if stored:
                self._device_id = stored
                self.durable = True
                logger.debug(f"Loaded device id: {stored}")
                return stored

            new_id = generate_device_id()
            try:
                self.db.set_metadata(METADATA_DEVICE_ID_KEY, new_id)
                self.durable = True
                logger.info(f"Generated new device id: {new_id}")
            except DatabaseError as e:
                self.durable = False
                logger.critical(
                    f"Device id {new_id} could not be persisted ({e}). "
                    f"It is valid for this process only; records may be attributed to a different device after restart."
                )
            self._device_id = new_id
            return new_id

    def get_device_info(self) -> Dict[str, Any]:
        return {
            "device_id": self.get_or_create_device_id(),
            "hostname": socket.gethostname(),
            "platform": platform.system().lower(),
            "arch": platform.machine(),
            "durable": self.durable,
        }

#
# End of Device_Identity.py
########################################################################################################################
