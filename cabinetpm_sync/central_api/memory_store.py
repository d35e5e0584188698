# cabinetpm_sync/central_api/memory_store.py
# Description: In-process central store, for single-host deployments and device simulations
#
# Imports
import copy
import threading
from typing import Any, Dict, List, Optional
#
# 3rd-Party Imports
from loguru import logger
#
# Local Imports
from cabinetpm_sync.Constants import (
    REMOTE_DELETED,
    REMOTE_EDITED_AT,
    REMOTE_GLOBAL_ID,
    REMOTE_ORIGIN_DEVICE,
    REMOTE_UPDATED_AT,
)
from cabinetpm_sync.Utils.Timestamps import try_parse_timestamp, utc_now_str
from .base import CentralStore
from .exceptions import CentralConnectionError, CentralNotConnectedError, CentralRequestError
from .schemas import RemoteDocument
#
########################################################################################################################
#
# Functions:

class MemoryCentralStore(CentralStore):
    """
    Keeps documents in a dict of {table: {global_id: document}}.

    One instance can be shared by any number of coordinators to simulate
    several devices against the same central store. Set `available = False`
    to simulate an unreachable store.
    """

    def __init__(self):
        self._tables: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.RLock()
        self._sessions = threading.local()
        self.available = True
        self.connect_count = 0
        self.close_count = 0

    @property
    def is_connected(self) -> bool:
        return getattr(self._sessions, "open", False)

    def connect(self):
        if not self.available:
            raise CentralConnectionError("Central store is unavailable")
        self._sessions.open = True
        self.connect_count += 1
        logger.debug("Memory central store session opened")

    def close(self):
        if self.is_connected:
            self.close_count += 1
        self._sessions.open = False

    def _require_session(self):
        if not self.is_connected:
            raise CentralNotConnectedError("No open central store session")

    def _table(self, table: str) -> Dict[str, Dict[str, Any]]:
        return self._tables.setdefault(table, {})

    def ping(self) -> Dict[str, Any]:
        self._require_session()
        return {"status": "ok", "server_time": utc_now_str()}

    def fetch_changed(self, table: str, since: Optional[str], exclude_device: Optional[str] = None) -> List[Dict[str, Any]]:
        self._require_session()
        since_dt = try_parse_timestamp(since) if since else None
        with self._lock:
            results = []
            for doc in self._table(table).values():
                if exclude_device and doc.get(REMOTE_ORIGIN_DEVICE) == exclude_device:
                    continue
                if since_dt is None:
                    if doc.get(REMOTE_DELETED):
                        continue
                else:
                    doc_dt = try_parse_timestamp(doc.get(REMOTE_UPDATED_AT))
                    if doc_dt is not None and doc_dt <= since_dt:
                        continue
                results.append(copy.deepcopy(doc))
        results.sort(key=lambda d: str(d.get(REMOTE_UPDATED_AT) or ""))
        return results

    def get(self, table: str, global_id: str) -> Optional[Dict[str, Any]]:
        self._require_session()
        with self._lock:
            doc = self._table(table).get(global_id)
            return copy.deepcopy(doc) if doc is not None else None

    def find_by_natural_key(self, table: str, key: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        self._require_session()
        if not key:
            return None
        with self._lock:
            for doc in self._table(table).values():
                if doc.get(REMOTE_DELETED):
                    continue
                if all(doc.get(field) == value for field, value in key.items()):
                    return copy.deepcopy(doc)
        return None

    def upsert(self, table: str, document: Dict[str, Any]) -> bool:
        self._require_session()
        try:
            validated = RemoteDocument.model_validate(document).to_document()
        except ValueError as e:
            raise CentralRequestError(f"Invalid document for '{table}': {e}") from e
        if not validated.get(REMOTE_UPDATED_AT):
            validated[REMOTE_UPDATED_AT] = utc_now_str()
        with self._lock:
            docs = self._table(table)
            created = validated[REMOTE_GLOBAL_ID] not in docs
            docs[validated[REMOTE_GLOBAL_ID]] = validated
        logger.trace(f"Memory store {'inserted' if created else 'replaced'} {table}/{validated[REMOTE_GLOBAL_ID]}")
        return created

    def tombstone(self, table: str, global_id: str, origin_device: str, updated_at: str,
                  edited_at: Optional[str] = None) -> bool:
        self._require_session()
        with self._lock:
            doc = self._table(table).get(global_id)
            if doc is None:
                return False
            doc[REMOTE_DELETED] = True
            doc[REMOTE_ORIGIN_DEVICE] = origin_device
            doc[REMOTE_UPDATED_AT] = updated_at or utc_now_str()
            doc[REMOTE_EDITED_AT] = edited_at or doc[REMOTE_UPDATED_AT]
        return True

    def count(self, table: str) -> int:
        self._require_session()
        with self._lock:
            return sum(1 for doc in self._table(table).values() if not doc.get(REMOTE_DELETED))

    def list_global_ids(self, table: str, include_deleted: bool = False) -> List[str]:
        self._require_session()
        with self._lock:
            return [gid for gid, doc in self._table(table).items() if include_deleted or not doc.get(REMOTE_DELETED)]

    def all_documents(self, table: str) -> List[Dict[str, Any]]:
        """Every document of the table, tombstones included. Does not need a session."""
        with self._lock:
            return [copy.deepcopy(doc) for doc in self._table(table).values()]

#
# End of cabinetpm_sync/central_api/memory_store.py
########################################################################################################################
