# cabinetpm_sync/central_api/base.py
# Description: Interface every central store adapter implements
#
# Imports
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional
#
# 3rd-Party Imports
from loguru import logger
#
# Local Imports
#
########################################################################################################################
#
# Functions:

class CentralStore(ABC):
    """
    The shared document store devices replicate with.

    A session is opened with `connect()` and released with `close()`; use
    `session()` to get both around a block. Documents are keyed by
    (table, global_id). Deletes are tombstones: the document stays with
    `deleted = True` so other devices can pull the delete.
    """

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        ...

    @abstractmethod
    def connect(self):
        """Opens the session. Raises CentralConnectionError within the connect timeout."""

    @abstractmethod
    def close(self):
        """Releases the session. Safe to call when not connected."""

    @abstractmethod
    def ping(self) -> Dict[str, Any]:
        ...

    @abstractmethod
    def fetch_changed(self, table: str, since: Optional[str], exclude_device: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Documents to pull for `table`.

        With `since`, every document whose updated_at is later than it,
        tombstones included. Without it, every live (non-deleted) document.
        Documents last written by `exclude_device` are left out.
        """

    @abstractmethod
    def get(self, table: str, global_id: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    def find_by_natural_key(self, table: str, key: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """A live document whose fields equal every item of `key`, or None."""

    @abstractmethod
    def upsert(self, table: str, document: Dict[str, Any]) -> bool:
        """Inserts or replaces the document with its global_id. Returns True if it was inserted."""

    @abstractmethod
    def tombstone(self, table: str, global_id: str, origin_device: str, updated_at: str,
                  edited_at: Optional[str] = None) -> bool:
        """Marks the document deleted. Returns False if no such document exists."""

    @abstractmethod
    def count(self, table: str) -> int:
        """Number of live documents in `table`."""

    @abstractmethod
    def list_global_ids(self, table: str, include_deleted: bool = False) -> List[str]:
        ...

    @contextmanager
    def session(self) -> Iterator["CentralStore"]:
        """Opens a session for the duration of the block and always closes it."""
        self.connect()
        try:
            yield self
        finally:
            try:
                self.close()
            except Exception as e:
                logger.warning(f"Error closing central store session: {e}")

#
# End of cabinetpm_sync/central_api/base.py
########################################################################################################################
