# cabinetpm_sync/central_api/__init__.py
from .base import CentralStore
from .client import HttpCentralStore
from .memory_store import MemoryCentralStore
from .exceptions import (
    CentralStoreError, CentralConnectionError, CentralTimeoutError, CentralNotConnectedError,
    CentralRequestError, CentralResponseError, AuthenticationError
)
from .schemas import (
    RemoteDocument, ChangedRecordsResponse, DocumentResponse, UpsertResult,
    TombstoneResult, CountResponse, GlobalIdsResponse, HealthResponse
)

__all__ = [
    "CentralStore", "HttpCentralStore", "MemoryCentralStore",
    "CentralStoreError", "CentralConnectionError", "CentralTimeoutError", "CentralNotConnectedError",
    "CentralRequestError", "CentralResponseError", "AuthenticationError",
    "RemoteDocument", "ChangedRecordsResponse", "DocumentResponse", "UpsertResult",
    "TombstoneResult", "CountResponse", "GlobalIdsResponse", "HealthResponse",
]
