# cabinetpm_sync/central_api/schemas.py
from typing import List, Optional, Dict, Any, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator


# --- Documents ---
class RemoteDocument(BaseModel):
    """
    A record as the central store holds it: the table's data columns plus
    the sync fields. The local primary key is not part of it.

    `updated_at` is when the document last reached the central store and is
    what change queries filter on. `edited_at` is when the row was last
    changed on the device that pushed it.
    """
    model_config = ConfigDict(extra="allow")

    global_id: str = Field(..., min_length=1)
    origin_device: Optional[str] = None
    deleted: bool = False
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    edited_at: Optional[str] = None
    origin_local_id: Optional[Union[str, int]] = None

    @field_validator("deleted", mode="before")
    @classmethod
    def _coerce_deleted(cls, value: Any) -> bool:
        # SQLite stores flags as 0/1
        if value is None:
            return False
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes")
        return bool(value)

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump()


class TombstoneRequest(BaseModel):
    origin_device: str
    updated_at: str
    edited_at: Optional[str] = None


# --- Responses ---
class ChangedRecordsResponse(BaseModel):
    table: Optional[str] = None
    records: List[RemoteDocument] = Field(default_factory=list)


class DocumentResponse(BaseModel):
    record: Optional[RemoteDocument] = None


class UpsertResult(BaseModel):
    global_id: Optional[str] = None
    created: bool = False


class TombstoneResult(BaseModel):
    global_id: Optional[str] = None
    found: bool = True


class CountResponse(BaseModel):
    table: Optional[str] = None
    count: int = 0


class GlobalIdsResponse(BaseModel):
    table: Optional[str] = None
    global_ids: List[str] = Field(default_factory=list)


class HealthResponse(BaseModel):
    status: str = "ok"
    server_time: Optional[str] = None
    version: Optional[str] = None
