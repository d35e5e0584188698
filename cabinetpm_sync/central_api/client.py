# cabinetpm_sync/central_api/client.py
#
#
# Imports
import json
from typing import Optional, Dict, Any, List
#
# 3rd-party Libraries
import httpx
from loguru import logger
from pydantic import ValidationError
#
# Local Imports
from .base import CentralStore
from .schemas import (
    ChangedRecordsResponse, CountResponse, DocumentResponse, GlobalIdsResponse,
    HealthResponse, RemoteDocument, TombstoneRequest, TombstoneResult, UpsertResult,
)
from .exceptions import (
    AuthenticationError, CentralConnectionError, CentralNotConnectedError,
    CentralRequestError, CentralResponseError, CentralTimeoutError,
)
#
########################################################################################################################
#
# Functions:

API_PREFIX = "/api/v1"


class HttpCentralStore(CentralStore):
    """
    Talks to the central sync service over HTTP.

    Every request is bounded: `connect_timeout` for establishing the
    connection and `request_timeout` for the whole request.
    """

    def __init__(self, base_url: str, token: Optional[str] = None, connect_timeout: float = 10.0,
                 request_timeout: float = 45.0, transport: Optional[httpx.BaseTransport] = None):
        self.base_url = base_url.rstrip('/')
        self.token = token
        self.connect_timeout = connect_timeout
        self.request_timeout = request_timeout
        self._transport = transport
        self._client: Optional[httpx.Client] = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None and not self._client.is_closed

    def _build_client(self) -> httpx.Client:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return httpx.Client(
            base_url=self.base_url,
            headers=headers,
            timeout=httpx.Timeout(self.request_timeout, connect=self.connect_timeout),
            transport=self._transport,
            follow_redirects=True,
        )

    def connect(self):
        if self.is_connected:
            return
        self._client = self._build_client()
        try:
            health = self.ping()
        except Exception:
            self.close()
            raise
        logger.info(f"Connected to central store at {self.base_url} (status: {health.get('status')})")

    def close(self):
        if self._client is not None and not self._client.is_closed:
            self._client.close()
        self._client = None

    def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
        allow_not_found: bool = False,
    ) -> Optional[Dict[str, Any]]:
        if not self.is_connected:
            raise CentralNotConnectedError("No open central store session")
        url = f"{self.base_url}{endpoint}"
        try:
            response = self._client.request(method, endpoint, params=params, json=json_body)
            if allow_not_found and response.status_code == 404:
                return None
            response.raise_for_status()
            if not response.content:
                return {}
            return response.json()
        except httpx.HTTPStatusError as e:
            error_detail = str(e)
            response_data = None
            try:
                response_data = e.response.json()
                if isinstance(response_data, dict) and "detail" in response_data:
                    if isinstance(response_data["detail"], list) and response_data["detail"]:
                        first = response_data["detail"][0]
                        error_detail = f"Validation Error: {first.get('msg', '')} for field '{'.'.join(map(str, first.get('loc', [])))}'"
                    elif isinstance(response_data["detail"], str):
                        error_detail = response_data["detail"]
            except (json.JSONDecodeError, ValueError):
                response_data = {"raw_text": e.response.text}

            if e.response.status_code in (401, 403):
                raise AuthenticationError(f"Authentication failed: {error_detail}") from e
            if e.response.status_code == 422:
                raise CentralRequestError(f"Validation Error: {error_detail}", response_data=response_data) from e
            raise CentralResponseError(e.response.status_code, error_detail, response_data=response_data) from e
        except httpx.TimeoutException as e:
            raise CentralTimeoutError(f"Timed out talking to {url}: {e}") from e
        except httpx.RequestError as e:
            raise CentralConnectionError(f"Connection error to {url}: {e}") from e
        except json.JSONDecodeError as e:
            raise CentralResponseError(response.status_code, "Failed to decode JSON response",
                                       response_data={"raw_text": response.text}) from e

    def _parse(self, model, data: Optional[Dict[str, Any]], endpoint: str):
        try:
            return model.model_validate(data or {})
        except ValidationError as e:
            raise CentralResponseError(200, f"Unexpected response shape from {endpoint}: {e}",
                                       response_data=data if isinstance(data, dict) else None) from e

    # --- CentralStore API ---
    def ping(self) -> Dict[str, Any]:
        endpoint = f"{API_PREFIX}/health"
        return self._parse(HealthResponse, self._request("GET", endpoint), endpoint).model_dump()

    def fetch_changed(self, table: str, since: Optional[str], exclude_device: Optional[str] = None) -> List[Dict[str, Any]]:
        endpoint = f"{API_PREFIX}/sync/{table}/records"
        params: Dict[str, Any] = {}
        if since:
            params["since"] = since
            params["include_deleted"] = "true"
        else:
            params["include_deleted"] = "false"
        if exclude_device:
            params["exclude_device"] = exclude_device
        data = self._request("GET", endpoint, params=params)
        if isinstance(data, list):
            data = {"table": table, "records": data}
        response = self._parse(ChangedRecordsResponse, data, endpoint)
        logger.debug(f"Fetched {len(response.records)} changed '{table}' records (since={since})")
        return [record.to_document() for record in response.records]

    def get(self, table: str, global_id: str) -> Optional[Dict[str, Any]]:
        endpoint = f"{API_PREFIX}/sync/{table}/records/{global_id}"
        data = self._request("GET", endpoint, allow_not_found=True)
        if data is None:
            return None
        if "record" not in data:
            data = {"record": data}
        record = self._parse(DocumentResponse, data, endpoint).record
        return record.to_document() if record else None

    def find_by_natural_key(self, table: str, key: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if not key:
            return None
        endpoint = f"{API_PREFIX}/sync/{table}/lookup"
        data = self._request("GET", endpoint, params=dict(key), allow_not_found=True)
        if not data:
            return None
        if "record" not in data:
            data = {"record": data}
        record = self._parse(DocumentResponse, data, endpoint).record
        if record is None or record.deleted:
            return None
        return record.to_document()

    def upsert(self, table: str, document: Dict[str, Any]) -> bool:
        try:
            doc = RemoteDocument.model_validate(document)
        except ValidationError as e:
            raise CentralRequestError(f"Invalid document for '{table}': {e}") from e
        endpoint = f"{API_PREFIX}/sync/{table}/records/{doc.global_id}"
        data = self._request("PUT", endpoint, json_body=doc.to_document())
        return self._parse(UpsertResult, data, endpoint).created

    def tombstone(self, table: str, global_id: str, origin_device: str, updated_at: str,
                  edited_at: Optional[str] = None) -> bool:
        endpoint = f"{API_PREFIX}/sync/{table}/records/{global_id}"
        body = TombstoneRequest(
            origin_device=origin_device, updated_at=updated_at, edited_at=edited_at
        ).model_dump(exclude_none=True)
        # httpx's Client.delete() takes no body
        data = self._request("DELETE", endpoint, json_body=body, allow_not_found=True)
        if data is None:
            return False
        return self._parse(TombstoneResult, data, endpoint).found

    def count(self, table: str) -> int:
        endpoint = f"{API_PREFIX}/sync/{table}/count"
        return self._parse(CountResponse, self._request("GET", endpoint), endpoint).count

    def list_global_ids(self, table: str, include_deleted: bool = False) -> List[str]:
        endpoint = f"{API_PREFIX}/sync/{table}/ids"
        data = self._request("GET", endpoint, params={"include_deleted": str(include_deleted).lower()})
        return self._parse(GlobalIdsResponse, data, endpoint).global_ids

#
# End of cabinetpm_sync/central_api/client.py
########################################################################################################################
