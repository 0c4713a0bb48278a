from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx
from pydantic import TypeAdapter

from ..errors import GatewayError, NotFoundError
from .base import Record, RecordGateway, check_collection

logger = logging.getLogger(__name__)

_DATETIME_FIELDS = {"created_at", "updated_at", "last_used"}
_DATETIME = TypeAdapter(datetime)


def _encode_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


def _encode(record: Record) -> Dict[str, Any]:
    return {k: _encode_value(v) for k, v in record.items()}


def _decode(data: Any) -> Record:
    """Turn one JSON record into a dict with datetime timestamps."""
    # Record APIs commonly answer writes with a one-element array
    if isinstance(data, list):
        if not data:
            raise ValueError("empty record list in response")
        data = data[0]
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")
    record = dict(data)
    for field in _DATETIME_FIELDS & record.keys():
        value = record[field]
        if isinstance(value, str):
            record[field] = _DATETIME.validate_python(value)
    return record


class HttpGateway(RecordGateway):
    """
    Record store reached over a REST API.

    Endpoints, relative to the base URL:
    - GET    /{collection}?order=<field>.<asc|desc>
    - POST   /{collection}
    - PATCH  /{collection}/{id}
    - DELETE /{collection}/{id}

    Transport errors and non-2xx answers are raised as GatewayError; a 404 on
    update raises NotFoundError and a 404 on delete returns False.
    """

    name = "remote"

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        headers = {"Accept": "application/json", "Prefer": "return=representation"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = httpx.Client(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )
        logger.info("HttpGateway ready base_url=%s", base_url)

    def close(self) -> None:
        self._client.close()

    def _request(self, operation: str, collection: str, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise GatewayError(operation, collection, e) from e
        return response

    def _raise_for_status(self, operation: str, collection: str, response: httpx.Response) -> None:
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise GatewayError(operation, collection, e) from e

    def _decode_response(self, operation: str, collection: str, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise GatewayError(operation, collection, e) from e

    def list(self, collection: str, order_by: Optional[str] = None, descending: bool = False) -> List[Record]:
        check_collection(collection)
        params = {}
        if order_by:
            params["order"] = f"{order_by}.{'desc' if descending else 'asc'}"
        response = self._request("list", collection, "GET", f"/{collection}", params=params)
        self._raise_for_status("list", collection, response)
        data = self._decode_response("list", collection, response)
        if not isinstance(data, list):
            raise GatewayError("list", collection, ValueError("expected a JSON array"))
        try:
            return [_decode(item) for item in data]
        except ValueError as e:
            raise GatewayError("list", collection, e) from e

    def insert(self, collection: str, record: Record) -> Record:
        check_collection(collection)
        response = self._request("insert", collection, "POST", f"/{collection}", json=_encode(record))
        self._raise_for_status("insert", collection, response)
        try:
            return _decode(self._decode_response("insert", collection, response))
        except ValueError as e:
            raise GatewayError("insert", collection, e) from e

    def update(self, collection: str, record_id: str, fields: Record) -> Record:
        check_collection(collection)
        payload = _encode({k: v for k, v in fields.items() if k != "id"})
        response = self._request("update", collection, "PATCH", f"/{collection}/{record_id}", json=payload)
        if response.status_code == 404:
            raise NotFoundError(collection, record_id)
        self._raise_for_status("update", collection, response)
        try:
            return _decode(self._decode_response("update", collection, response))
        except ValueError as e:
            raise GatewayError("update", collection, e) from e

    def delete(self, collection: str, record_id: str) -> bool:
        check_collection(collection)
        response = self._request("delete", collection, "DELETE", f"/{collection}/{record_id}")
        if response.status_code == 404:
            return False
        self._raise_for_status("delete", collection, response)
        return True
