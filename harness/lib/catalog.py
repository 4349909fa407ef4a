"""Clients for the external asset-catalog and streaming-data services.

The catalog registers a data source (connection profile) and an asset
(one table behind that source). Registration is not idempotent on the
server side, so nothing here retries a create call.

Two catalog implementations are provided:

- ``HttpAssetCatalogClient`` talks JSON over HTTP with ``requests``.
- ``OfflineAssetCatalogClient`` hands out sequential ids without any
  network access, for environments without a catalog service.

Example:
    catalog = build_catalog_client(base_config.catalog_service)
    response = catalog.create_data_source(
        name="test_datasource_ns", host="db", port=3306, dialect_code=1,
        user="root", password="secret", database_name="test",
    )
"""

from __future__ import annotations

import base64
import json
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

import requests

from harness.lib.errors import ConfigurationError, RegistrationError
from harness.lib.models import ServiceEndpoint
from harness.lib.resilience import Deadline

logger = logging.getLogger(__name__)

__all__ = [
    "AssetCatalogClient",
    "CatalogResponse",
    "DataServiceClient",
    "HttpAssetCatalogClient",
    "HttpDataServiceClient",
    "OfflineAssetCatalogClient",
    "build_catalog_client",
    "build_data_client",
]


@dataclass(frozen=True)
class CatalogResponse:
    """Result of a catalog call."""

    id: int
    success: bool
    message: str = ""


class AssetCatalogClient(ABC):
    """Interface of the asset-catalog service."""

    @abstractmethod
    def create_data_source(
        self,
        *,
        name: str,
        host: str,
        port: int,
        dialect_code: int,
        user: str,
        password: str,
        database_name: str,
    ) -> CatalogResponse:
        """Register a database connection profile."""

    @abstractmethod
    def create_asset(
        self,
        *,
        asset_name: str,
        asset_english_name: str,
        data_source_id: int,
        database_name: str,
        table_name: str,
    ) -> CatalogResponse:
        """Register a table as an asset of ``data_source_id``."""

    @abstractmethod
    def delete_data_source(self, data_source_id: int) -> CatalogResponse:
        """Remove a data source registered earlier."""

    def close(self) -> None:
        pass

    def __enter__(self) -> "AssetCatalogClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class OfflineAssetCatalogClient(AssetCatalogClient):
    """Catalog stand-in that allocates ids locally.

    Data source ids start at 1000 and asset ids at 2000. Every call is
    recorded in ``calls`` for inspection.
    """

    def __init__(self, data_source_start: int = 1000, asset_start: int = 2000) -> None:
        self._next_data_source = data_source_start
        self._next_asset = asset_start
        self.data_sources: Dict[int, Dict[str, Any]] = {}
        self.assets: Dict[int, Dict[str, Any]] = {}
        self.calls: List[str] = []

    def create_data_source(self, *, name, host, port, dialect_code, user, password, database_name):
        self.calls.append("create_data_source")
        ds_id = self._next_data_source
        self._next_data_source += 1
        self.data_sources[ds_id] = {
            "name": name,
            "host": host,
            "port": port,
            "db_type": dialect_code,
            "database": database_name,
        }
        return CatalogResponse(ds_id, True, "data source created (offline)")

    def create_asset(self, *, asset_name, asset_english_name, data_source_id, database_name, table_name):
        self.calls.append("create_asset")
        if data_source_id not in self.data_sources:
            return CatalogResponse(0, False, f"unknown data source {data_source_id}")
        asset_id = self._next_asset
        self._next_asset += 1
        self.assets[asset_id] = {
            "name": asset_name,
            "english_name": asset_english_name,
            "data_source_id": data_source_id,
            "database": database_name,
            "table": table_name,
        }
        return CatalogResponse(asset_id, True, "asset created (offline)")

    def delete_data_source(self, data_source_id: int) -> CatalogResponse:
        self.calls.append("delete_data_source")
        if self.data_sources.pop(data_source_id, None) is None:
            return CatalogResponse(data_source_id, False, f"unknown data source {data_source_id}")
        return CatalogResponse(data_source_id, True, "data source deleted (offline)")


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(value).decode("ascii")
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class _HttpClient:
    """Shared ``requests.Session`` plumbing for the HTTP clients."""

    def __init__(
        self,
        endpoint: ServiceEndpoint,
        session: Optional[requests.Session] = None,
        *,
        deadline: Optional[Deadline] = None,
    ) -> None:
        self.endpoint = endpoint
        self.base_url = endpoint.base_url
        self.deadline = deadline or Deadline.unlimited()
        self.session = session or requests.Session()
        self.session.headers.setdefault("Content-Type", "application/json")

    def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}/{path.lstrip('/')}"
        data = json.dumps(payload, default=_json_default) if payload is not None else None
        self.deadline.check(f"{method} {path}")
        logger.debug("%s %s", method, url)
        response = self.session.request(method, url, data=data, timeout=self._timeout())
        response.raise_for_status()
        if not response.content:
            return {}
        return response.json()

    def _timeout(self) -> float:
        """Endpoint timeout, shortened to what is left of the run deadline."""
        remaining = self.deadline.remaining()
        if remaining is None:
            return self.endpoint.timeout
        return min(self.endpoint.timeout, remaining)

    def close(self) -> None:
        self.session.close()


def _to_response(body: Dict[str, Any], id_key: str) -> CatalogResponse:
    return CatalogResponse(
        id=int(body.get(id_key) or body.get("id") or 0),
        success=bool(body.get("success", False)),
        message=str(body.get("message", "")),
    )


class HttpAssetCatalogClient(_HttpClient, AssetCatalogClient):
    """Asset catalog reached over HTTP/JSON.

    Transport errors surface as RegistrationError naming the operation.
    """

    def _call(self, operation: str, method: str, path: str, payload=None) -> Dict[str, Any]:
        try:
            return self._request(method, path, payload)
        except (requests.RequestException, ValueError) as exc:
            raise RegistrationError(
                f"Catalog call {operation} failed",
                operation=operation,
                cause=exc,
                details={"url": self.base_url},
            ) from exc

    def create_data_source(self, *, name, host, port, dialect_code, user, password, database_name):
        body = self._call(
            "create_data_source",
            "POST",
            "datasources",
            {
                "requestId": f"ds_{uuid.uuid4().hex}",
                "name": name,
                "host": host,
                "port": port,
                "dbType": dialect_code,
                "username": user,
                "password": password,
                "instanceName": database_name,
            },
        )
        return _to_response(body, "dataSourceId")

    def create_asset(self, *, asset_name, asset_english_name, data_source_id, database_name, table_name):
        body = self._call(
            "create_asset",
            "POST",
            "assets",
            {
                "requestId": f"asset_{uuid.uuid4().hex}",
                "assetName": asset_name,
                "assetEnName": asset_english_name,
                "dataSourceId": data_source_id,
                "dbName": database_name,
                "tableName": table_name,
            },
        )
        return _to_response(body, "assetId")

    def delete_data_source(self, data_source_id: int) -> CatalogResponse:
        body = self._call("delete_data_source", "DELETE", f"datasources/{data_source_id}")
        return _to_response({"success": True, **body, "id": data_source_id}, "dataSourceId")


class DataServiceClient(ABC):
    """Interface of the streaming data service."""

    @abstractmethod
    def read_row_count(self, asset_name: str, fields: Sequence[str]) -> int:
        """Stream ``fields`` of an asset and return the number of rows seen."""

    @abstractmethod
    def write_rows(self, asset_name: str, columns: Sequence[str], rows: Sequence[Sequence[Any]]) -> int:
        """Stream ``rows`` into an asset. Returns rows accepted."""

    def close(self) -> None:
        pass


class HttpDataServiceClient(_HttpClient, DataServiceClient):
    """Streaming data service reached over HTTP/JSON.

    Read responses carry either a top-level ``rowCount`` or a ``batches``
    list whose ``rowCount`` values are summed.
    """

    def read_row_count(self, asset_name: str, fields: Sequence[str]) -> int:
        body = self._request(
            "POST",
            "stream/read",
            {
                "requestId": f"read_{uuid.uuid4().hex}",
                "assetName": asset_name,
                "dbFields": list(fields),
            },
        )
        if "batches" in body:
            return sum(int(batch.get("rowCount", 0)) for batch in body["batches"])
        return int(body.get("rowCount", 0))

    def write_rows(self, asset_name: str, columns: Sequence[str], rows: Sequence[Sequence[Any]]) -> int:
        body = self._request(
            "POST",
            "stream/write",
            {
                "requestId": f"write_{uuid.uuid4().hex}",
                "assetName": asset_name,
                "columns": list(columns),
                "rows": [list(row) for row in rows],
            },
        )
        return int(body.get("written", len(rows)))


def build_catalog_client(endpoint: ServiceEndpoint, deadline: Optional[Deadline] = None) -> AssetCatalogClient:
    """Create the catalog client selected by ``endpoint.mode``."""
    mode = endpoint.mode.lower()
    if mode == "offline":
        logger.info("Using offline asset catalog")
        return OfflineAssetCatalogClient()
    if mode == "http":
        return HttpAssetCatalogClient(endpoint, deadline=deadline)
    raise ConfigurationError(
        f"Unknown catalog mode: {endpoint.mode}",
        field="catalog_service.mode",
        value=endpoint.mode,
        suggestion="Use 'http' or 'offline'",
    )


def build_data_client(endpoint: ServiceEndpoint, deadline: Optional[Deadline] = None) -> Optional[DataServiceClient]:
    """Create the data-service client, or None when it is disabled."""
    if not endpoint.enabled:
        return None
    return HttpDataServiceClient(endpoint, deadline=deadline)
