from __future__ import annotations

import logging
from typing import Any, Optional, Protocol

import requests

from opos.domain.errors import DuplicateError, TransportError, ValidationError
from opos.domain.models import Product, RemoteSaleRecord

log = logging.getLogger("opos.remote")


class RemoteGateway(Protocol):
    def fetch_catalog(self) -> list[Product]: ...
    def create_sale(self, payload: dict, correlation_id: Optional[str]) -> RemoteSaleRecord: ...
    def fetch_sales(self) -> list[RemoteSaleRecord]: ...
    def create_product(self, payload: dict) -> Product: ...
    def health(self) -> dict: ...


class HttpRemoteGateway:
    """Client for the system-of-record HTTP API.

    Every call carries a bounded timeout. Anything short of a definitive
    answer (timeouts, resets, 5xx, unparseable bodies) surfaces as
    ``TransportError``; ``409`` on sale creation surfaces as
    ``DuplicateError``.
    """

    def __init__(self, base_url: str, timeout: float = 10.0, session: requests.Session | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = float(timeout)
        self.session = session or requests.Session()

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _request(self, method: str, path: str, json_body: Any = None) -> requests.Response:
        url = self._url(path)
        try:
            return self.session.request(method, url, json=json_body, timeout=self.timeout)
        except requests.RequestException as e:
            log.warning("remote_request_failed method=%s url=%s error=%s", method, url, e)
            raise TransportError(f"{method} {url} failed: {e}") from e

    @staticmethod
    def _json(r: requests.Response) -> Any:
        try:
            return r.json()
        except ValueError as e:
            raise TransportError(f"Invalid JSON from {r.url}: {e}") from e

    @staticmethod
    def _ensure_ok(r: requests.Response) -> None:
        if not r.ok:
            raise TransportError(f"HTTP {r.status_code} from {r.url}")

    def fetch_catalog(self) -> list[Product]:
        r = self._request("GET", "/products")
        self._ensure_ok(r)
        data = self._json(r)
        if not isinstance(data, list):
            raise TransportError("Catalog response is not a list.")

        products: list[Product] = []
        for raw in data:
            try:
                products.append(Product.from_dict(raw))
            except ValidationError as e:
                log.warning("catalog_row_skipped row=%s error=%s", raw, e)
        return products

    def create_sale(self, payload: dict, correlation_id: Optional[str]) -> RemoteSaleRecord:
        body = dict(payload)
        if correlation_id:
            body["offline_id"] = correlation_id

        r = self._request("POST", "/sales", json_body=body)
        if r.status_code == 409:
            raise DuplicateError(f"Sale {correlation_id} already recorded remotely.")
        self._ensure_ok(r)
        try:
            return RemoteSaleRecord.from_dict(self._json(r))
        except ValidationError as e:
            raise TransportError(f"Unexpected sale record: {e}") from e

    def fetch_sales(self) -> list[RemoteSaleRecord]:
        r = self._request("GET", "/sales")
        self._ensure_ok(r)
        data = self._json(r)
        if not isinstance(data, list):
            raise TransportError("Sales response is not a list.")
        return [RemoteSaleRecord.from_dict(row) for row in data if isinstance(row, dict)]

    def create_product(self, payload: dict) -> Product:
        r = self._request("POST", "/products", json_body=payload)
        self._ensure_ok(r)
        try:
            return Product.from_dict(self._json(r))
        except ValidationError as e:
            raise TransportError(f"Unexpected product record: {e}") from e

    def health(self) -> dict:
        r = self._request("GET", "/health")
        self._ensure_ok(r)
        data = self._json(r)
        if not isinstance(data, dict) or str(data.get("status", "")).upper() != "OK":
            raise TransportError(f"Remote health check not OK: {data}")
        return data
