"""
POS Integration — Backend REST Client
========================================
requests-based implementation of BackendGateway.

Every call has a timeout. A hung backend surfaces as BackendUnavailable
instead of leaving the billing screen loading forever.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests

from core.config.settings import PosSettings
from integration.adapters import (
    BackendAuthenticationFailed,
    BackendRequestFailed,
    BackendResponse,
    BackendUnavailable,
)

logger = logging.getLogger("pos.integration.backend")


class BackendClient:
    """Talks JSON to the inventory backend under `base_url`."""

    def __init__(
        self,
        base_url: str,
        *,
        token: Optional[str] = None,
        timeout: float = 15.0,
        session: Optional[requests.Session] = None,
    ):
        if not base_url:
            raise ValueError("base_url must be non-empty.")
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = timeout
        self._session = session or requests.Session()

    @classmethod
    def from_settings(
        cls, settings: PosSettings, session: Optional[requests.Session] = None,
    ) -> "BackendClient":
        return cls(
            settings.api_base_url,
            token=settings.api_token,
            timeout=settings.request_timeout_seconds,
            session=session,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    def set_token(self, token: Optional[str]) -> None:
        self._token = token

    # ── transport ─────────────────────────────────────────────

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _request(
        self,
        method: str,
        endpoint: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> requests.Response:
        url = f"{self._base_url}{endpoint}"
        logger.debug("Backend request %s %s", method, url)
        try:
            return self._session.request(
                method,
                url,
                params=params,
                json=json,
                headers=self._headers(),
                timeout=self._timeout,
            )
        except (requests.ConnectionError, requests.Timeout) as exc:
            logger.warning("Backend unreachable at %s: %s", self._base_url, exc)
            raise BackendUnavailable(
                f"Cannot connect to server at {self._base_url}: {exc}",
                endpoint=endpoint,
            ) from exc
        except requests.RequestException as exc:
            raise BackendRequestFailed(str(exc), endpoint=endpoint) from exc

    def _decode(self, response: requests.Response, endpoint: str) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {"data": body}

        if response.status_code == 401:
            self._token = None
            raise BackendAuthenticationFailed(
                "Authentication failed. Please login again.",
                endpoint=endpoint,
                status_code=401,
            )
        if not response.ok:
            errors = body.get("errors")
            if response.status_code == 400 and isinstance(errors, list):
                joined = ", ".join(
                    f"{err.get('field')}: {err.get('message')}"
                    for err in errors
                    if isinstance(err, dict)
                )
                message = f"Validation failed: {joined}"
            else:
                message = body.get("message") or "Something went wrong"
            logger.warning(
                "Backend %s returned %s: %s", endpoint, response.status_code, message,
            )
            raise BackendRequestFailed(
                message, endpoint=endpoint, status_code=response.status_code,
            )
        return body

    def _call(self, method: str, endpoint: str, **kwargs) -> Dict[str, Any]:
        response = self._request(method, endpoint, **kwargs)
        return self._decode(response, endpoint)

    # ── gateway operations ────────────────────────────────────

    def get_batches_by_product(self, product_id: str) -> List[Dict[str, Any]]:
        endpoint = f"/batches/product/{quote(str(product_id), safe='')}"
        body = self._call("GET", endpoint)
        if not body.get("success"):
            raise BackendRequestFailed(
                body.get("message") or "Batch lookup failed", endpoint=endpoint,
            )
        data = body.get("data") or {}
        batches = data.get("batches") if isinstance(data, dict) else data
        return list(batches or [])

    def get_product_by_barcode(self, barcode: str) -> Optional[Dict[str, Any]]:
        endpoint = f"/products/barcode/{quote(str(barcode), safe='')}"
        try:
            body = self._call("GET", endpoint)
        except BackendRequestFailed as exc:
            if exc.status_code == 404:
                return None
            raise
        if not body.get("success") or not body.get("data"):
            return None
        return body["data"]

    def search_products(self, query: str, limit: int = 20) -> List[Dict[str, Any]]:
        body = self._call(
            "GET", "/products/search", params={"search": query, "limit": limit},
        )
        data = body.get("data") or []
        return list(data) if isinstance(data, list) else []

    def find_or_create_customer(
        self, phone: str, name: Optional[str] = None,
    ) -> BackendResponse:
        payload: Dict[str, Any] = {"phone": phone}
        if name:
            payload["name"] = name
        body = self._call("POST", "/customers/find-or-create", json=payload)
        return BackendResponse.from_json(body)

    def process_sale(self, sale: Dict[str, Any]) -> BackendResponse:
        body = self._call("POST", "/inventory/sales", json=sale)
        return BackendResponse.from_json(body)
