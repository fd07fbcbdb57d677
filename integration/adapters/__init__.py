"""
POS Integration — Backend Contract
=====================================
The request/response contract the billing engines consume from the
inventory backend, plus the error hierarchy every gateway raises.

Doctrine: payload shapes belong to the backend. Engines see plain
dicts here and convert them into their own models.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Protocol


# ══════════════════════════════════════════════════════════════
# ERROR HIERARCHY
# ══════════════════════════════════════════════════════════════

class BackendError(Exception):
    """Base error for all backend failures."""

    def __init__(
        self,
        message: str,
        *,
        endpoint: str = "",
        status_code: Optional[int] = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.endpoint = endpoint
        self.status_code = status_code
        self.retryable = retryable


class BackendUnavailable(BackendError):
    """Connection refused, DNS failure or timeout. Safe to retry by hand."""

    def __init__(self, message: str, *, endpoint: str = ""):
        super().__init__(message, endpoint=endpoint, retryable=True)


class BackendRequestFailed(BackendError):
    """Backend answered with a non-2xx status or success=false."""

    def __init__(
        self,
        message: str,
        *,
        endpoint: str = "",
        status_code: Optional[int] = None,
    ):
        super().__init__(
            message, endpoint=endpoint, status_code=status_code, retryable=False,
        )


class BackendAuthenticationFailed(BackendRequestFailed):
    """401 from the backend. The stored token is no longer valid."""


# ══════════════════════════════════════════════════════════════
# RESPONSE ENVELOPE
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class BackendResponse:
    """The backend's {success, data, message} envelope."""

    success: bool
    data: Any = None
    message: Optional[str] = None

    @classmethod
    def from_json(cls, body: Mapping[str, Any]) -> "BackendResponse":
        return cls(
            success=bool(body.get("success")),
            data=body.get("data"),
            message=body.get("message"),
        )


# ══════════════════════════════════════════════════════════════
# GATEWAY PROTOCOL
# ══════════════════════════════════════════════════════════════

class BackendGateway(Protocol):
    """
    Calls the billing flow makes against the backend.

    Every method either returns or raises BackendError.
    """

    def get_batches_by_product(self, product_id: str) -> List[Dict[str, Any]]:
        """Batches for a product, oldest purchase first."""
        ...  # pragma: no cover

    def get_product_by_barcode(self, barcode: str) -> Optional[Dict[str, Any]]:
        """Product payload, or None when no product has this barcode."""
        ...  # pragma: no cover

    def search_products(self, query: str, limit: int = 20) -> List[Dict[str, Any]]:
        ...  # pragma: no cover

    def find_or_create_customer(
        self, phone: str, name: Optional[str] = None,
    ) -> BackendResponse:
        ...  # pragma: no cover

    def process_sale(self, sale: Dict[str, Any]) -> BackendResponse:
        ...  # pragma: no cover
