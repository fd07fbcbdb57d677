"""
POS HTTP API - Contracts
========================
Framework-agnostic request/response DTOs for billing endpoints.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


def _require_text(value: Any, field_name: str) -> None:
    if not value or not isinstance(value, str):
        raise ValueError(f"{field_name} must be a non-empty string.")


def _exactly_one(first: Any, second: Any, names: str) -> None:
    if (first is None) == (second is None):
        raise ValueError(f"Exactly one of {names} is required.")


@dataclass(frozen=True)
class AddToCartHttpRequest:
    product: Optional[dict[str, Any]] = None
    barcode: Optional[str] = None

    def __post_init__(self):
        _exactly_one(self.product, self.barcode, "product, barcode")
        if self.product is not None and not isinstance(self.product, dict):
            raise ValueError("product must be an object.")
        if self.barcode is not None:
            _require_text(self.barcode, "barcode")


@dataclass(frozen=True)
class QuantityChangeHttpRequest:
    delta: int
    product_id: Optional[str] = None
    line_id: Optional[str] = None

    def __post_init__(self):
        _exactly_one(self.product_id, self.line_id, "productId, lineId")
        if isinstance(self.delta, bool) or not isinstance(self.delta, int):
            raise ValueError("delta must be an integer.")


@dataclass(frozen=True)
class PriceOverrideHttpRequest:
    price: Any
    product_id: Optional[str] = None
    line_id: Optional[str] = None

    def __post_init__(self):
        _exactly_one(self.product_id, self.line_id, "productId, lineId")
        if self.price is None or self.price == "":
            raise ValueError("price is required.")


@dataclass(frozen=True)
class RemoveProductHttpRequest:
    product_id: str

    def __post_init__(self):
        _require_text(self.product_id, "productId")


@dataclass(frozen=True)
class ConfirmationResolveHttpRequest:
    confirmation_id: str
    proceed: bool

    def __post_init__(self):
        _require_text(self.confirmation_id, "confirmation_id")
        if not isinstance(self.proceed, bool):
            raise ValueError("proceed must be a boolean.")


@dataclass(frozen=True)
class CustomerLookupHttpRequest:
    phone: str
    name: Optional[str] = None

    def __post_init__(self):
        _require_text(self.phone, "phone")


@dataclass(frozen=True)
class CheckoutHttpRequest:
    payment_method: str
    amount_received: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_name: Optional[str] = None

    def __post_init__(self):
        _require_text(self.payment_method, "paymentMethod")


@dataclass(frozen=True)
class HttpApiErrorBody:
    code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": dict(self.details),
        }


@dataclass(frozen=True)
class HttpApiResponse:
    ok: bool
    data: Any = None
    error: Optional[HttpApiErrorBody] = None
    meta: Optional[dict[str, Any]] = None

    def to_dict(self) -> dict[str, Any]:
        if self.ok:
            body = {"ok": True, "data": self.data}
        else:
            if self.error is None:
                raise ValueError("error must be set when ok is False.")
            body = {"ok": False, "error": self.error.to_dict()}
        if self.meta:
            body["meta"] = dict(self.meta)
        return body


@dataclass(frozen=True)
class HttpResult:
    """Envelope plus the status code the transport should use."""

    body: dict[str, Any]
    status_code: int = 200
