"""
POS Inventory Engine — Catalog & Batch Models
================================================
Read-only views of the backend's product and batch records.

The engine never mutates these. A Batch is a receipt lot of a product;
its current_quantity is the snapshot taken at the last fetch, and it is
the upper bound the cart may allocate against.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Mapping, Optional
from zoneinfo import ZoneInfo

from core.money import ZERO, round2


def _parse_date(value: Any, tz_name: Optional[str] = None) -> Optional[date]:
    """
    Accept ISO dates / datetimes (with or without 'Z') and date objects.

    An aware datetime is converted to tz_name before truncation, so its
    calendar day matches the store's business day.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return _calendar_day(value, tz_name)
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return _calendar_day(datetime.fromisoformat(text), tz_name)
        except ValueError:
            pass
        try:
            return date.fromisoformat(text[:10])
        except ValueError as exc:
            raise ValueError(f"Not an ISO date: {value!r}.") from exc
    raise ValueError(f"Unsupported date value: {value!r}.")


def _calendar_day(moment: datetime, tz_name: Optional[str]) -> date:
    if tz_name and moment.tzinfo is not None:
        moment = moment.astimezone(ZoneInfo(tz_name))
    return moment.date()


def _money(payload: Mapping[str, Any], key: str) -> Decimal:
    value = payload.get(key)
    if value is None or value == "":
        return ZERO
    return round2(value)


def _quantity(payload: Mapping[str, Any], *keys: str) -> int:
    for key in keys:
        value = payload.get(key)
        if value:
            return int(value)
    return 0


# ══════════════════════════════════════════════════════════════
# PRODUCT
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Product:
    """
    Catalog entity. selling_price / cost_price are the fallback pricing
    used when no batch information is available.
    """

    product_id: str
    name: str
    sku: str
    selling_price: Decimal
    cost_price: Decimal
    current_stock: int
    barcode: Optional[str] = None
    mrp: Optional[Decimal] = None
    category: Optional[str] = None

    def __post_init__(self):
        if not self.product_id:
            raise ValueError("product_id must be non-empty.")
        if not isinstance(self.current_stock, int):
            raise ValueError("current_stock must be an integer.")

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Product":
        product_id = payload.get("_id") or payload.get("id") or payload.get("productId")
        mrp = payload.get("mrp")
        return cls(
            product_id=str(product_id or ""),
            name=str(payload.get("name", "")),
            sku=str(payload.get("sku", "")),
            selling_price=_money(payload, "sellingPrice"),
            cost_price=_money(payload, "costPrice"),
            current_stock=_quantity(payload, "currentStock"),
            barcode=payload.get("barcode"),
            mrp=round2(mrp) if mrp not in (None, "") else None,
            category=payload.get("category") if isinstance(payload.get("category"), str) else None,
        )

    def to_payload(self) -> dict:
        return {
            "_id": self.product_id,
            "name": self.name,
            "sku": self.sku,
            "sellingPrice": float(self.selling_price),
            "costPrice": float(self.cost_price),
            "currentStock": self.current_stock,
            "barcode": self.barcode,
            "mrp": float(self.mrp) if self.mrp is not None else None,
            "category": self.category,
        }


# ══════════════════════════════════════════════════════════════
# BATCH
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Batch:
    """
    Receipt lot of a product. batch_number is unique per product.

    Invariant: current_quantity >= 0.
    """

    batch_number: str
    cost_price: Decimal
    selling_price: Decimal
    current_quantity: int
    expiry_date: Optional[date] = None
    purchase_date: Optional[date] = None

    def __post_init__(self):
        if not self.batch_number:
            raise ValueError("batch_number must be non-empty.")
        if not isinstance(self.current_quantity, int):
            raise ValueError("current_quantity must be an integer.")
        if self.current_quantity < 0:
            raise ValueError(
                f"current_quantity cannot be negative, got {self.current_quantity}."
            )

    @classmethod
    def from_payload(
        cls, payload: Mapping[str, Any], tz_name: Optional[str] = None,
    ) -> "Batch":
        """tz_name is the store timezone used to read timestamped dates."""
        return cls(
            batch_number=str(payload.get("batchNumber", "")),
            cost_price=_money(payload, "costPrice"),
            selling_price=_money(payload, "sellingPrice"),
            current_quantity=max(0, _quantity(payload, "currentQuantity", "availableQuantity")),
            expiry_date=_parse_date(payload.get("expiryDate"), tz_name),
            purchase_date=_parse_date(payload.get("purchaseDate"), tz_name),
        )

    def is_expired_on(self, today: date) -> bool:
        # Day granularity: a batch expiring today is still sellable
        return self.expiry_date is not None and self.expiry_date < today

    def is_valid_on(self, today: date) -> bool:
        return self.current_quantity > 0 and not self.is_expired_on(today)

    def days_until_expiry(self, today: date) -> Optional[int]:
        if self.expiry_date is None:
            return None
        return (self.expiry_date - today).days

    @property
    def value_at_risk(self) -> Decimal:
        """Remaining quantity at cost (informational, for expiry reports)."""
        return round2(Decimal(self.current_quantity) * self.cost_price)

    def to_payload(self) -> dict:
        return {
            "batchNumber": self.batch_number,
            "costPrice": float(self.cost_price),
            "sellingPrice": float(self.selling_price),
            "currentQuantity": self.current_quantity,
            "expiryDate": self.expiry_date.isoformat() if self.expiry_date else None,
            "purchaseDate": self.purchase_date.isoformat() if self.purchase_date else None,
        }
