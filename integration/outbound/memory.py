"""
POS Integration — In-Memory Backend
======================================
BackendGateway over plain dicts, for local runs and tests.

Sales are applied FIFO against the stored batches so a second
billing round sees depleted stock, the same way the real backend does.
Failures can be injected per operation to exercise degraded paths.
"""

from __future__ import annotations

import copy
from typing import Any, Dict, List, Optional, Set

from integration.adapters import (
    BackendRequestFailed,
    BackendResponse,
    BackendUnavailable,
)


class InMemoryBackend:
    """Simple in-memory backend for testing and bootstrap."""

    def __init__(self) -> None:
        self._products: Dict[str, Dict[str, Any]] = {}
        self._batches: Dict[str, List[Dict[str, Any]]] = {}
        self._customers: Dict[str, Dict[str, Any]] = {}
        self._sales: List[Dict[str, Any]] = []
        self._customer_sequence = 0
        self.batch_calls: List[str] = []
        self.unavailable: Set[str] = set()
        self.reject_sales_with: Optional[str] = None

    # ── seeding ───────────────────────────────────────────────

    def add_product(self, payload: Dict[str, Any]) -> None:
        product_id = str(payload["_id"])
        self._products[product_id] = dict(payload)
        self._batches.setdefault(product_id, [])

    def add_batch(self, product_id: str, payload: Dict[str, Any]) -> None:
        """Append a batch. Insertion order is receive order (oldest first)."""
        self._batches.setdefault(str(product_id), []).append(dict(payload))

    def add_customer(self, payload: Dict[str, Any]) -> None:
        self._customers[str(payload["phone"])] = dict(payload)

    @property
    def sales(self) -> List[Dict[str, Any]]:
        return copy.deepcopy(self._sales)

    def _check(self, operation: str) -> None:
        if operation in self.unavailable:
            raise BackendUnavailable(
                f"Simulated outage for {operation}", endpoint=operation,
            )

    # ── gateway operations ────────────────────────────────────

    def get_batches_by_product(self, product_id: str) -> List[Dict[str, Any]]:
        self._check("get_batches_by_product")
        self.batch_calls.append(str(product_id))
        if str(product_id) not in self._products:
            raise BackendRequestFailed(
                "Product not found", endpoint="get_batches_by_product", status_code=404,
            )
        return copy.deepcopy(self._batches.get(str(product_id), []))

    def get_product_by_barcode(self, barcode: str) -> Optional[Dict[str, Any]]:
        self._check("get_product_by_barcode")
        for product in self._products.values():
            if product.get("barcode") == barcode:
                return dict(product)
        return None

    def search_products(self, query: str, limit: int = 20) -> List[Dict[str, Any]]:
        self._check("search_products")
        needle = query.strip().lower()
        matches = [
            dict(p) for p in self._products.values()
            if needle in str(p.get("name", "")).lower()
            or needle in str(p.get("sku", "")).lower()
            or needle == str(p.get("barcode", "")).lower()
        ]
        return matches[:limit]

    def find_or_create_customer(
        self, phone: str, name: Optional[str] = None,
    ) -> BackendResponse:
        self._check("find_or_create_customer")
        existing = self._customers.get(phone)
        if existing is not None:
            return BackendResponse(
                success=True, data=dict(existing), message="Customer found",
            )
        self._customer_sequence += 1
        created = {
            "_id": f"cust-{self._customer_sequence}",
            "customerNumber": f"CUST-{self._customer_sequence:05d}",
            "phone": phone,
            "name": name,
            "email": None,
        }
        self._customers[phone] = created
        return BackendResponse(
            success=True, data=dict(created), message="New customer created",
        )

    def process_sale(self, sale: Dict[str, Any]) -> BackendResponse:
        self._check("process_sale")
        if self.reject_sales_with:
            raise BackendRequestFailed(
                self.reject_sales_with, endpoint="process_sale", status_code=400,
            )
        for item in sale.get("saleItems", []):
            product_id = str(item["productId"])
            if product_id not in self._products:
                raise BackendRequestFailed(
                    f"Product {product_id} not found",
                    endpoint="process_sale",
                    status_code=400,
                )
        for item in sale.get("saleItems", []):
            self._consume_fifo(str(item["productId"]), int(item["quantity"]))
        self._sales.append(copy.deepcopy(sale))
        return BackendResponse(
            success=True,
            data={"referenceNumber": sale.get("referenceNumber")},
            message="Sale processed",
        )

    def _consume_fifo(self, product_id: str, quantity: int) -> None:
        remaining = quantity
        for batch in self._batches.get(product_id, []):
            if remaining <= 0:
                break
            available = int(batch.get("currentQuantity") or 0)
            if available <= 0:
                continue
            take = min(available, remaining)
            batch["currentQuantity"] = available - take
            remaining -= take
        product = self._products[product_id]
        product["currentStock"] = max(0, int(product.get("currentStock") or 0) - quantity)
