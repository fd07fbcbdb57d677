"""
POS Billing Engine — Cart Aggregate
======================================
The in-progress transaction: a flat, ordered list of cart lines.

RULES (NON-NEGOTIABLE):
- Lines are ordered most-recently-added first
- Several lines may share a product (one per batch it spans)
- A line is bound to exactly one batch, or to none (fallback pricing)
- total_price = round2(quantity × unit_price), always derived
- subtotal / tax / total are recomputed from current lines on every read
- cost_price is never edited by the operator

Per-product figures are derived by filtering the flat list, never by
nesting lines under a product node.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple, Union

from core.money import ZERO, line_total, round2
from engines.inventory.models import Batch, Product


# ══════════════════════════════════════════════════════════════
# BATCH ASSOCIATION (tagged variant)
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class BatchLinked:
    """Line priced and capped by a specific batch."""
    batch: Batch

    @property
    def batch_number(self) -> str:
        return self.batch.batch_number


@dataclass(frozen=True)
class Unlinked:
    """Line priced from the product because no batch info was available."""
    fallback_cost: Decimal
    fallback_price: Decimal


Allocation = Union[BatchLinked, Unlinked]


# ══════════════════════════════════════════════════════════════
# CART LINE
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class CartLine:
    """One row of the transaction. Replaced, never mutated in place."""

    line_id: str
    product: Product
    allocation: Allocation
    quantity: int
    unit_price: Decimal
    cost_price: Decimal

    def __post_init__(self):
        if not self.line_id:
            raise ValueError("line_id must be non-empty.")
        if not isinstance(self.quantity, int) or self.quantity <= 0:
            raise ValueError(f"quantity must be positive integer, got {self.quantity!r}.")
        if self.unit_price < 0:
            raise ValueError("unit_price cannot be negative.")
        if self.cost_price < 0:
            raise ValueError("cost_price cannot be negative.")

    @classmethod
    def for_batch(
        cls, line_id: str, product: Product, batch: Batch, quantity: int = 1,
    ) -> "CartLine":
        return cls(
            line_id=line_id,
            product=product,
            allocation=BatchLinked(batch),
            quantity=quantity,
            unit_price=round2(batch.selling_price),
            cost_price=round2(batch.cost_price),
        )

    @classmethod
    def unlinked(cls, line_id: str, product: Product, quantity: int = 1) -> "CartLine":
        price = round2(product.selling_price)
        cost = round2(product.cost_price)
        return cls(
            line_id=line_id,
            product=product,
            allocation=Unlinked(fallback_cost=cost, fallback_price=price),
            quantity=quantity,
            unit_price=price,
            cost_price=cost,
        )

    @property
    def product_id(self) -> str:
        return self.product.product_id

    @property
    def batch(self) -> Optional[Batch]:
        if isinstance(self.allocation, BatchLinked):
            return self.allocation.batch
        return None

    @property
    def batch_number(self) -> Optional[str]:
        batch = self.batch
        return batch.batch_number if batch is not None else None

    @property
    def total_price(self) -> Decimal:
        return line_total(self.quantity, self.unit_price)

    @property
    def margin(self) -> Decimal:
        """Profit per unit at the current price."""
        return round2(self.unit_price - self.cost_price)

    def with_quantity(self, quantity: int) -> "CartLine":
        return dataclasses.replace(self, quantity=quantity)

    def with_unit_price(self, unit_price: Decimal) -> "CartLine":
        return dataclasses.replace(self, unit_price=round2(unit_price))

    def to_dict(self) -> dict:
        batch = self.batch
        return {
            "lineId": self.line_id,
            "productId": self.product_id,
            "name": self.product.name,
            "sku": self.product.sku,
            "batchNumber": batch.batch_number if batch else None,
            "availableQuantity": batch.current_quantity if batch else None,
            "quantity": self.quantity,
            "unitPrice": str(self.unit_price),
            "costPrice": str(self.cost_price),
            "totalPrice": str(self.total_price),
        }


# ══════════════════════════════════════════════════════════════
# CART
# ══════════════════════════════════════════════════════════════

class Cart:
    """
    Ordered collection of CartLine for one transaction.

    Multi-line edits go through commit(), which swaps the whole list at
    once, so a rejected operation never leaves a half-applied cart.
    """

    def __init__(self, tax_rate: Decimal = Decimal("0")):
        if not Decimal("0") <= tax_rate <= Decimal("1"):
            raise ValueError(f"tax_rate must be between 0 and 1, got {tax_rate}.")
        self._lines: List[CartLine] = []
        self._line_sequence = 0
        self._tax_rate = tax_rate

    def next_line_id(self) -> str:
        self._line_sequence += 1
        return f"L-{self._line_sequence:04d}"

    # ── reads ─────────────────────────────────────────────────

    @property
    def lines(self) -> Tuple[CartLine, ...]:
        return tuple(self._lines)

    def __len__(self) -> int:
        return len(self._lines)

    @property
    def is_empty(self) -> bool:
        return not self._lines

    def get_line(self, line_id: str) -> Optional[CartLine]:
        for line in self._lines:
            if line.line_id == line_id:
                return line
        return None

    def lines_for(self, product_id: str) -> List[CartLine]:
        """Lines of one product, in cart order."""
        return [line for line in self._lines if line.product_id == product_id]

    def quantity_for(self, product_id: str) -> int:
        return sum(line.quantity for line in self._lines if line.product_id == product_id)

    def quantity_on_batch(self, product_id: str, batch_number: str) -> int:
        return sum(
            line.quantity for line in self._lines
            if line.product_id == product_id and line.batch_number == batch_number
        )

    # ── totals (always derived) ───────────────────────────────

    @property
    def subtotal(self) -> Decimal:
        return round2(sum((line.total_price for line in self._lines), ZERO))

    @property
    def tax(self) -> Decimal:
        return round2(self.subtotal * self._tax_rate)

    @property
    def total(self) -> Decimal:
        return round2(self.subtotal + self.tax)

    @property
    def total_items(self) -> int:
        return sum(line.quantity for line in self._lines)

    # ── writes ────────────────────────────────────────────────

    def add_line(self, line: CartLine) -> None:
        if self.get_line(line.line_id) is not None:
            raise ValueError(f"Duplicate line_id {line.line_id}.")
        self._lines.insert(0, line)

    def replace_line(self, line: CartLine) -> None:
        for index, existing in enumerate(self._lines):
            if existing.line_id == line.line_id:
                self._lines[index] = line
                return
        raise KeyError(line.line_id)

    def remove_line_id(self, line_id: str) -> bool:
        before = len(self._lines)
        self._lines = [line for line in self._lines if line.line_id != line_id]
        return len(self._lines) != before

    def remove_line(self, product_id: str) -> int:
        """Remove every line of a product. Returns how many were removed."""
        before = len(self._lines)
        self._lines = [line for line in self._lines if line.product_id != product_id]
        return before - len(self._lines)

    def clear(self) -> None:
        self._lines = []

    def commit(self, lines: Iterable[CartLine]) -> None:
        """Replace every line at once."""
        new_lines = list(lines)
        ids = [line.line_id for line in new_lines]
        if len(ids) != len(set(ids)):
            raise ValueError("Duplicate line_id in commit.")
        self._lines = new_lines

    def to_dict(self) -> dict:
        return {
            "lines": [line.to_dict() for line in self._lines],
            "subtotal": str(self.subtotal),
            "tax": str(self.tax),
            "total": str(self.total),
            "totalItems": self.total_items,
        }
