"""
POS Billing Engine — FIFO Batch Allocation
=============================================
Decides which batch absorbs every unit that enters the cart.

RULES (NON-NEGOTIABLE):
- FIFO: the oldest valid batch with headroom always receives the next unit
- A batch is never allocated beyond its current_quantity at last fetch
- Crossing a batch boundary splits the product into another cart line,
  priced at the new batch's own selling / cost price
- A rejected operation leaves the cart exactly as it was
- Batch lookup failure degrades to product pricing, it never blocks a sale
- A batch expiring within the warning window needs operator confirmation;
  the engine returns that as an outcome, it never blocks waiting for it

Headroom of a batch = batch.current_quantity − units already on lines
bound to that batch.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Iterable, List, Optional, Sequence

from core.money import round2, to_decimal
from core.rejection import ReasonCode, RejectionReason
from engines.billing.cart import Cart, CartLine
from engines.billing.policies import (
    batches_available_policy,
    price_floor_policy,
    product_in_stock_policy,
    stock_ceiling_policy,
)
from engines.inventory.batch_repository import BatchLookupFailed, BatchRepository
from engines.inventory.models import Batch, Product

logger = logging.getLogger("pos.billing.allocation")


# ══════════════════════════════════════════════════════════════
# OUTCOMES
# ══════════════════════════════════════════════════════════════

class OutcomeStatus(Enum):
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    NEEDS_CONFIRMATION = "NEEDS_CONFIRMATION"


@dataclass(frozen=True)
class CartOutcome:
    """
    Result of one cart operation.

    Invariants:
        - REJECTED carries a reason
        - NEEDS_CONFIRMATION carries a pending confirmation
        - ACCEPTED carries neither
    """

    status: OutcomeStatus
    reason: Optional[RejectionReason] = None
    line: Optional[CartLine] = None
    confirmation: Optional["PendingConfirmation"] = None
    degraded: bool = False

    def __post_init__(self):
        if self.status == OutcomeStatus.REJECTED and self.reason is None:
            raise ValueError("REJECTED outcome must include a RejectionReason.")
        if self.status != OutcomeStatus.REJECTED and self.reason is not None:
            raise ValueError(f"{self.status.value} outcome must NOT include a reason.")
        if self.status == OutcomeStatus.NEEDS_CONFIRMATION and self.confirmation is None:
            raise ValueError("NEEDS_CONFIRMATION outcome must include a confirmation.")

    @classmethod
    def accepted(cls, line: Optional[CartLine] = None, degraded: bool = False) -> "CartOutcome":
        return cls(status=OutcomeStatus.ACCEPTED, line=line, degraded=degraded)

    @classmethod
    def rejected(cls, reason: RejectionReason) -> "CartOutcome":
        return cls(status=OutcomeStatus.REJECTED, reason=reason)

    @classmethod
    def awaiting(cls, confirmation: "PendingConfirmation") -> "CartOutcome":
        return cls(status=OutcomeStatus.NEEDS_CONFIRMATION, confirmation=confirmation)

    @property
    def is_accepted(self) -> bool:
        return self.status == OutcomeStatus.ACCEPTED

    @property
    def is_rejected(self) -> bool:
        return self.status == OutcomeStatus.REJECTED

    @property
    def needs_confirmation(self) -> bool:
        return self.status == OutcomeStatus.NEEDS_CONFIRMATION


class PendingConfirmation:
    """
    An add-to-cart held back until the operator confirms or cancels.

    Resolve exactly once. cancel() leaves the cart untouched.
    """

    reason_code = ReasonCode.EXPIRING_SOON

    def __init__(
        self,
        *,
        confirmation_id: str,
        product: Product,
        batch: Batch,
        days_until_expiry: int,
        on_proceed: Callable[[], CartOutcome],
    ):
        self.confirmation_id = confirmation_id
        self.product = product
        self.batch = batch
        self.days_until_expiry = days_until_expiry
        self._on_proceed = on_proceed
        self._resolved = False

    @property
    def resolved(self) -> bool:
        return self._resolved

    @property
    def message(self) -> str:
        plural = "" if self.days_until_expiry == 1 else "s"
        expiry = self.batch.expiry_date.isoformat() if self.batch.expiry_date else "-"
        return (
            f"The batch for '{self.product.name}' will expire in "
            f"{self.days_until_expiry} day{plural}. "
            f"Expiry Date: {expiry}. Batch: {self.batch.batch_number}"
        )

    def _resolve(self) -> None:
        if self._resolved:
            raise RuntimeError(
                f"Confirmation {self.confirmation_id} was already resolved."
            )
        self._resolved = True

    def proceed(self) -> CartOutcome:
        self._resolve()
        return self._on_proceed()

    def cancel(self) -> None:
        self._resolve()
        logger.info(
            "Operator cancelled expiring batch %s for product %s",
            self.batch.batch_number, self.product.product_id,
        )

    def to_dict(self) -> dict:
        return {
            "confirmationId": self.confirmation_id,
            "reason": self.reason_code,
            "message": self.message,
            "productId": self.product.product_id,
            "batchNumber": self.batch.batch_number,
            "daysUntilExpiry": self.days_until_expiry,
        }


# ══════════════════════════════════════════════════════════════
# BATCH SELECTION
# ══════════════════════════════════════════════════════════════

def _units_on_batch(product_id: str, batch_number: str, lines: Iterable[CartLine]) -> int:
    return sum(
        line.quantity for line in lines
        if line.product_id == product_id and line.batch_number == batch_number
    )


def find_next_available_batch(
    product_id: str,
    candidates: Sequence[Batch],
    lines: Sequence[CartLine],
) -> Optional[Batch]:
    """
    First batch, in the given (oldest-first) order, that can take a unit.

    An untouched batch wins immediately. A batch already on a line is
    reused while it has headroom and skipped once exhausted. None means
    every candidate is exhausted.
    """
    for batch in candidates:
        referenced = any(
            line.product_id == product_id and line.batch_number == batch.batch_number
            for line in lines
        )
        if not referenced:
            return batch
        if _units_on_batch(product_id, batch.batch_number, lines) < batch.current_quantity:
            return batch
    return None


# ══════════════════════════════════════════════════════════════
# ENGINE
# ══════════════════════════════════════════════════════════════

class AllocationEngine:
    """
    Applies add / quantity / price operations to one Cart.

    The engine owns no state besides the cart it edits and a counter
    for confirmation ids; batch snapshots come from the repository.
    """

    def __init__(
        self,
        cart: Cart,
        batches: BatchRepository,
        *,
        expiry_warning_days: int = 3,
        currency: str = "INR",
    ):
        if expiry_warning_days < 0:
            raise ValueError("expiry_warning_days cannot be negative.")
        self._cart = cart
        self._batches = batches
        self._expiry_warning_days = expiry_warning_days
        self._currency = currency
        self._confirmation_sequence = 0

    @property
    def cart(self) -> Cart:
        return self._cart

    # ── add one unit ──────────────────────────────────────────

    def add_unit(self, product: Product) -> CartOutcome:
        """One scan / search-select: exactly one more unit of `product`."""
        existing = self._cart.lines_for(product.product_id)
        if existing:
            return self._add_to_existing(product, existing)
        return self._add_first(product)

    def _add_first(self, product: Product) -> CartOutcome:
        reason = product_in_stock_policy(product)
        if reason is not None:
            return CartOutcome.rejected(reason)

        try:
            snapshot = self._batches.fetch_valid_batches(product.product_id)
        except BatchLookupFailed:
            logger.warning(
                "No batch info for product %s, using product prices",
                product.product_id,
            )
            line = CartLine.unlinked(self._cart.next_line_id(), product)
            self._cart.add_line(line)
            return CartOutcome.accepted(line, degraded=True)

        reason = batches_available_policy(product, snapshot)
        if reason is not None:
            return CartOutcome.rejected(reason)

        oldest = snapshot.oldest
        days = oldest.days_until_expiry(snapshot.fetched_on)
        if days is not None and 0 < days <= self._expiry_warning_days:
            return CartOutcome.awaiting(self._expiry_confirmation(product, oldest, days))
        return self._commit_first_line(product, oldest)

    def _commit_first_line(self, product: Product, batch: Batch) -> CartOutcome:
        line = CartLine.for_batch(self._cart.next_line_id(), product, batch)
        self._cart.add_line(line)
        logger.info(
            "Added %s on batch %s at %s",
            product.product_id, batch.batch_number, line.unit_price,
        )
        return CartOutcome.accepted(line)

    def _expiry_confirmation(
        self, product: Product, batch: Batch, days: int,
    ) -> PendingConfirmation:
        self._confirmation_sequence += 1

        def on_proceed() -> CartOutcome:
            # The cart may have gained this product while the dialog was open
            existing = self._cart.lines_for(product.product_id)
            if existing:
                return self._add_to_existing(product, existing)
            return self._commit_first_line(product, batch)

        return PendingConfirmation(
            confirmation_id=f"CONF-{self._confirmation_sequence:04d}",
            product=product,
            batch=batch,
            days_until_expiry=days,
            on_proceed=on_proceed,
        )

    def _add_to_existing(self, product: Product, existing: List[CartLine]) -> CartOutcome:
        reason = product_in_stock_policy(product) or stock_ceiling_policy(
            product, self._cart.quantity_for(product.product_id), 1,
        )
        if reason is not None:
            return CartOutcome.rejected(reason)

        try:
            snapshot = self._batches.fetch_valid_batches(product.product_id)
        except BatchLookupFailed:
            logger.warning(
                "No batch info for product %s, incrementing first line",
                product.product_id,
            )
            return self._increment(existing[0], degraded=True)

        if not snapshot.had_any:
            return self._increment(existing[0])

        reason = batches_available_policy(product, snapshot)
        if reason is not None:
            return CartOutcome.rejected(reason)

        next_batch = find_next_available_batch(
            product.product_id, snapshot.batches, self._cart.lines,
        )
        if next_batch is None:
            return CartOutcome.rejected(RejectionReason(
                code=ReasonCode.INSUFFICIENT_STOCK,
                message=f"Insufficient stock for '{product.name}'.",
                policy_name="find_next_available_batch",
            ))

        for line in existing:
            if line.batch_number == next_batch.batch_number:
                return self._increment(line)

        line = CartLine.for_batch(self._cart.next_line_id(), product, next_batch)
        self._cart.add_line(line)
        logger.info(
            "Product %s moved to batch %s at %s",
            product.product_id, next_batch.batch_number, line.unit_price,
        )
        return CartOutcome.accepted(line)

    def _increment(self, line: CartLine, degraded: bool = False) -> CartOutcome:
        updated = line.with_quantity(line.quantity + 1)
        self._cart.replace_line(updated)
        return CartOutcome.accepted(updated, degraded=degraded)

    # ── quantity changes ──────────────────────────────────────

    def change_quantity(self, product_id: str, delta: int) -> CartOutcome:
        """+/- control on a product: edits its first line in cart order."""
        lines = self._cart.lines_for(product_id)
        if not lines:
            return CartOutcome.rejected(self._line_not_found(product_id))
        return self._change_line(lines[0], delta)

    def change_line_quantity(self, line_id: str, delta: int) -> CartOutcome:
        line = self._cart.get_line(line_id)
        if line is None:
            return CartOutcome.rejected(self._line_not_found(line_id))
        return self._change_line(line, delta)

    def _change_line(self, line: CartLine, delta: int) -> CartOutcome:
        if isinstance(delta, bool) or not isinstance(delta, int):
            raise ValueError(f"delta must be an integer, got {delta!r}.")
        if delta == 0:
            return CartOutcome.accepted(line)

        new_quantity = line.quantity + delta
        if new_quantity <= 0:
            self._cart.remove_line_id(line.line_id)
            logger.info("Removed line %s (%s)", line.line_id, line.product_id)
            return CartOutcome.accepted()

        elsewhere = self._cart.quantity_for(line.product_id) - line.quantity
        reason = stock_ceiling_policy(line.product, elsewhere, new_quantity)
        if reason is not None:
            return CartOutcome.rejected(reason)

        if line.batch is not None and delta > 0:
            headroom = self._batch_limit(line) - _units_on_batch(
                line.product_id,
                line.batch_number,
                (other for other in self._cart.lines if other.line_id != line.line_id),
            )
            if new_quantity > headroom:
                return self._split(line, new_quantity, max(headroom, 0))

        updated = line.with_quantity(new_quantity)
        self._cart.replace_line(updated)
        return CartOutcome.accepted(updated)

    def _batch_limit(self, line: CartLine) -> int:
        """Quantity of the line's batch in the latest snapshot (or its own copy)."""
        snapshot = self._batches.cached(line.product_id)
        if snapshot is not None:
            current = snapshot.find(line.batch_number)
            if current is not None:
                return current.current_quantity
        return line.batch.current_quantity

    def _candidates(self, product_id: str) -> Sequence[Batch]:
        try:
            return self._batches.fetch_valid_batches(product_id).batches
        except BatchLookupFailed:
            return ()

    def _split(self, line: CartLine, new_quantity: int, keep: int) -> CartOutcome:
        """
        Clamp `line` at `keep` units and spread the overflow over the next
        batches in FIFO order. All-or-nothing.
        """
        product = line.product
        working: List[CartLine] = []
        for existing in self._cart.lines:
            if existing.line_id != line.line_id:
                working.append(existing)
            elif keep > 0:
                working.append(existing.with_quantity(keep))

        candidates = self._candidates(product.product_id)
        remaining = new_quantity - keep
        pending = 0
        touched: Optional[CartLine] = None

        while remaining > 0:
            batch = find_next_available_batch(product.product_id, candidates, working)
            if batch is None:
                logger.info(
                    "Split of %s rejected: %d units without batch headroom",
                    product.product_id, remaining,
                )
                return CartOutcome.rejected(RejectionReason(
                    code=ReasonCode.INSUFFICIENT_STOCK,
                    message=f"Only {new_quantity - remaining} units of '{product.name}' "
                            f"available across batches.",
                    policy_name="find_next_available_batch",
                    details={"requested": new_quantity},
                ))
            used = _units_on_batch(product.product_id, batch.batch_number, working)
            take = min(batch.current_quantity - used, remaining)
            remaining -= take

            index = next(
                (
                    i for i, other in enumerate(working)
                    if other.product_id == product.product_id
                    and other.batch_number == batch.batch_number
                ),
                None,
            )
            if index is not None:
                touched = working[index].with_quantity(working[index].quantity + take)
                working[index] = touched
            else:
                pending += 1
                touched = CartLine.for_batch(f"__pending-{pending}", product, batch, take)
                working.insert(0, touched)

        final: List[CartLine] = []
        for candidate in working:
            if candidate.line_id.startswith("__pending-"):
                renamed = dataclasses.replace(candidate, line_id=self._cart.next_line_id())
                if touched is not None and touched.line_id == candidate.line_id:
                    touched = renamed
                final.append(renamed)
            else:
                final.append(candidate)
        self._cart.commit(final)
        logger.info(
            "Split %s: line %s clamped at %d, %d units moved to later batches",
            product.product_id, line.line_id, keep, new_quantity - keep,
        )
        return CartOutcome.accepted(touched)

    # ── price override ────────────────────────────────────────

    def set_unit_price(self, product_id: str, new_price: Any) -> CartOutcome:
        """Cashier override for every line of a product. All-or-nothing."""
        lines = self._cart.lines_for(product_id)
        if not lines:
            return CartOutcome.rejected(self._line_not_found(product_id))
        return self._reprice(lines, new_price)

    def set_line_price(self, line_id: str, new_price: Any) -> CartOutcome:
        line = self._cart.get_line(line_id)
        if line is None:
            return CartOutcome.rejected(self._line_not_found(line_id))
        return self._reprice([line], new_price)

    def _reprice(self, lines: List[CartLine], new_price: Any) -> CartOutcome:
        price = self._parse_price(new_price)
        if price is None:
            return CartOutcome.rejected(RejectionReason(
                code=ReasonCode.INVALID_PRICE,
                message=f"'{new_price}' is not a valid price.",
                policy_name="set_unit_price",
            ))
        for line in lines:
            reason = price_floor_policy(price, line.cost_price, self._currency)
            if reason is not None:
                return CartOutcome.rejected(reason)

        updated = [line.with_unit_price(price) for line in lines]
        for line in updated:
            self._cart.replace_line(line)
        logger.info(
            "Price of %s set to %s on %d line(s)",
            lines[0].product_id, price, len(updated),
        )
        return CartOutcome.accepted(updated[0])

    @staticmethod
    def _parse_price(value: Any) -> Optional[Decimal]:
        try:
            price = to_decimal(value)
        except ValueError:
            return None
        if price < 0:
            return None
        return round2(price)

    @staticmethod
    def _line_not_found(key: str) -> RejectionReason:
        return RejectionReason(
            code=ReasonCode.LINE_NOT_FOUND,
            message=f"Nothing in the cart for '{key}'.",
            policy_name="cart_lookup",
        )
