"""POS Billing Engine - policies."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from core.money import format_currency, parse_amount
from core.rejection import ReasonCode, RejectionReason
from engines.inventory.batch_repository import BatchSnapshot
from engines.inventory.models import Product


def product_in_stock_policy(product: Product) -> RejectionReason | None:
    if product.current_stock <= 0:
        return RejectionReason(
            code=ReasonCode.OUT_OF_STOCK,
            message=f"'{product.name}' is out of stock.",
            policy_name="product_in_stock_policy",
        )
    return None


def stock_ceiling_policy(
    product: Product, quantity_elsewhere: int, requested_quantity: int,
) -> RejectionReason | None:
    """
    The product's tracked stock caps the total across all of its lines.

    quantity_elsewhere: units of the product already on other lines.
    requested_quantity: what the edited line (or new unit) would hold.
    """
    if quantity_elsewhere + requested_quantity > product.current_stock:
        return RejectionReason(
            code=ReasonCode.INSUFFICIENT_STOCK,
            message=(
                f"Only {product.current_stock} units available. "
                f"Already have {quantity_elsewhere} in cart."
            ),
            policy_name="stock_ceiling_policy",
            details={
                "available": product.current_stock,
                "in_cart": quantity_elsewhere,
            },
        )
    return None


def batches_available_policy(
    product: Product, snapshot: BatchSnapshot,
) -> RejectionReason | None:
    if snapshot.has_valid:
        return None
    if not snapshot.had_any:
        return RejectionReason(
            code=ReasonCode.NO_VALID_BATCHES,
            message=(
                f"'{product.name}' has no available non-expired batches. "
                f"Please check inventory or add new stock."
            ),
            policy_name="batches_available_policy",
        )
    return RejectionReason(
        code=ReasonCode.EXPIRED_STOCK,
        message=(
            f"All batches for '{product.name}' have expired and cannot be sold."
        ),
        policy_name="batches_available_policy",
    )


def price_floor_policy(
    new_price: Decimal, cost_price: Decimal, currency: str = "INR",
) -> RejectionReason | None:
    """A known cost is the floor. A cost of exactly 0 disables the floor."""
    if cost_price > 0 and new_price < cost_price:
        return RejectionReason(
            code=ReasonCode.INVALID_PRICE,
            message=(
                f"Selling price ({format_currency(new_price, currency)}) cannot be "
                f"less than FIFO cost price ({format_currency(cost_price, currency)})."
            ),
            policy_name="price_floor_policy",
            details={"cost_price": str(cost_price), "price": str(new_price)},
        )
    return None


def cart_not_empty_policy(line_count: int) -> RejectionReason | None:
    if line_count == 0:
        return RejectionReason(
            code=ReasonCode.EMPTY_CART,
            message="Cart is empty.",
            policy_name="cart_not_empty_policy",
        )
    return None


def cash_tendered_policy(
    amount_tendered: Optional[str], total: Decimal, currency: str = "INR",
) -> RejectionReason | None:
    received = parse_amount(amount_tendered, rounded=False)
    if received is None or received < total:
        return RejectionReason(
            code=ReasonCode.INSUFFICIENT_AMOUNT_RECEIVED,
            message=(
                f"Amount received must be at least {format_currency(total, currency)}."
            ),
            policy_name="cash_tendered_policy",
            details={"total": str(total)},
        )
    return None
