"""
POS Billing Engine — Checkout / Receipt Composer
===================================================
Turns the final cart into an immutable Receipt and one "process sale"
request to the backend.

RULES (NON-NEGOTIABLE):
- Cash requires amount tendered >= total; other methods tender the total
- change = tendered − total for cash, 0 otherwise
- The Receipt copies line data; it never aliases live CartLine objects
- The composer never clears the cart; success handling belongs to the
  session, failure leaves everything as it was for a manual retry
- No automatic retry
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from core.money import ZERO, format_currency, parse_amount, round2, to_wire
from core.rejection import ReasonCode, RejectionReason
from core.time.clock import Clock, SystemClock, epoch_millis
from engines.billing.cart import Cart, CartLine
from engines.billing.policies import cart_not_empty_policy, cash_tendered_policy
from integration.adapters import BackendError, BackendGateway

logger = logging.getLogger("pos.billing.checkout")


class PaymentMethod(Enum):
    CASH = "cash"
    CARD = "card"
    UPI = "upi"
    WALLET = "wallet"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @classmethod
    def parse(cls, value: Any) -> "PaymentMethod":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(
                f"Unknown payment method {value!r}. "
                f"Expected one of: {', '.join(m.value for m in cls)}."
            ) from None


_DISPLAY_NAMES = {
    PaymentMethod.CASH: "Cash",
    PaymentMethod.CARD: "Card",
    PaymentMethod.UPI: "UPI",
    PaymentMethod.WALLET: "Wallet",
}


# ══════════════════════════════════════════════════════════════
# RECEIPT (immutable snapshot)
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class CustomerRef:
    customer_id: str
    phone: str
    name: Optional[str] = None
    email: Optional[str] = None
    customer_number: Optional[str] = None


@dataclass(frozen=True)
class ReceiptLine:
    product_id: str
    name: str
    sku: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    cost_price: Decimal
    batch_number: Optional[str] = None
    category: Optional[str] = None
    mrp: Optional[Decimal] = None

    @classmethod
    def from_cart_line(cls, line: CartLine) -> "ReceiptLine":
        return cls(
            product_id=line.product_id,
            name=line.product.name,
            sku=line.product.sku,
            quantity=line.quantity,
            unit_price=line.unit_price,
            total_price=line.total_price,
            cost_price=line.cost_price,
            batch_number=line.batch_number,
            category=line.product.category,
            mrp=line.product.mrp,
        )

    @property
    def profit(self) -> Decimal:
        return round2((self.unit_price - self.cost_price) * self.quantity)

    def to_payload(self) -> dict:
        return {
            "product": {
                "_id": self.product_id,
                "name": self.name,
                "sku": self.sku,
                "category": self.category,
                "mrp": to_wire(self.mrp) if self.mrp is not None else None,
            },
            "batchNumber": self.batch_number,
            "quantity": self.quantity,
            "unitPrice": to_wire(self.unit_price),
            "totalPrice": to_wire(self.total_price),
            "costPrice": to_wire(self.cost_price),
        }


@dataclass(frozen=True)
class Receipt:
    bill_number: str
    issued_at: datetime
    lines: Tuple[ReceiptLine, ...]
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    payment_method: PaymentMethod
    amount_received: Decimal
    change: Decimal
    cashier: Optional[str] = None
    customer: Optional[CustomerRef] = None

    @property
    def total_items(self) -> int:
        return sum(line.quantity for line in self.lines)

    @property
    def profit(self) -> Decimal:
        return round2(sum((line.profit for line in self.lines), ZERO))

    def to_payload(self) -> dict:
        customer = self.customer
        return {
            "billNumber": self.bill_number,
            "date": self.issued_at.isoformat(),
            "items": [line.to_payload() for line in self.lines],
            "subtotal": to_wire(self.subtotal),
            "tax": to_wire(self.tax),
            "total": to_wire(self.total),
            "paymentMethod": self.payment_method.display_name,
            "amountReceived": to_wire(self.amount_received),
            "change": to_wire(self.change),
            "cashier": self.cashier,
            "customerPhone": customer.phone if customer else None,
            "customerName": customer.name if customer else None,
            "customerEmail": customer.email if customer else None,
        }


# ══════════════════════════════════════════════════════════════
# OUTCOME
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class CheckoutOutcome:
    """Exactly one of receipt (accepted) or reason (rejected)."""

    receipt: Optional[Receipt] = None
    reason: Optional[RejectionReason] = None

    def __post_init__(self):
        if (self.receipt is None) == (self.reason is None):
            raise ValueError("CheckoutOutcome needs exactly one of receipt or reason.")

    @property
    def is_accepted(self) -> bool:
        return self.receipt is not None


# ══════════════════════════════════════════════════════════════
# COMPOSER
# ══════════════════════════════════════════════════════════════

class CheckoutComposer:
    def __init__(
        self,
        gateway: BackendGateway,
        *,
        clock: Optional[Clock] = None,
        bill_prefix: str = "BILL",
        currency: str = "INR",
    ):
        if not bill_prefix:
            raise ValueError("bill_prefix must be non-empty.")
        self._gateway = gateway
        self._clock = clock or SystemClock()
        self._bill_prefix = bill_prefix
        self._currency = currency
        self._last_millis = 0

    def next_bill_number(self) -> str:
        millis = epoch_millis(self._clock)
        # Two bills in the same millisecond must still differ
        if millis <= self._last_millis:
            millis = self._last_millis + 1
        self._last_millis = millis
        return f"{self._bill_prefix}-{millis}"

    def checkout(
        self,
        cart: Cart,
        method: PaymentMethod,
        amount_tendered: Optional[str] = None,
        customer: Optional[CustomerRef] = None,
        cashier: Optional[str] = None,
    ) -> CheckoutOutcome:
        reason = cart_not_empty_policy(len(cart))
        if reason is not None:
            return CheckoutOutcome(reason=reason)

        total = cart.total
        if method is PaymentMethod.CASH:
            reason = cash_tendered_policy(amount_tendered, total, self._currency)
            if reason is not None:
                logger.info("Cash checkout refused: %s", reason.message)
                return CheckoutOutcome(reason=reason)
            tendered = parse_amount(amount_tendered, rounded=False)
            received = round2(tendered)
            change = round2(tendered - total)
        else:
            received = total
            change = ZERO

        receipt = Receipt(
            bill_number=self.next_bill_number(),
            issued_at=self._clock.now_utc(),
            lines=tuple(ReceiptLine.from_cart_line(line) for line in cart.lines),
            subtotal=cart.subtotal,
            tax=cart.tax,
            total=total,
            payment_method=method,
            amount_received=received,
            change=change,
            cashier=cashier,
            customer=customer,
        )

        try:
            response = self._gateway.process_sale(self.sale_request(receipt))
        except BackendError as exc:
            logger.warning("Sale %s failed: %s", receipt.bill_number, exc)
            return CheckoutOutcome(reason=self._payment_failed(str(exc) or "Payment failed"))
        if not response.success:
            logger.warning("Sale %s refused: %s", receipt.bill_number, response.message)
            return CheckoutOutcome(
                reason=self._payment_failed(response.message or "Payment failed")
            )

        logger.info(
            "Sale %s completed: %d items, total %s via %s",
            receipt.bill_number, receipt.total_items, total, method.value,
        )
        return CheckoutOutcome(receipt=receipt)

    def sale_request(self, receipt: Receipt) -> Dict[str, Any]:
        """Minimal sale items plus the receipt the backend stores verbatim."""
        items: List[Dict[str, Any]] = [
            {
                "productId": line.product_id,
                "quantity": line.quantity,
                "notes": f"Sold at {format_currency(line.unit_price, self._currency)}",
            }
            for line in receipt.lines
        ]
        return {
            "saleItems": items,
            "referenceNumber": receipt.bill_number,
            "receiptData": receipt.to_payload(),
        }

    @staticmethod
    def _payment_failed(message: str) -> RejectionReason:
        return RejectionReason(
            code=ReasonCode.PAYMENT_FAILED,
            message=message,
            policy_name="process_sale",
        )
