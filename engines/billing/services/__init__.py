"""
POS Billing Engine — Billing Session
=======================================
State of one billing screen: the cart, the chosen payment method, the
amount tendered, the customer and the last receipt.

Everything the operator does on the screen is one call here; each call
runs to completion (or explicit rejection) before the next.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Callable, Dict, List, Mapping, Optional

from core.config.settings import PosSettings
from core.money import parse_amount, round2
from core.rejection import ReasonCode, RejectionReason
from core.time.clock import Clock, SystemClock
from engines.billing.allocation import AllocationEngine, CartOutcome, PendingConfirmation
from engines.billing.cart import Cart
from engines.billing.checkout import (
    CheckoutComposer,
    CheckoutOutcome,
    CustomerRef,
    PaymentMethod,
    Receipt,
)
from engines.customer.lookup import CustomerLookup, CustomerOutcome
from engines.customer.models import Customer
from engines.inventory.batch_repository import BatchRepository, ExpiringBatch
from engines.inventory.models import Product
from engines.inventory.search import ProductSearch, SearchResult, SearchTicket
from integration.adapters import BackendError, BackendGateway

logger = logging.getLogger("pos.billing.session")

Scheduler = Callable[[float, Callable[[], None]], None]

DEFAULT_PAYMENT_METHOD = PaymentMethod.UPI


def run_immediately(delay_seconds: float, callback: Callable[[], None]) -> None:
    """Default scheduler: no UI transition to wait for."""
    callback()


class BillingSession:
    def __init__(
        self,
        gateway: BackendGateway,
        *,
        settings: Optional[PosSettings] = None,
        clock: Optional[Clock] = None,
        scheduler: Optional[Scheduler] = None,
        cashier: Optional[str] = None,
    ):
        self._settings = settings or PosSettings()
        self._gateway = gateway
        clock = clock or SystemClock()
        self._scheduler = scheduler or run_immediately
        self._batches = BatchRepository(
            gateway,
            clock=clock,
            timezone=self._settings.business_timezone,
            cache_enabled=self._settings.batch_cache_enabled,
        )
        self.cart = Cart(tax_rate=self._settings.tax_rate)
        self._engine = AllocationEngine(
            self.cart,
            self._batches,
            expiry_warning_days=self._settings.expiry_warning_days,
            currency=self._settings.currency,
        )
        self._composer = CheckoutComposer(
            gateway,
            clock=clock,
            bill_prefix=self._settings.bill_prefix,
            currency=self._settings.currency,
        )
        self._customers = CustomerLookup(gateway)
        self._search = ProductSearch(gateway)
        self._pending: Dict[str, PendingConfirmation] = {}

        self.cashier = cashier
        self.payment_method = DEFAULT_PAYMENT_METHOD
        self.amount_received = ""
        self.customer_phone = ""
        self.customer_name = ""
        self.customer: Optional[Customer] = None
        self.last_receipt: Optional[Receipt] = None
        self._checkout_in_flight = False

    @property
    def batches(self) -> BatchRepository:
        return self._batches

    @property
    def checkout_in_flight(self) -> bool:
        return self._checkout_in_flight

    # ── adding products ───────────────────────────────────────

    def add_product(self, product: Product) -> CartOutcome:
        outcome = self._engine.add_unit(product)
        if outcome.needs_confirmation:
            confirmation = outcome.confirmation
            self._pending[confirmation.confirmation_id] = confirmation
        return outcome

    def add_product_payload(self, payload: Mapping[str, Any]) -> CartOutcome:
        return self.add_product(Product.from_payload(payload))

    def scan(self, barcode: str) -> CartOutcome:
        code = (barcode or "").strip()
        try:
            payload = self._gateway.get_product_by_barcode(code) if code else None
        except BackendError as exc:
            logger.warning("Barcode lookup failed for %s: %s", code, exc)
            return CartOutcome.rejected(RejectionReason(
                code=ReasonCode.PRODUCT_NOT_FOUND,
                message=f"Could not look up barcode {code}: {exc}",
                policy_name="get_product_by_barcode",
            ))
        if not payload:
            return CartOutcome.rejected(RejectionReason(
                code=ReasonCode.PRODUCT_NOT_FOUND,
                message=f"No product with barcode '{code}'.",
                policy_name="get_product_by_barcode",
            ))
        return self.add_product_payload(payload)

    @property
    def pending_confirmations(self) -> List[PendingConfirmation]:
        return list(self._pending.values())

    def resolve_confirmation(self, confirmation_id: str, proceed: bool) -> CartOutcome:
        """Raises KeyError for an unknown or already resolved confirmation."""
        confirmation = self._pending.pop(confirmation_id)
        if proceed:
            return confirmation.proceed()
        confirmation.cancel()
        return CartOutcome.accepted()

    def search(self, query: str) -> SearchResult:
        return self._search.run(query)

    # Split form of search() for callers that release their session lock
    # while the backend answers; a newer begin_search supersedes older ones.
    def begin_search(self, query: str) -> SearchTicket:
        return self._search.begin(query)

    def fetch_search(self, ticket: SearchTicket) -> List[Dict[str, Any]]:
        return self._search.fetch(ticket)

    def complete_search(
        self, ticket: SearchTicket, raw_results: List[Dict[str, Any]],
    ) -> SearchResult:
        return self._search.complete(ticket, raw_results)

    # ── editing ───────────────────────────────────────────────

    def change_quantity(self, product_id: str, delta: int) -> CartOutcome:
        return self._engine.change_quantity(product_id, delta)

    def change_line_quantity(self, line_id: str, delta: int) -> CartOutcome:
        return self._engine.change_line_quantity(line_id, delta)

    def set_unit_price(self, product_id: str, price: Any) -> CartOutcome:
        return self._engine.set_unit_price(product_id, price)

    def set_line_price(self, line_id: str, price: Any) -> CartOutcome:
        return self._engine.set_line_price(line_id, price)

    def remove_product(self, product_id: str) -> CartOutcome:
        if self.cart.remove_line(product_id) == 0:
            return CartOutcome.rejected(RejectionReason(
                code=ReasonCode.LINE_NOT_FOUND,
                message=f"Nothing in the cart for '{product_id}'.",
                policy_name="remove_product",
            ))
        return CartOutcome.accepted()

    def clear(self) -> None:
        self.cart.clear()
        self._pending.clear()
        self._batches.invalidate()
        logger.info("Cart cleared")

    def expiring_batches(self, product_id: str) -> List[ExpiringBatch]:
        return self._batches.expiring_batches(
            product_id, self._settings.expiry_warning_days,
        )

    # ── payment & customer ────────────────────────────────────

    def select_payment_method(self, method: Any) -> PaymentMethod:
        self.payment_method = PaymentMethod.parse(method)
        return self.payment_method

    def set_amount_received(self, text: Optional[str]) -> None:
        self.amount_received = (text or "").strip()

    @property
    def change_due(self) -> Optional[Decimal]:
        """Change for the entered cash amount, None until it covers the total."""
        if self.payment_method is not PaymentMethod.CASH:
            return None
        received = parse_amount(self.amount_received, rounded=False)
        total = self.cart.total
        if received is None or received < total:
            return None
        return round2(received - total)

    def lookup_customer(self, phone: str, name: Optional[str] = None) -> CustomerOutcome:
        self.customer_phone = phone or ""
        if name is not None:
            self.customer_name = name
        outcome = self._customers.find_or_create(self.customer_phone, self.customer_name or None)
        self.customer = outcome.customer
        if outcome.customer is not None and outcome.customer.name and not self.customer_name:
            self.customer_name = outcome.customer.name
        return outcome

    def _customer_ref(self) -> Optional[CustomerRef]:
        if self.customer is None and self.customer_phone:
            # Best effort: a failed lookup never blocks the sale
            self.lookup_customer(self.customer_phone)
        customer = self.customer
        if customer is None:
            return None
        return CustomerRef(
            customer_id=customer.customer_id,
            phone=customer.phone,
            name=self.customer_name or customer.name,
            email=customer.email,
            customer_number=customer.customer_number,
        )

    # ── checkout ──────────────────────────────────────────────

    def checkout(self) -> CheckoutOutcome:
        if self._checkout_in_flight:
            return CheckoutOutcome(reason=RejectionReason(
                code=ReasonCode.CHECKOUT_IN_PROGRESS,
                message="A payment is already being processed.",
                policy_name="checkout_in_flight",
            ))
        self._checkout_in_flight = True
        try:
            outcome = self._composer.checkout(
                self.cart,
                self.payment_method,
                amount_tendered=self.amount_received,
                customer=self._customer_ref(),
                cashier=self.cashier,
            )
        finally:
            self._checkout_in_flight = False

        if outcome.is_accepted:
            self.last_receipt = outcome.receipt
            self._scheduler(self._settings.reset_delay_seconds, self._reset_after_sale)
        return outcome

    def _reset_after_sale(self) -> None:
        self.cart.clear()
        self._pending.clear()
        self.payment_method = DEFAULT_PAYMENT_METHOD
        self.amount_received = ""
        self.customer_phone = ""
        self.customer_name = ""
        self.customer = None
        # Sold units changed batch quantities on the backend
        self._batches.invalidate()

    def to_dict(self) -> dict:
        change = self.change_due
        return {
            "cart": self.cart.to_dict(),
            "paymentMethod": self.payment_method.value,
            "amountReceived": self.amount_received,
            "change": str(change) if change is not None else None,
            "customer": self.customer.to_dict() if self.customer else None,
            "customerPhone": self.customer_phone,
            "customerName": self.customer_name,
            "pendingConfirmations": [c.to_dict() for c in self._pending.values()],
            "lastReceipt": self.last_receipt.to_payload() if self.last_receipt else None,
        }
