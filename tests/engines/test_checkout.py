"""
Tests — Checkout / Receipt Composer
======================================
Tender validation, receipt snapshot, sale request and failure handling.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from core.rejection import ReasonCode
from core.time.clock import FixedClock, epoch_millis
from engines.billing.cart import Cart, CartLine
from engines.billing.checkout import (
    CheckoutComposer,
    CheckoutOutcome,
    CustomerRef,
    PaymentMethod,
)
from engines.inventory.models import Product
from integration.adapters import BackendResponse
from integration.outbound import InMemoryBackend

T0 = datetime(2025, 6, 1, 6, 30, tzinfo=timezone.utc)

PRODUCT = Product(
    "P1", "Basmati Rice 5kg", "RICE-5", Decimal("123.45"), Decimal("100"), 10,
    mrp=Decimal("130"), category="Grocery",
)


def _setup():
    backend = InMemoryBackend()
    backend.add_product({"_id": "P1", "name": "Basmati Rice 5kg", "currentStock": 10})
    backend.add_batch("P1", {"batchNumber": "R1", "currentQuantity": 10})
    clock = FixedClock(T0)
    composer = CheckoutComposer(backend, clock=clock)
    cart = Cart()
    cart.add_line(CartLine.unlinked(cart.next_line_id(), PRODUCT))
    return backend, clock, composer, cart


class TestPaymentMethod:
    def test_parse(self):
        assert PaymentMethod.parse("CASH") is PaymentMethod.CASH
        assert PaymentMethod.parse(PaymentMethod.UPI) is PaymentMethod.UPI

    def test_display_names(self):
        assert PaymentMethod.UPI.display_name == "UPI"
        assert PaymentMethod.WALLET.display_name == "Wallet"

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unknown payment method"):
            PaymentMethod.parse("cheque")


class TestCashTender:
    def test_cash_with_change(self):
        backend, _, composer, cart = _setup()
        outcome = composer.checkout(cart, PaymentMethod.CASH, amount_tendered="150")
        assert outcome.is_accepted
        assert outcome.receipt.total == Decimal("123.45")
        assert outcome.receipt.amount_received == Decimal("150.00")
        assert outcome.receipt.change == Decimal("26.55")
        assert len(backend.sales) == 1

    def test_insufficient_cash(self):
        backend, _, composer, cart = _setup()
        before = cart.lines
        outcome = composer.checkout(cart, PaymentMethod.CASH, amount_tendered="100")
        assert not outcome.is_accepted
        assert outcome.reason.code == ReasonCode.INSUFFICIENT_AMOUNT_RECEIVED
        assert cart.lines == before
        assert backend.sales == []

    @pytest.mark.parametrize("tendered", [None, "", "abc"])
    def test_unparseable_cash(self, tendered):
        _, _, composer, cart = _setup()
        outcome = composer.checkout(cart, PaymentMethod.CASH, amount_tendered=tendered)
        assert outcome.reason.code == ReasonCode.INSUFFICIENT_AMOUNT_RECEIVED

    def test_tender_is_compared_before_rounding(self):
        backend, _, composer, cart = _setup()
        outcome = composer.checkout(cart, PaymentMethod.CASH, amount_tendered="123.445")
        assert not outcome.is_accepted
        assert outcome.reason.code == ReasonCode.INSUFFICIENT_AMOUNT_RECEIVED
        assert backend.sales == []

    def test_fractional_tender_above_total(self):
        _, _, composer, cart = _setup()
        outcome = composer.checkout(cart, PaymentMethod.CASH, amount_tendered="123.455")
        assert outcome.is_accepted
        assert outcome.receipt.amount_received == Decimal("123.46")
        assert outcome.receipt.change == Decimal("0.01")

    def test_exact_cash(self):
        _, _, composer, cart = _setup()
        outcome = composer.checkout(cart, PaymentMethod.CASH, amount_tendered="123.45")
        assert outcome.receipt.change == Decimal("0.00")

    def test_non_cash_tenders_total(self):
        _, _, composer, cart = _setup()
        outcome = composer.checkout(cart, PaymentMethod.CARD, amount_tendered="1")
        assert outcome.receipt.amount_received == Decimal("123.45")
        assert outcome.receipt.change == Decimal("0.00")


class TestReceipt:
    def test_snapshot_does_not_alias_cart(self):
        _, _, composer, cart = _setup()
        receipt = composer.checkout(cart, PaymentMethod.UPI).receipt
        cart.clear()
        assert receipt.total_items == 1
        assert receipt.lines[0].name == "Basmati Rice 5kg"

    def test_bill_number_from_clock(self):
        _, clock, composer, cart = _setup()
        receipt = composer.checkout(cart, PaymentMethod.UPI).receipt
        assert receipt.bill_number == f"BILL-{epoch_millis(clock)}"
        assert receipt.issued_at == T0

    def test_bill_numbers_unique_within_same_millisecond(self):
        _, _, composer, _ = _setup()
        assert composer.next_bill_number() != composer.next_bill_number()

    def test_profit(self):
        _, _, composer, cart = _setup()
        cart.replace_line(cart.lines[0].with_quantity(2))
        receipt = composer.checkout(cart, PaymentMethod.UPI).receipt
        assert receipt.profit == Decimal("46.90")

    def test_payload_shape(self):
        _, _, composer, cart = _setup()
        customer = CustomerRef("cust-1", "9876543210", name="Asha")
        receipt = composer.checkout(
            cart, PaymentMethod.CASH, amount_tendered="200", customer=customer, cashier="till-1",
        ).receipt
        payload = receipt.to_payload()
        assert payload["paymentMethod"] == "Cash"
        assert payload["amountReceived"] == 200.0
        assert payload["change"] == 76.55
        assert payload["customerPhone"] == "9876543210"
        assert payload["customerName"] == "Asha"
        assert payload["cashier"] == "till-1"
        item = payload["items"][0]
        assert item["product"]["_id"] == "P1"
        assert item["product"]["mrp"] == 130.0
        assert item["unitPrice"] == 123.45
        assert item["costPrice"] == 100.0


class TestSaleRequest:
    def test_minimal_sale_items(self):
        backend, _, composer, cart = _setup()
        composer.checkout(cart, PaymentMethod.UPI)
        sale = backend.sales[0]
        assert sale["saleItems"] == [
            {"productId": "P1", "quantity": 1, "notes": "Sold at ₹123.45"},
        ]
        assert sale["referenceNumber"].startswith("BILL-")
        assert sale["receiptData"]["total"] == 123.45

    def test_stock_consumed_by_backend(self):
        backend, _, composer, cart = _setup()
        composer.checkout(cart, PaymentMethod.UPI)
        assert backend.get_batches_by_product("P1")[0]["currentQuantity"] == 9


class TestFailures:
    def test_empty_cart(self):
        _, _, composer, _ = _setup()
        outcome = composer.checkout(Cart(), PaymentMethod.UPI)
        assert outcome.reason.code == ReasonCode.EMPTY_CART

    def test_backend_error_is_payment_failed(self):
        backend, _, composer, cart = _setup()
        backend.reject_sales_with = "Validation failed: quantity: too large"
        before = cart.lines
        outcome = composer.checkout(cart, PaymentMethod.UPI)
        assert outcome.reason.code == ReasonCode.PAYMENT_FAILED
        assert "Validation failed" in outcome.reason.message
        assert cart.lines == before

    def test_unavailable_backend(self):
        backend, _, composer, cart = _setup()
        backend.unavailable.add("process_sale")
        outcome = composer.checkout(cart, PaymentMethod.UPI)
        assert outcome.reason.code == ReasonCode.PAYMENT_FAILED

    def test_success_false(self):
        class RefusingGateway:
            def process_sale(self, sale):
                return BackendResponse(success=False, message="Till closed")

        _, clock, _, cart = _setup()
        composer = CheckoutComposer(RefusingGateway(), clock=clock)
        outcome = composer.checkout(cart, PaymentMethod.UPI)
        assert outcome.reason.message == "Till closed"

    def test_retry_after_failure(self):
        backend, _, composer, cart = _setup()
        backend.unavailable.add("process_sale")
        composer.checkout(cart, PaymentMethod.UPI)
        backend.unavailable.clear()
        assert composer.checkout(cart, PaymentMethod.UPI).is_accepted

    def test_outcome_invariant(self):
        with pytest.raises(ValueError):
            CheckoutOutcome()
