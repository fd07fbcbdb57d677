"""
Tests — Billing Session
==========================
Screen-level flow: scan, confirm, pay, reset.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from core.config import PosSettings
from core.rejection import ReasonCode
from core.time.clock import FixedClock
from engines.billing.checkout import PaymentMethod
from engines.billing.services import BillingSession
from integration.outbound import InMemoryBackend

T0 = datetime(2025, 6, 1, 6, 30, tzinfo=timezone.utc)

PRODUCT = {
    "_id": "P1", "name": "Paracetamol", "sku": "PCM-500", "barcode": "8901234567890",
    "sellingPrice": 20, "costPrice": 11, "currentStock": 7,
}


def _backend():
    backend = InMemoryBackend()
    backend.add_product(PRODUCT)
    backend.add_batch("P1", {"batchNumber": "B1", "currentQuantity": 2, "costPrice": 10,
                             "sellingPrice": 15, "expiryDate": "2026-01-01"})
    backend.add_batch("P1", {"batchNumber": "B2", "currentQuantity": 5, "costPrice": 12,
                             "sellingPrice": 18, "expiryDate": "2026-06-01"})
    backend.add_product({"_id": "P2", "name": "Eye Drops", "sku": "EYE-1",
                         "barcode": "8900000000002", "sellingPrice": 60,
                         "costPrice": 40, "currentStock": 3})
    backend.add_batch("P2", {"batchNumber": "E1", "currentQuantity": 3, "costPrice": 40,
                             "sellingPrice": 60, "expiryDate": "2025-06-03"})
    return backend


class RecordingScheduler:
    def __init__(self):
        self.calls = []

    def __call__(self, delay_seconds, callback):
        self.calls.append((delay_seconds, callback))

    def run_all(self):
        for _, callback in self.calls:
            callback()
        self.calls.clear()


def _session(backend=None, **kwargs):
    return BillingSession(
        backend or _backend(),
        clock=FixedClock(T0),
        cashier="till-1",
        **kwargs,
    )


# ══════════════════════════════════════════════════════════════
# ADDING
# ══════════════════════════════════════════════════════════════

class TestScan:
    def test_scan_adds_unit(self):
        session = _session()
        outcome = session.scan("8901234567890")
        assert outcome.is_accepted
        assert session.cart.quantity_for("P1") == 1

    def test_unknown_barcode(self):
        session = _session()
        outcome = session.scan("0000")
        assert outcome.reason.code == ReasonCode.PRODUCT_NOT_FOUND
        assert session.cart.is_empty

    def test_barcode_lookup_outage(self):
        backend = _backend()
        backend.unavailable.add("get_product_by_barcode")
        outcome = _session(backend).scan("8901234567890")
        assert outcome.reason.code == ReasonCode.PRODUCT_NOT_FOUND


class TestConfirmations:
    def test_pending_until_resolved(self):
        session = _session()
        outcome = session.scan("8900000000002")
        assert outcome.needs_confirmation
        assert len(session.pending_confirmations) == 1

        result = session.resolve_confirmation(outcome.confirmation.confirmation_id, True)
        assert result.is_accepted
        assert session.cart.quantity_for("P2") == 1
        assert session.pending_confirmations == []

    def test_cancel(self):
        session = _session()
        confirmation = session.scan("8900000000002").confirmation
        session.resolve_confirmation(confirmation.confirmation_id, False)
        assert session.cart.is_empty

    def test_unknown_confirmation(self):
        with pytest.raises(KeyError):
            _session().resolve_confirmation("CONF-9999", True)

    def test_clear_drops_pending(self):
        session = _session()
        session.scan("8900000000002")
        session.clear()
        assert session.pending_confirmations == []


# ══════════════════════════════════════════════════════════════
# EDITING
# ══════════════════════════════════════════════════════════════

class TestEditing:
    def test_remove_product(self):
        session = _session()
        for _ in range(3):
            session.add_product_payload(PRODUCT)
        assert session.remove_product("P1").is_accepted
        assert session.cart.is_empty

    def test_remove_missing_product(self):
        outcome = _session().remove_product("P1")
        assert outcome.reason.code == ReasonCode.LINE_NOT_FOUND

    def test_clear_invalidates_batch_cache(self):
        backend = _backend()
        session = _session(backend)
        session.add_product_payload(PRODUCT)
        session.clear()
        session.add_product_payload(PRODUCT)
        assert backend.batch_calls == ["P1", "P1"]

    def test_expiring_batches(self):
        session = _session()
        expiring = session.expiring_batches("P2")
        assert [e.batch.batch_number for e in expiring] == ["E1"]


# ══════════════════════════════════════════════════════════════
# PAYMENT
# ══════════════════════════════════════════════════════════════

class TestPayment:
    def test_default_method_is_upi(self):
        assert _session().payment_method is PaymentMethod.UPI

    def test_change_due(self):
        session = _session()
        session.add_product_payload(PRODUCT)
        session.select_payment_method("cash")
        session.set_amount_received("10")
        assert session.change_due is None
        session.set_amount_received("14.995")
        assert session.change_due is None
        session.set_amount_received("50")
        assert session.change_due == Decimal("35.00")

    def test_customer_lookup(self):
        session = _session()
        outcome = session.lookup_customer("98765 43210", "Asha")
        assert outcome.created
        assert session.customer.phone == "9876543210"

    def test_invalid_customer_phone_clears_customer(self):
        session = _session()
        session.lookup_customer("9876543210")
        session.lookup_customer("123")
        assert session.customer is None


class TestCheckout:
    def test_success_resets_after_delay(self):
        scheduler = RecordingScheduler()
        settings = PosSettings(reset_delay_seconds=1.5)
        session = _session(scheduler=scheduler, settings=settings)
        session.add_product_payload(PRODUCT)
        session.select_payment_method("cash")
        session.set_amount_received("100")
        session.lookup_customer("9876543210", "Asha")

        outcome = session.checkout()
        assert outcome.is_accepted
        assert session.last_receipt is outcome.receipt
        assert outcome.receipt.change == Decimal("85.00")
        assert outcome.receipt.customer.name == "Asha"
        assert outcome.receipt.cashier == "till-1"
        assert scheduler.calls[0][0] == 1.5
        # Nothing reset until the scheduler fires
        assert not session.cart.is_empty

        scheduler.run_all()
        assert session.cart.is_empty
        assert session.payment_method is PaymentMethod.UPI
        assert session.amount_received == ""
        assert session.customer is None
        assert session.customer_phone == ""
        assert session.last_receipt is outcome.receipt

    def test_failure_keeps_state(self):
        backend = _backend()
        backend.unavailable.add("process_sale")
        session = _session(backend)
        session.add_product_payload(PRODUCT)
        session.select_payment_method(PaymentMethod.CARD)

        outcome = session.checkout()
        assert outcome.reason.code == ReasonCode.PAYMENT_FAILED
        assert session.cart.quantity_for("P1") == 1
        assert session.payment_method is PaymentMethod.CARD
        assert session.last_receipt is None
        assert not session.checkout_in_flight

    def test_entered_phone_resolved_at_checkout(self):
        session = _session()
        session.add_product_payload(PRODUCT)
        session.customer_phone = "9876543210"
        outcome = session.checkout()
        assert outcome.receipt.customer.phone == "9876543210"

    def test_customer_lookup_failure_does_not_block(self):
        backend = _backend()
        backend.unavailable.add("find_or_create_customer")
        session = _session(backend)
        session.add_product_payload(PRODUCT)
        session.customer_phone = "9876543210"
        outcome = session.checkout()
        assert outcome.is_accepted
        assert outcome.receipt.customer is None

    def test_second_checkout_while_in_flight(self):
        backend = _backend()
        session = _session(backend)
        nested = []
        original = backend.process_sale

        def reentrant(sale):
            nested.append(session.checkout())
            return original(sale)

        backend.process_sale = reentrant
        session.add_product_payload(PRODUCT)
        outcome = session.checkout()
        assert outcome.is_accepted
        assert nested[0].reason.code == ReasonCode.CHECKOUT_IN_PROGRESS
        assert len(backend.sales) == 1

    def test_sale_invalidates_batches(self):
        backend = _backend()
        session = _session(backend)
        session.add_product_payload(PRODUCT)
        session.checkout()
        session.add_product_payload(PRODUCT)
        assert backend.batch_calls == ["P1", "P1"]

    def test_to_dict(self):
        session = _session()
        session.add_product_payload(PRODUCT)
        data = session.to_dict()
        assert data["paymentMethod"] == "upi"
        assert data["cart"]["total"] == "15.00"
        assert data["lastReceipt"] is None
