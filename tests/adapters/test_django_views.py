"""
Tests — Django billing endpoints
===================================
End-to-end through URL routing, JSON parsing and the terminal registry.
"""

from __future__ import annotations

import json
import threading
import time
from datetime import datetime, timezone

import pytest

from adapters.django_api import configure, deferred_scheduler, terminal_session
from core.config import PosSettings
from core.time.clock import FixedClock
from integration.outbound import InMemoryBackend

T0 = datetime(2025, 6, 1, 6, 30, tzinfo=timezone.utc)
PRODUCT = {
    "_id": "P1", "name": "Paracetamol", "sku": "PCM", "barcode": "111",
    "sellingPrice": 20, "costPrice": 11, "currentStock": 7,
}


@pytest.fixture
def backend():
    backend = InMemoryBackend()
    backend.add_product(PRODUCT)
    backend.add_batch("P1", {"batchNumber": "B1", "currentQuantity": 2, "costPrice": 10,
                             "sellingPrice": 15})
    backend.add_batch("P1", {"batchNumber": "B2", "currentQuantity": 5, "costPrice": 12,
                             "sellingPrice": 18})
    configure(
        gateway=backend, settings=PosSettings(reset_delay_seconds=0), clock=FixedClock(T0),
    )
    yield backend
    configure()


def _post(client, url, body=None):
    return client.post(url, data=json.dumps(body or {}), content_type="application/json")


class TestCartEndpoints:
    def test_empty_cart(self, client, backend):
        response = client.get("/billing/till-1/cart")
        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["data"]["cart"]["lines"] == []
        assert body["data"]["paymentMethod"] == "upi"

    def test_add_and_split(self, client, backend):
        for _ in range(3):
            response = _post(client, "/billing/till-1/cart/add", {"barcode": "111"})
            assert response.status_code == 200
        cart = client.get("/billing/till-1/cart").json()["data"]["cart"]
        assert [line["batchNumber"] for line in cart["lines"]] == ["B2", "B1"]
        assert cart["total"] == "48.00"

    def test_terminals_are_isolated(self, client, backend):
        _post(client, "/billing/till-1/cart/add", {"product": PRODUCT})
        cart = client.get("/billing/till-2/cart").json()["data"]["cart"]
        assert cart["lines"] == []
        assert terminal_session("till-1").session.cart.quantity_for("P1") == 1

    def test_quantity_price_remove_clear(self, client, backend):
        _post(client, "/billing/till-1/cart/add", {"product": PRODUCT})
        response = _post(client, "/billing/till-1/cart/quantity", {"productId": "P1", "delta": 2})
        assert response.json()["data"]["cart"]["totalItems"] == 3

        response = _post(client, "/billing/till-1/cart/price", {"productId": "P1", "price": "5"})
        assert response.json()["error"]["code"] == "INVALID_PRICE"

        response = _post(client, "/billing/till-1/cart/remove", {"productId": "P1"})
        assert response.json()["data"]["cart"]["lines"] == []

        _post(client, "/billing/till-1/cart/add", {"product": PRODUCT})
        response = _post(client, "/billing/till-1/cart/clear")
        assert response.json()["data"]["cart"]["totalItems"] == 0

    def test_invalid_json(self, client, backend):
        response = client.post(
            "/billing/till-1/cart/add", data="{not json", content_type="application/json",
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_REQUEST"

    def test_missing_field(self, client, backend):
        response = _post(client, "/billing/till-1/cart/quantity", {"productId": "P1"})
        assert response.status_code == 400

    def test_method_not_allowed(self, client, backend):
        assert client.get("/billing/till-1/cart/add").status_code == 405
        assert client.post("/billing/till-1/cart").status_code == 405


class TestConfirmationEndpoint:
    def test_confirm_expiring_batch(self, client, backend):
        backend.add_product({"_id": "P2", "name": "Drops", "barcode": "222", "currentStock": 2})
        backend.add_batch("P2", {"batchNumber": "E1", "currentQuantity": 2, "costPrice": 5,
                                 "sellingPrice": 9, "expiryDate": "2025-06-03"})
        response = _post(client, "/billing/till-1/cart/add", {"barcode": "222"})
        assert response.status_code == 202
        confirmation_id = response.json()["data"]["confirmation"]["confirmationId"]

        response = _post(
            client, f"/billing/till-1/confirmations/{confirmation_id}", {"proceed": True},
        )
        assert response.status_code == 200
        assert response.json()["data"]["line"]["batchNumber"] == "E1"

        again = _post(
            client, f"/billing/till-1/confirmations/{confirmation_id}", {"proceed": True},
        )
        assert again.status_code == 404


class TestCheckoutEndpoint:
    def test_cash_checkout(self, client, backend):
        _post(client, "/billing/till-1/cart/add", {"product": PRODUCT})
        response = _post(client, "/billing/till-1/checkout", {
            "paymentMethod": "cash",
            "amountReceived": 50,
            "customerPhone": "9876543210",
            "customerName": "Asha",
        })
        body = response.json()
        assert body["ok"] is True
        assert body["data"]["receipt"]["change"] == 35.0
        assert body["data"]["receipt"]["customerName"] == "Asha"
        assert len(backend.sales) == 1
        # Zero reset delay clears the screen straight away
        state = client.get("/billing/till-1/cart").json()["data"]
        assert state["cart"]["lines"] == []
        assert state["lastReceipt"]["billNumber"] == body["meta"]["billNumber"]

    def test_insufficient_cash(self, client, backend):
        _post(client, "/billing/till-1/cart/add", {"product": PRODUCT})
        response = _post(client, "/billing/till-1/checkout", {
            "paymentMethod": "cash", "amountReceived": "10",
        })
        assert response.json()["error"]["code"] == "INSUFFICIENT_AMOUNT_RECEIVED"
        assert backend.sales == []


class TestPostSaleReset:
    def test_reset_waits_for_configured_delay(self, client, backend):
        configure(
            gateway=backend,
            settings=PosSettings(reset_delay_seconds=0.5),
            clock=FixedClock(T0),
        )
        _post(client, "/billing/till-1/cart/add", {"product": PRODUCT})
        response = _post(client, "/billing/till-1/checkout", {"paymentMethod": "upi"})
        assert response.json()["ok"] is True

        terminal = terminal_session("till-1")
        with terminal.lock:
            assert len(terminal.session.cart) == 1

        deadline = time.monotonic() + 5
        while time.monotonic() < deadline:
            with terminal.lock:
                if terminal.session.cart.is_empty:
                    break
            time.sleep(0.01)
        assert terminal.session.cart.is_empty
        assert terminal.session.last_receipt is not None

    def test_deferred_callback_holds_terminal_lock(self):
        lock = threading.Lock()
        ran = threading.Event()
        held = []

        def callback():
            held.append(lock.locked())
            ran.set()

        deferred_scheduler(lock)(0.01, callback)
        assert ran.wait(5)
        assert held == [True]

    def test_zero_delay_runs_inline(self):
        calls = []
        deferred_scheduler(threading.Lock())(0, lambda: calls.append(1))
        assert calls == [1]


class TestCustomerAndSearch:
    def test_customer_lookup(self, client, backend):
        response = _post(client, "/billing/till-1/customer", {"phone": "+91 98765 43210"})
        body = response.json()
        assert body["data"]["created"] is True
        assert body["data"]["customer"]["phone"] == "9876543210"

    def test_invalid_phone(self, client, backend):
        response = _post(client, "/billing/till-1/customer", {"phone": "123"})
        assert response.json()["error"]["code"] == "INVALID_PHONE"

    def test_search(self, client, backend):
        response = client.get("/billing/till-1/products/search", {"q": "para"})
        body = response.json()
        assert [p["_id"] for p in body["data"]["products"]] == ["P1"]
