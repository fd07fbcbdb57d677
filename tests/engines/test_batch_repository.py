"""
Tests — Batch Repository
===========================
Validity filtering, FIFO order, snapshot cache and lookup failure.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from core.time.clock import FixedClock
from engines.inventory.batch_repository import BatchLookupFailed, BatchRepository
from engines.inventory.models import Batch, Product
from integration.outbound import InMemoryBackend

T0 = datetime(2025, 6, 1, 6, 30, tzinfo=timezone.utc)


def _backend(*batches):
    backend = InMemoryBackend()
    backend.add_product({
        "_id": "P1", "name": "Paracetamol", "sku": "PCM",
        "sellingPrice": 20, "costPrice": 11, "currentStock": 10,
    })
    for batch in batches:
        backend.add_batch("P1", batch)
    return backend


class TestModels:
    def test_product_from_payload(self):
        product = Product.from_payload({
            "_id": "abc", "name": "Soap", "sku": "SP-1",
            "sellingPrice": "45.5", "costPrice": 30, "currentStock": 12,
            "mrp": 50, "category": "Personal care",
        })
        assert product.product_id == "abc"
        assert product.selling_price == Decimal("45.50")
        assert product.mrp == Decimal("50.00")
        assert product.current_stock == 12

    def test_batch_from_payload_with_datetime_expiry(self):
        batch = Batch.from_payload({
            "batchNumber": "B1", "costPrice": 10, "sellingPrice": 15,
            "availableQuantity": 3, "expiryDate": "2025-12-31T00:00:00.000Z",
        })
        assert batch.current_quantity == 3
        assert batch.expiry_date == date(2025, 12, 31)

    def test_batch_from_payload_converts_to_store_timezone(self):
        batch = Batch.from_payload(
            {"batchNumber": "B1", "currentQuantity": 1,
             "expiryDate": "2025-12-30T18:30:00+00:00"},
            "Asia/Kolkata",
        )
        assert batch.expiry_date == date(2025, 12, 31)

    def test_batch_validity(self):
        batch = Batch("B1", Decimal("10"), Decimal("15"), 3, expiry_date=date(2025, 6, 1))
        assert batch.is_valid_on(date(2025, 6, 1))
        assert not batch.is_valid_on(date(2025, 6, 2))
        assert not Batch("B2", Decimal("1"), Decimal("2"), 0).is_valid_on(date(2025, 6, 1))

    def test_value_at_risk(self):
        batch = Batch("B1", Decimal("10.25"), Decimal("15"), 4)
        assert batch.value_at_risk == Decimal("41.00")

    def test_negative_quantity_rejected(self):
        with pytest.raises(ValueError, match="negative"):
            Batch("B1", Decimal("1"), Decimal("2"), -1)


class TestFetchValidBatches:
    def test_filters_and_keeps_order(self):
        backend = _backend(
            {"batchNumber": "OLD", "currentQuantity": 5, "costPrice": 9, "sellingPrice": 14,
             "expiryDate": "2025-05-31"},
            {"batchNumber": "EMPTY", "currentQuantity": 0, "costPrice": 9, "sellingPrice": 14},
            {"batchNumber": "B1", "currentQuantity": 2, "costPrice": 10, "sellingPrice": 15},
            {"batchNumber": "B2", "currentQuantity": 5, "costPrice": 12, "sellingPrice": 18,
             "expiryDate": "2026-01-01"},
        )
        repo = BatchRepository(backend, clock=FixedClock(T0))
        snapshot = repo.fetch_valid_batches("P1")
        assert [b.batch_number for b in snapshot.batches] == ["B1", "B2"]
        assert snapshot.had_any
        assert snapshot.oldest.batch_number == "B1"
        assert snapshot.total_quantity == 7
        assert snapshot.fetched_on == date(2025, 6, 1)

    def test_timestamped_expiry_read_in_store_timezone(self):
        # 18:30Z on May 31 is midnight June 1 in Kolkata
        backend = _backend(
            {"batchNumber": "B1", "currentQuantity": 2, "costPrice": 10, "sellingPrice": 15,
             "expiryDate": "2025-05-31T18:30:00.000Z"},
        )
        repo = BatchRepository(backend, clock=FixedClock(T0), timezone="Asia/Kolkata")
        snapshot = repo.fetch_valid_batches("P1")
        assert repo.today() == date(2025, 6, 1)
        assert [b.batch_number for b in snapshot.batches] == ["B1"]
        assert snapshot.batches[0].expiry_date == date(2025, 6, 1)

    def test_timestamped_expiry_in_utc_store(self):
        backend = _backend(
            {"batchNumber": "B1", "currentQuantity": 2, "costPrice": 10, "sellingPrice": 15,
             "expiryDate": "2025-05-31T18:30:00.000Z"},
        )
        repo = BatchRepository(backend, clock=FixedClock(T0), timezone="UTC")
        snapshot = repo.fetch_valid_batches("P1")
        assert not snapshot.has_valid
        assert snapshot.had_any

    def test_no_batches(self):
        repo = BatchRepository(_backend(), clock=FixedClock(T0))
        snapshot = repo.fetch_valid_batches("P1")
        assert not snapshot.had_any
        assert not snapshot.has_valid
        assert snapshot.oldest is None

    def test_malformed_batch_skipped(self):
        backend = _backend(
            {"batchNumber": "", "currentQuantity": 2},
            {"batchNumber": "B1", "currentQuantity": 2, "costPrice": 10, "sellingPrice": 15},
        )
        repo = BatchRepository(backend, clock=FixedClock(T0))
        assert [b.batch_number for b in repo.fetch_valid_batches("P1").batches] == ["B1"]

    def test_transport_failure(self):
        backend = _backend()
        backend.unavailable.add("get_batches_by_product")
        repo = BatchRepository(backend, clock=FixedClock(T0))
        with pytest.raises(BatchLookupFailed) as excinfo:
            repo.fetch_valid_batches("P1")
        assert excinfo.value.product_id == "P1"
        assert excinfo.value.cause.retryable
        assert repo.cached("P1") is None


class TestSnapshotCache:
    def _repo(self, **kwargs):
        backend = _backend(
            {"batchNumber": "B1", "currentQuantity": 2, "costPrice": 10, "sellingPrice": 15},
        )
        clock = FixedClock(T0)
        return backend, clock, BatchRepository(backend, clock=clock, **kwargs)

    def test_cache_hit(self):
        backend, _, repo = self._repo()
        first = repo.fetch_valid_batches("P1")
        second = repo.fetch_valid_batches("P1")
        assert first is second
        assert backend.batch_calls == ["P1"]

    def test_invalidate_one_product(self):
        backend, _, repo = self._repo()
        repo.fetch_valid_batches("P1")
        repo.invalidate("P1")
        repo.fetch_valid_batches("P1")
        assert backend.batch_calls == ["P1", "P1"]

    def test_invalidate_everything(self):
        backend, _, repo = self._repo()
        repo.fetch_valid_batches("P1")
        repo.invalidate()
        assert repo.cached("P1") is None

    def test_refresh_forces_fetch(self):
        backend, _, repo = self._repo()
        repo.fetch_valid_batches("P1")
        repo.refresh("P1")
        assert len(backend.batch_calls) == 2

    def test_day_rollover_is_a_miss(self):
        backend, clock, repo = self._repo()
        repo.fetch_valid_batches("P1")
        clock.advance(days=1)
        assert repo.cached("P1") is None
        repo.fetch_valid_batches("P1")
        assert len(backend.batch_calls) == 2

    def test_cache_disabled(self):
        backend, _, repo = self._repo(cache_enabled=False)
        repo.fetch_valid_batches("P1")
        repo.fetch_valid_batches("P1")
        assert len(backend.batch_calls) == 2


class TestExpiringBatches:
    def test_within_window(self):
        backend = _backend(
            {"batchNumber": "SOON", "currentQuantity": 4, "costPrice": 10, "sellingPrice": 15,
             "expiryDate": "2025-06-03"},
            {"batchNumber": "LATER", "currentQuantity": 4, "costPrice": 10, "sellingPrice": 15,
             "expiryDate": "2025-07-01"},
            {"batchNumber": "NEVER", "currentQuantity": 4, "costPrice": 10, "sellingPrice": 15},
        )
        repo = BatchRepository(backend, clock=FixedClock(T0))
        expiring = repo.expiring_batches("P1", within_days=3)
        assert [e.batch.batch_number for e in expiring] == ["SOON"]
        assert expiring[0].days_until_expiry == 2
        assert expiring[0].value_at_risk == Decimal("40.00")

    def test_negative_window(self):
        repo = BatchRepository(_backend(), clock=FixedClock(T0))
        with pytest.raises(ValueError):
            repo.expiring_batches("P1", within_days=-1)
