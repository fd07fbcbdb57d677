"""
POS Inventory Engine — Batch Repository
==========================================
Wraps the backend's "batches for product" call and answers with the
batches that may be sold today, oldest first.

RULES:
- A batch is valid iff current_quantity > 0 AND (no expiry OR expiry >= today)
- "today" is the business day in the store timezone (day granularity)
- Order is preserved exactly as received (backend sorts by purchase date)
- Snapshots are cached per product until invalidated or the day rolls over
- Transport failure raises BatchLookupFailed and never poisons the cache
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from core.time.clock import Clock, SystemClock, business_today
from engines.inventory.models import Batch
from integration.adapters import BackendError, BackendGateway

logger = logging.getLogger("pos.inventory.batches")


class BatchLookupFailed(Exception):
    """The backend could not be asked for batches. Callers may degrade."""

    def __init__(self, product_id: str, cause: BackendError):
        super().__init__(f"Batch lookup failed for product {product_id}: {cause}")
        self.product_id = product_id
        self.cause = cause


# ══════════════════════════════════════════════════════════════
# SNAPSHOTS
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class BatchSnapshot:
    """
    Valid batches of one product as of `fetched_on`.

    had_any distinguishes "the backend knows no batches for this product"
    from "every batch is expired or empty".
    """

    product_id: str
    batches: Tuple[Batch, ...]
    fetched_on: date
    had_any: bool

    @property
    def has_valid(self) -> bool:
        return len(self.batches) > 0

    @property
    def oldest(self) -> Optional[Batch]:
        return self.batches[0] if self.batches else None

    @property
    def total_quantity(self) -> int:
        return sum(b.current_quantity for b in self.batches)

    def find(self, batch_number: str) -> Optional[Batch]:
        for batch in self.batches:
            if batch.batch_number == batch_number:
                return batch
        return None


@dataclass(frozen=True)
class ExpiringBatch:
    product_id: str
    batch: Batch
    days_until_expiry: int

    @property
    def value_at_risk(self) -> Decimal:
        return self.batch.value_at_risk


# ══════════════════════════════════════════════════════════════
# REPOSITORY
# ══════════════════════════════════════════════════════════════

class BatchRepository:
    """Per-product batch snapshots with an explicit, short-lived cache."""

    def __init__(
        self,
        gateway: BackendGateway,
        *,
        clock: Optional[Clock] = None,
        timezone: str = "Asia/Kolkata",
        cache_enabled: bool = True,
    ):
        self._gateway = gateway
        self._clock = clock or SystemClock()
        self._timezone = timezone
        self._cache_enabled = cache_enabled
        self._cache: Dict[str, BatchSnapshot] = {}

    def today(self) -> date:
        return business_today(self._clock, self._timezone)

    def fetch_valid_batches(self, product_id: str) -> BatchSnapshot:
        """Cached snapshot if still current, otherwise a fresh fetch."""
        cached = self.cached(product_id)
        if cached is not None:
            logger.debug("Batch cache hit for product %s", product_id)
            return cached
        return self.refresh(product_id)

    def refresh(self, product_id: str) -> BatchSnapshot:
        """Always ask the backend. Replaces the cached snapshot on success."""
        try:
            raw_batches = self._gateway.get_batches_by_product(product_id)
        except BackendError as exc:
            logger.warning("Batch lookup failed for product %s: %s", product_id, exc)
            raise BatchLookupFailed(product_id, exc) from exc

        today = self.today()
        parsed: List[Batch] = []
        for raw in raw_batches:
            try:
                parsed.append(Batch.from_payload(raw, self._timezone))
            except ValueError as exc:
                logger.warning(
                    "Skipping malformed batch for product %s: %s", product_id, exc,
                )
        valid = tuple(b for b in parsed if b.is_valid_on(today))

        snapshot = BatchSnapshot(
            product_id=product_id,
            batches=valid,
            fetched_on=today,
            had_any=len(parsed) > 0,
        )
        if self._cache_enabled:
            self._cache[product_id] = snapshot
        logger.debug(
            "Fetched %d batches for product %s (%d valid)",
            len(parsed), product_id, len(valid),
        )
        return snapshot

    def cached(self, product_id: str) -> Optional[BatchSnapshot]:
        snapshot = self._cache.get(product_id)
        if snapshot is None:
            return None
        if snapshot.fetched_on != self.today():
            # Expiry validity is per day; a stale day is a miss
            del self._cache[product_id]
            return None
        return snapshot

    def invalidate(self, product_id: Optional[str] = None) -> None:
        """Drop one product's snapshot, or every snapshot when product_id is None."""
        if product_id is None:
            self._cache.clear()
        else:
            self._cache.pop(product_id, None)

    def expiring_batches(self, product_id: str, within_days: int) -> List[ExpiringBatch]:
        """Valid batches that expire within `within_days` days (today counts as 0)."""
        if within_days < 0:
            raise ValueError(f"within_days cannot be negative, got {within_days}.")
        snapshot = self.fetch_valid_batches(product_id)
        result: List[ExpiringBatch] = []
        for batch in snapshot.batches:
            days = batch.days_until_expiry(snapshot.fetched_on)
            if days is not None and days <= within_days:
                result.append(ExpiringBatch(
                    product_id=product_id,
                    batch=batch,
                    days_until_expiry=days,
                ))
        return result
