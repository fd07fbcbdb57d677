"""
POS Core Time — Injectable Clock
==================================
Engines never call datetime.now() directly. Expiry checks and bill
numbers read time from a Clock so tests can pin the business day.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Protocol
from zoneinfo import ZoneInfo


class Clock(Protocol):
    """Injectable time source."""

    def now_utc(self) -> datetime:
        ...  # pragma: no cover


class SystemClock:
    """Production clock: real system time."""

    def now_utc(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """
    Test clock: returns a fixed timestamp until advanced.

    Usage:
        clock = FixedClock(datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc))
        clock.advance(days=1)
    """

    def __init__(self, fixed_dt: datetime) -> None:
        if fixed_dt.tzinfo is None:
            raise ValueError("FixedClock requires timezone-aware datetime.")
        self._fixed_dt = fixed_dt

    def now_utc(self) -> datetime:
        return self._fixed_dt.astimezone(timezone.utc)

    def advance(self, **delta) -> None:
        """Move time forward, e.g. advance(days=2) or advance(seconds=30)."""
        self._fixed_dt = self._fixed_dt + timedelta(**delta)


def business_today(clock: Clock, tz_name: str) -> date:
    """Calendar date of 'now' in the store's timezone (midnight-truncated)."""
    return clock.now_utc().astimezone(ZoneInfo(tz_name)).date()


def epoch_millis(clock: Clock) -> int:
    return int(clock.now_utc().timestamp() * 1000)
