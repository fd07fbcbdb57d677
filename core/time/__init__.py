"""
POS Core Time — Public API
============================
Explicit clock protocol and business-day helpers.
"""

from core.time.clock import (
    Clock,
    FixedClock,
    SystemClock,
    business_today,
    epoch_millis,
)

__all__ = [
    "Clock",
    "FixedClock",
    "SystemClock",
    "business_today",
    "epoch_millis",
]
