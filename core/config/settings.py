"""
POS Core Config — Runtime Settings
=====================================
One frozen settings object, read from the environment once and then
passed explicitly to the engines that need it.

Doctrine: no hardcoded URLs, thresholds or tax rates in engine logic.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal
from typing import Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from core.money import to_decimal


_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


@dataclass(frozen=True)
class PosSettings:
    """
    Fields:
        api_base_url:            Backend REST root, no trailing slash.
        api_token:               Bearer token for the backend (optional).
        request_timeout_seconds: Per-request timeout for backend calls.
        expiry_warning_days:     Batches expiring within this many days
                                 need operator confirmation.
        tax_rate:                Fraction of subtotal (0 = no tax).
        currency:                ISO 4217 code used for display.
        business_timezone:       IANA zone that defines "today".
        reset_delay_seconds:     Delay before the screen resets after a sale.
        bill_prefix:             Prefix of generated bill numbers.
        batch_cache_enabled:     Reuse fetched batch snapshots per product.
    """

    api_base_url: str = "http://localhost:5000/api"
    api_token: Optional[str] = None
    request_timeout_seconds: float = 15.0
    expiry_warning_days: int = 3
    tax_rate: Decimal = Decimal("0")
    currency: str = "INR"
    business_timezone: str = "Asia/Kolkata"
    reset_delay_seconds: float = 1.0
    bill_prefix: str = "BILL"
    batch_cache_enabled: bool = True

    def __post_init__(self) -> None:
        if not self.api_base_url:
            raise ValueError("api_base_url must be non-empty.")
        if self.request_timeout_seconds <= 0:
            raise ValueError("request_timeout_seconds must be positive.")
        if self.expiry_warning_days < 0:
            raise ValueError("expiry_warning_days cannot be negative.")
        if not Decimal("0") <= self.tax_rate <= Decimal("1"):
            raise ValueError(f"tax_rate must be between 0 and 1, got {self.tax_rate}.")
        if not self.currency or len(self.currency) != 3:
            raise ValueError("currency must be 3-letter ISO 4217 code.")
        if self.reset_delay_seconds < 0:
            raise ValueError("reset_delay_seconds cannot be negative.")
        if not self.bill_prefix:
            raise ValueError("bill_prefix must be non-empty.")
        try:
            ZoneInfo(self.business_timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(
                f"Unknown business_timezone: {self.business_timezone!r}."
            ) from exc


# ══════════════════════════════════════════════════════════════
# ENVIRONMENT LOADING
# ══════════════════════════════════════════════════════════════

def _read_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}.") from exc


def _read_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}.") from exc


def _read_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}.")


def _read_decimal(env: Mapping[str, str], name: str, default: Decimal) -> Decimal:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return to_decimal(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a decimal, got {raw!r}.") from exc


def load_settings(environ: Optional[Mapping[str, str]] = None) -> PosSettings:
    """Build PosSettings from POS_* environment variables."""
    env = os.environ if environ is None else environ
    defaults = PosSettings()
    try:
        return PosSettings(
            api_base_url=env.get("POS_API_BASE_URL", defaults.api_base_url).rstrip("/"),
            api_token=env.get("POS_API_TOKEN") or None,
            request_timeout_seconds=_read_float(
                env, "POS_REQUEST_TIMEOUT", defaults.request_timeout_seconds
            ),
            expiry_warning_days=_read_int(
                env, "POS_EXPIRY_WARNING_DAYS", defaults.expiry_warning_days
            ),
            tax_rate=_read_decimal(env, "POS_TAX_RATE", defaults.tax_rate),
            currency=env.get("POS_CURRENCY", defaults.currency).upper(),
            business_timezone=env.get("POS_TIMEZONE", defaults.business_timezone),
            reset_delay_seconds=_read_float(
                env, "POS_RESET_DELAY", defaults.reset_delay_seconds
            ),
            bill_prefix=env.get("POS_BILL_PREFIX", defaults.bill_prefix),
            batch_cache_enabled=_read_bool(
                env, "POS_BATCH_CACHE", defaults.batch_cache_enabled
            ),
        )
    except ValueError as exc:
        raise ValueError(f"Invalid POS configuration: {exc}") from exc
