"""
POS Core — Money Helpers
=========================
Every stored money value is a Decimal quantized to 2 places.

RULES:
- Rounding happens at the point of computation, never later
- Floats are converted through str() so binary artefacts never enter
- ROUND_HALF_UP (cash register convention)
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional


CENT = Decimal("0.01")
ZERO = Decimal("0.00")

CURRENCY_SYMBOLS = {
    "INR": "₹",
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
}


# ══════════════════════════════════════════════════════════════
# CONVERSION
# ══════════════════════════════════════════════════════════════

def to_decimal(value: Any) -> Decimal:
    """Convert int / float / str / Decimal into an exact Decimal."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError("Boolean is not a money amount.")
    if isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise ValueError(f"Not a valid amount: {value!r}.") from exc
        if not result.is_finite():
            raise ValueError(f"Amount must be finite, got {value!r}.")
        return result
    raise ValueError(
        f"Amount must be int, float, str or Decimal, got {type(value).__name__}."
    )


def round2(value: Any) -> Decimal:
    """Quantize to exactly two decimal places."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def line_total(quantity: int, unit_price: Decimal) -> Decimal:
    return round2(Decimal(quantity) * unit_price)


def parse_amount(text: Any, rounded: bool = True) -> Optional[Decimal]:
    """
    Parse operator input ("150", " 99.5 ") into a Decimal.

    The result is rounded to cents unless rounded=False; comparisons against
    a total use the exact value. Returns None for blank, non-numeric,
    non-finite or negative input.
    """
    if text is None:
        return None
    if isinstance(text, str) and not text.strip():
        return None
    try:
        amount = to_decimal(text)
    except ValueError:
        return None
    if amount < 0:
        return None
    return round2(amount) if rounded else amount


# ══════════════════════════════════════════════════════════════
# FORMATTING
# ══════════════════════════════════════════════════════════════

def _group_indian(digits: str) -> str:
    # 12,34,567: last three digits, then pairs
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    pairs = []
    while len(head) > 2:
        pairs.insert(0, head[-2:])
        head = head[:-2]
    if head:
        pairs.insert(0, head)
    return ",".join(pairs) + "," + tail


def format_currency(amount: Any, currency: str = "INR") -> str:
    """Render an amount for display, e.g. ₹1,23,456.50."""
    value = round2(amount)
    sign = "-" if value < 0 else ""
    whole, _, fraction = f"{abs(value):.2f}".partition(".")
    if currency == "INR":
        grouped = _group_indian(whole)
    else:
        grouped = f"{int(whole):,}"
    symbol = CURRENCY_SYMBOLS.get(currency, currency + " ")
    return f"{sign}{symbol}{grouped}.{fraction}"


def to_wire(amount: Decimal) -> float:
    """JSON payloads carry money as 2-place floats."""
    return float(round2(amount))
