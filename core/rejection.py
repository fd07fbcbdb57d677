"""
POS Core — Rejection Model
============================
Structured reasons for refused operator actions.

A rejection is a value, not an exception. Every cart, checkout and
customer operation that refuses an action returns one of these so the
screen can show it immediately and nothing is silently dropped.

Every rejection must be:
- Deterministic (same cart + same input → same rejection)
- Machine-readable (code)
- Human-readable (message)
- Traceable to the policy that produced it (policy_name)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict


# ══════════════════════════════════════════════════════════════
# REJECTION REASON (frozen explanation structure)
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class RejectionReason:
    """
    Fields:
        code:        Machine-readable code (see ReasonCode).
        message:     Text shown to the operator.
        policy_name: Name of the policy or operation that refused.
        details:     Optional structured context (available qty, etc).
    """

    code: str
    message: str
    policy_name: str
    details: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.code or not isinstance(self.code, str):
            raise ValueError("code must be a non-empty string.")

        if not self.message or not isinstance(self.message, str):
            raise ValueError("message must be a non-empty string.")

        if not self.policy_name or not isinstance(self.policy_name, str):
            raise ValueError("policy_name must be a non-empty string.")

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "policy_name": self.policy_name,
            "details": dict(self.details),
        }


# ══════════════════════════════════════════════════════════════
# STANDARD REJECTION CODES
# ══════════════════════════════════════════════════════════════

class ReasonCode:
    """
    Known rejection codes.

    Convention: SCREAMING_SNAKE_CASE.
    """

    # ── Stock ─────────────────────────────────────────────────
    OUT_OF_STOCK = "OUT_OF_STOCK"
    INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"
    EXPIRED_STOCK = "EXPIRED_STOCK"
    NO_VALID_BATCHES = "NO_VALID_BATCHES"

    # ── Cart editing ──────────────────────────────────────────
    INVALID_PRICE = "INVALID_PRICE"
    LINE_NOT_FOUND = "LINE_NOT_FOUND"
    PRODUCT_NOT_FOUND = "PRODUCT_NOT_FOUND"

    # ── Checkout ──────────────────────────────────────────────
    EMPTY_CART = "EMPTY_CART"
    INSUFFICIENT_AMOUNT_RECEIVED = "INSUFFICIENT_AMOUNT_RECEIVED"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    CHECKOUT_IN_PROGRESS = "CHECKOUT_IN_PROGRESS"

    # ── Customer ──────────────────────────────────────────────
    INVALID_PHONE = "INVALID_PHONE"
    CUSTOMER_LOOKUP_FAILED = "CUSTOMER_LOOKUP_FAILED"

    # ── Soft gates (confirmation, not refusal) ────────────────
    EXPIRING_SOON = "EXPIRING_SOON"
