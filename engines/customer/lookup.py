"""
POS Customer Engine — Phone Lookup
=====================================
Find-or-create a customer by mobile number at the till.

RULES:
- Only Indian mobile numbers are accepted: 10 digits starting 6-9
- A leading +91 (or 91 on a 12-digit number) is a country code, dropped
- Lookup failure never blocks a sale; the caller proceeds without one
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional

from core.rejection import ReasonCode, RejectionReason
from engines.customer.models import Customer
from integration.adapters import BackendError, BackendGateway

logger = logging.getLogger("pos.customer")

_MOBILE = re.compile(r"^[6-9]\d{9}$")
_SEPARATORS = re.compile(r"[\s\-()]")

NEW_CUSTOMER_MESSAGE = "New customer created"


def normalize_phone(raw: Optional[str]) -> Optional[str]:
    """Return the bare 10-digit mobile number, or None if it is not one."""
    if not raw:
        return None
    phone = _SEPARATORS.sub("", raw)
    if phone.startswith("+91"):
        phone = phone[3:]
    elif phone.startswith("91") and len(phone) == 12:
        phone = phone[2:]
    if not _MOBILE.match(phone):
        return None
    return phone


@dataclass(frozen=True)
class CustomerOutcome:
    customer: Optional[Customer] = None
    created: bool = False
    reason: Optional[RejectionReason] = None

    def __post_init__(self):
        if (self.customer is None) == (self.reason is None):
            raise ValueError("CustomerOutcome needs exactly one of customer or reason.")

    @property
    def is_accepted(self) -> bool:
        return self.customer is not None


class CustomerLookup:
    def __init__(self, gateway: BackendGateway):
        self._gateway = gateway

    def find_or_create(self, phone: str, name: Optional[str] = None) -> CustomerOutcome:
        normalized = normalize_phone(phone)
        if normalized is None:
            return CustomerOutcome(reason=RejectionReason(
                code=ReasonCode.INVALID_PHONE,
                message="Please enter a valid 10-digit mobile number.",
                policy_name="normalize_phone",
                details={"phone": phone},
            ))

        clean_name = name.strip() if name and name.strip() else None
        try:
            response = self._gateway.find_or_create_customer(normalized, clean_name)
        except BackendError as exc:
            logger.warning("Customer lookup failed for %s: %s", normalized, exc)
            return CustomerOutcome(reason=self._lookup_failed(str(exc)))

        if not response.success or not response.data:
            return CustomerOutcome(
                reason=self._lookup_failed(response.message or "Customer lookup failed")
            )
        try:
            customer = Customer.from_payload(response.data)
        except ValueError as exc:
            logger.warning("Malformed customer record for %s: %s", normalized, exc)
            return CustomerOutcome(reason=self._lookup_failed(str(exc)))

        created = response.message == NEW_CUSTOMER_MESSAGE
        logger.info(
            "Customer %s %s", customer.customer_id, "created" if created else "found",
        )
        return CustomerOutcome(customer=customer, created=created)

    @staticmethod
    def _lookup_failed(message: str) -> RejectionReason:
        return RejectionReason(
            code=ReasonCode.CUSTOMER_LOOKUP_FAILED,
            message=message or "Customer lookup failed",
            policy_name="find_or_create_customer",
        )
