"""POS Customer Engine - customer record as the backend returns it."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional


@dataclass(frozen=True)
class Customer:
    customer_id: str
    phone: str
    name: Optional[str] = None
    email: Optional[str] = None
    customer_number: Optional[str] = None

    def __post_init__(self):
        if not self.customer_id:
            raise ValueError("customer_id must be non-empty.")
        if not self.phone:
            raise ValueError("phone must be non-empty.")

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Customer":
        return cls(
            customer_id=str(payload.get("_id") or payload.get("id") or ""),
            phone=str(payload.get("phone") or ""),
            name=payload.get("name") or None,
            email=payload.get("email") or None,
            customer_number=payload.get("customerNumber") or None,
        )

    def to_dict(self) -> dict:
        return {
            "customerId": self.customer_id,
            "customerNumber": self.customer_number,
            "phone": self.phone,
            "name": self.name,
            "email": self.email,
        }
