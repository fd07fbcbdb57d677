"""
POS Integration Layer — Public API
======================================
Controlled gateway to the inventory backend.

Engines depend on the BackendGateway protocol only; which
implementation is wired in is an adapter decision.
"""

from integration.adapters import (
    BackendAuthenticationFailed,
    BackendError,
    BackendGateway,
    BackendRequestFailed,
    BackendResponse,
    BackendUnavailable,
)

__all__ = [
    "BackendAuthenticationFailed",
    "BackendError",
    "BackendGateway",
    "BackendRequestFailed",
    "BackendResponse",
    "BackendUnavailable",
]
