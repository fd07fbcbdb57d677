"""
POS Integration — Outbound Gateways
======================================
Concrete BackendGateway implementations.
"""

from integration.outbound.backend_client import BackendClient
from integration.outbound.memory import InMemoryBackend

__all__ = [
    "BackendClient",
    "InMemoryBackend",
]
