"""
POS Inventory Engine — Product Search
========================================
Search-as-you-type against the backend catalog.

A newer query supersedes every older one: results that arrive for a
ticket that is no longer the latest are dropped, so a slow response can
never overwrite the list for what the operator typed last.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from engines.inventory.models import Product
from integration.adapters import BackendGateway

logger = logging.getLogger("pos.inventory.search")


@dataclass(frozen=True)
class SearchTicket:
    sequence: int
    query: str


@dataclass(frozen=True)
class SearchResult:
    ticket: SearchTicket
    products: Tuple[Product, ...]
    superseded: bool = False


class ProductSearch:
    def __init__(self, gateway: BackendGateway, *, limit: int = 20):
        if limit <= 0:
            raise ValueError(f"limit must be positive, got {limit}.")
        self._gateway = gateway
        self._limit = limit
        self._sequence = 0
        self._latest: Optional[SearchTicket] = None

    def begin(self, query: str) -> SearchTicket:
        self._sequence += 1
        ticket = SearchTicket(sequence=self._sequence, query=query)
        self._latest = ticket
        return ticket

    def is_current(self, ticket: SearchTicket) -> bool:
        return self._latest is not None and ticket.sequence == self._latest.sequence

    def complete(
        self, ticket: SearchTicket, raw_results: Iterable[Dict[str, Any]],
    ) -> SearchResult:
        if not self.is_current(ticket):
            logger.debug("Dropping superseded results for %r", ticket.query)
            return SearchResult(ticket=ticket, products=(), superseded=True)
        products = []
        for raw in raw_results:
            try:
                products.append(Product.from_payload(raw))
            except ValueError as exc:
                logger.warning("Skipping malformed product in search results: %s", exc)
        return SearchResult(ticket=ticket, products=tuple(products))

    def fetch(self, ticket: SearchTicket) -> List[Dict[str, Any]]:
        """
        Backend call for a ticket. Touches no search state, so callers may
        run it outside whatever serializes begin/complete. BackendError
        propagates.
        """
        query = ticket.query.strip()
        if not query:
            return []
        return self._gateway.search_products(query, self._limit)

    def run(self, query: str) -> SearchResult:
        """Begin, fetch and complete in one step."""
        ticket = self.begin(query)
        return self.complete(ticket, self.fetch(ticket))
