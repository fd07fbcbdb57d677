"""
POS HTTP API - Framework-Agnostic Handlers
==========================================
Pure handler functions over contracts and one billing session.

Callers serialize access to a session; handlers never lock. The one
exception is product search, which takes a guard so the backend call can
run unlocked.
"""

from __future__ import annotations

from contextlib import nullcontext
from typing import Any, Callable, ContextManager

from core.http_api.contracts import (
    AddToCartHttpRequest,
    CheckoutHttpRequest,
    ConfirmationResolveHttpRequest,
    CustomerLookupHttpRequest,
    HttpResult,
    PriceOverrideHttpRequest,
    QuantityChangeHttpRequest,
    RemoveProductHttpRequest,
)
from core.http_api.errors import error_response, rejection_response, success_response
from engines.billing.allocation import CartOutcome
from engines.billing.services import BillingSession
from integration.adapters import BackendError


def cart_outcome_result(outcome: CartOutcome, session: BillingSession) -> HttpResult:
    if outcome.is_rejected:
        return HttpResult(
            rejection_response(outcome.reason, extra_details={"status": outcome.status.value})
        )
    if outcome.needs_confirmation:
        return HttpResult(
            success_response(
                {
                    "confirmation": outcome.confirmation.to_dict(),
                    "cart": session.cart.to_dict(),
                },
                meta={"status": outcome.status.value},
            ),
            status_code=202,
        )
    return HttpResult(
        success_response(
            {
                "line": outcome.line.to_dict() if outcome.line else None,
                "cart": session.cart.to_dict(),
            },
            meta={"status": outcome.status.value, "degraded": outcome.degraded},
        )
    )


def _run(call: Callable[[], HttpResult]) -> HttpResult:
    try:
        return call()
    except ValueError as exc:
        return HttpResult(
            error_response(code="INVALID_REQUEST", message=str(exc)),
            status_code=400,
        )
    except BackendError as exc:
        return HttpResult(
            error_response(
                code="BACKEND_UNAVAILABLE",
                message=str(exc),
                details={"endpoint": exc.endpoint, "retryable": exc.retryable},
            ),
            status_code=502,
        )


def get_session_state(session: BillingSession) -> HttpResult:
    return HttpResult(success_response(session.to_dict()))


def post_cart_add(request: AddToCartHttpRequest, session: BillingSession) -> HttpResult:
    def _call():
        if request.barcode is not None:
            outcome = session.scan(request.barcode)
        else:
            outcome = session.add_product_payload(request.product)
        return cart_outcome_result(outcome, session)

    return _run(_call)


def post_cart_quantity(
    request: QuantityChangeHttpRequest, session: BillingSession,
) -> HttpResult:
    def _call():
        if request.line_id is not None:
            outcome = session.change_line_quantity(request.line_id, request.delta)
        else:
            outcome = session.change_quantity(request.product_id, request.delta)
        return cart_outcome_result(outcome, session)

    return _run(_call)


def post_cart_price(
    request: PriceOverrideHttpRequest, session: BillingSession,
) -> HttpResult:
    def _call():
        if request.line_id is not None:
            outcome = session.set_line_price(request.line_id, request.price)
        else:
            outcome = session.set_unit_price(request.product_id, request.price)
        return cart_outcome_result(outcome, session)

    return _run(_call)


def post_cart_remove(
    request: RemoveProductHttpRequest, session: BillingSession,
) -> HttpResult:
    return _run(lambda: cart_outcome_result(
        session.remove_product(request.product_id), session,
    ))


def post_cart_clear(session: BillingSession) -> HttpResult:
    session.clear()
    return HttpResult(success_response({"cart": session.cart.to_dict()}))


def post_confirmation_resolve(
    request: ConfirmationResolveHttpRequest, session: BillingSession,
) -> HttpResult:
    def _call():
        try:
            outcome = session.resolve_confirmation(request.confirmation_id, request.proceed)
        except KeyError:
            return HttpResult(
                error_response(
                    code="CONFIRMATION_NOT_FOUND",
                    message=f"No pending confirmation {request.confirmation_id}.",
                ),
                status_code=404,
            )
        return cart_outcome_result(outcome, session)

    return _run(_call)


def post_customer_lookup(
    request: CustomerLookupHttpRequest, session: BillingSession,
) -> HttpResult:
    outcome = session.lookup_customer(request.phone, request.name)
    if not outcome.is_accepted:
        return HttpResult(rejection_response(outcome.reason))
    return HttpResult(success_response(
        {"customer": outcome.customer.to_dict(), "created": outcome.created},
    ))


def get_product_search(
    query: str,
    session: BillingSession,
    guard: Callable[[], ContextManager[Any]] = nullcontext,
) -> HttpResult:
    """
    guard() is entered around session reads and writes but not around the
    backend call, so a newer query for the same session can supersede this
    one while it waits. Superseded searches answer with no products.
    """
    def _call():
        with guard():
            ticket = session.begin_search(query)
        raw = session.fetch_search(ticket)
        with guard():
            result = session.complete_search(ticket, raw)
        return HttpResult(success_response(
            {"products": [product.to_payload() for product in result.products]},
            meta={
                "query": result.ticket.query,
                "sequence": result.ticket.sequence,
                "superseded": result.superseded,
            },
        ))

    return _run(_call)


def post_checkout(request: CheckoutHttpRequest, session: BillingSession) -> HttpResult:
    def _call():
        session.select_payment_method(request.payment_method)
        session.set_amount_received(request.amount_received)
        if request.customer_phone is not None:
            session.customer_phone = request.customer_phone
            session.customer = None
        if request.customer_name is not None:
            session.customer_name = request.customer_name
        outcome = session.checkout()
        if not outcome.is_accepted:
            return HttpResult(rejection_response(outcome.reason))
        receipt = outcome.receipt
        data: dict[str, Any] = {"receipt": receipt.to_payload()}
        data["profit"] = str(receipt.profit)
        return HttpResult(success_response(data, meta={"billNumber": receipt.bill_number}))

    return _run(_call)
