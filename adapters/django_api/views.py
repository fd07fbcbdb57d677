"""
POS Django Adapter Views
========================
Pass-through HTTP views over core/http_api handlers.
"""

from __future__ import annotations

import json
from typing import Any, Callable

from django.http import HttpRequest, JsonResponse
from django.views.decorators.csrf import csrf_exempt

from adapters.django_api.wiring import terminal_session
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
from core.http_api.errors import error_response
from core.http_api.handlers import (
    get_product_search,
    get_session_state,
    post_cart_add,
    post_cart_clear,
    post_cart_price,
    post_cart_quantity,
    post_cart_remove,
    post_checkout,
    post_confirmation_resolve,
    post_customer_lookup,
)
from engines.billing.services import BillingSession


def _json_error(code: str, message: str, status: int = 400) -> JsonResponse:
    return JsonResponse(
        error_response(code=code, message=message, details={}),
        status=status,
    )


def _method_not_allowed() -> JsonResponse:
    return _json_error(
        "METHOD_NOT_ALLOWED",
        "Method not allowed for this endpoint.",
        status=405,
    )


def _parse_json_body(request: HttpRequest) -> dict[str, Any]:
    if not request.body:
        return {}
    try:
        parsed = json.loads(request.body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValueError("Request body must be valid JSON.") from exc
    if not isinstance(parsed, dict):
        raise ValueError("Request body must be a JSON object.")
    return parsed


def _respond(result: HttpResult) -> JsonResponse:
    return JsonResponse(result.body, status=result.status_code)


def _dispatch(
    terminal_id: str,
    handler: Callable[[BillingSession], HttpResult],
) -> JsonResponse:
    terminal = terminal_session(terminal_id)
    with terminal.lock:
        return _respond(handler(terminal.session))


def _dispatch_write(
    request: HttpRequest,
    terminal_id: str,
    contract_factory: Callable[[dict[str, Any]], Any],
    write_handler: Callable[[Any, BillingSession], HttpResult],
) -> JsonResponse:
    if request.method != "POST":
        return _method_not_allowed()
    try:
        contract = contract_factory(_parse_json_body(request))
    except (ValueError, KeyError, TypeError) as exc:
        return _json_error("INVALID_REQUEST", str(exc), status=400)
    return _dispatch(terminal_id, lambda session: write_handler(contract, session))


# ── contract factories ────────────────────────────────────────

def _add_contract(body):
    return AddToCartHttpRequest(product=body.get("product"), barcode=body.get("barcode"))


def _quantity_contract(body):
    return QuantityChangeHttpRequest(
        delta=body["delta"],
        product_id=body.get("productId"),
        line_id=body.get("lineId"),
    )


def _price_contract(body):
    return PriceOverrideHttpRequest(
        price=body.get("price"),
        product_id=body.get("productId"),
        line_id=body.get("lineId"),
    )


def _remove_contract(body):
    return RemoveProductHttpRequest(product_id=body["productId"])


def _customer_contract(body):
    return CustomerLookupHttpRequest(phone=body["phone"], name=body.get("name"))


def _checkout_contract(body):
    amount = body.get("amountReceived")
    return CheckoutHttpRequest(
        payment_method=body["paymentMethod"],
        amount_received=None if amount is None else str(amount),
        customer_phone=body.get("customerPhone"),
        customer_name=body.get("customerName"),
    )


# ── views ─────────────────────────────────────────────────────

@csrf_exempt
def cart_view(request: HttpRequest, terminal_id: str) -> JsonResponse:
    if request.method != "GET":
        return _method_not_allowed()
    return _dispatch(terminal_id, get_session_state)


@csrf_exempt
def cart_add_view(request: HttpRequest, terminal_id: str) -> JsonResponse:
    return _dispatch_write(request, terminal_id, _add_contract, post_cart_add)


@csrf_exempt
def cart_quantity_view(request: HttpRequest, terminal_id: str) -> JsonResponse:
    return _dispatch_write(request, terminal_id, _quantity_contract, post_cart_quantity)


@csrf_exempt
def cart_price_view(request: HttpRequest, terminal_id: str) -> JsonResponse:
    return _dispatch_write(request, terminal_id, _price_contract, post_cart_price)


@csrf_exempt
def cart_remove_view(request: HttpRequest, terminal_id: str) -> JsonResponse:
    return _dispatch_write(request, terminal_id, _remove_contract, post_cart_remove)


@csrf_exempt
def cart_clear_view(request: HttpRequest, terminal_id: str) -> JsonResponse:
    if request.method != "POST":
        return _method_not_allowed()
    return _dispatch(terminal_id, post_cart_clear)


@csrf_exempt
def confirmation_view(
    request: HttpRequest, terminal_id: str, confirmation_id: str,
) -> JsonResponse:
    def _contract(body):
        return ConfirmationResolveHttpRequest(
            confirmation_id=confirmation_id,
            proceed=body.get("proceed"),
        )

    return _dispatch_write(request, terminal_id, _contract, post_confirmation_resolve)


@csrf_exempt
def customer_view(request: HttpRequest, terminal_id: str) -> JsonResponse:
    return _dispatch_write(request, terminal_id, _customer_contract, post_customer_lookup)


@csrf_exempt
def product_search_view(request: HttpRequest, terminal_id: str) -> JsonResponse:
    if request.method != "GET":
        return _method_not_allowed()
    query = request.GET.get("q", "")
    terminal = terminal_session(terminal_id)
    # Lock is held around session state only; a newer search can overtake
    return _respond(
        get_product_search(query, terminal.session, guard=lambda: terminal.lock)
    )


@csrf_exempt
def checkout_view(request: HttpRequest, terminal_id: str) -> JsonResponse:
    return _dispatch_write(request, terminal_id, _checkout_contract, post_checkout)
