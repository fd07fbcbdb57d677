"""
POS HTTP API - Public API
=========================
"""

from core.http_api.contracts import (
    AddToCartHttpRequest,
    CheckoutHttpRequest,
    ConfirmationResolveHttpRequest,
    CustomerLookupHttpRequest,
    HttpApiErrorBody,
    HttpApiResponse,
    HttpResult,
    PriceOverrideHttpRequest,
    QuantityChangeHttpRequest,
    RemoveProductHttpRequest,
)
from core.http_api.errors import (
    error_response,
    map_rejection_reason,
    rejection_response,
    success_response,
)
from core.http_api.handlers import (
    cart_outcome_result,
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

__all__ = [
    "AddToCartHttpRequest",
    "QuantityChangeHttpRequest",
    "PriceOverrideHttpRequest",
    "RemoveProductHttpRequest",
    "ConfirmationResolveHttpRequest",
    "CustomerLookupHttpRequest",
    "CheckoutHttpRequest",
    "HttpApiErrorBody",
    "HttpApiResponse",
    "HttpResult",
    "error_response",
    "map_rejection_reason",
    "rejection_response",
    "success_response",
    "cart_outcome_result",
    "get_session_state",
    "get_product_search",
    "post_cart_add",
    "post_cart_quantity",
    "post_cart_price",
    "post_cart_remove",
    "post_cart_clear",
    "post_confirmation_resolve",
    "post_customer_lookup",
    "post_checkout",
]
