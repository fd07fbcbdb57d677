"""
POS Django adapter URL routing.
"""

from django.urls import path

from adapters.django_api import views


urlpatterns = [
    path("<str:terminal_id>/cart", views.cart_view),
    path("<str:terminal_id>/cart/add", views.cart_add_view),
    path("<str:terminal_id>/cart/quantity", views.cart_quantity_view),
    path("<str:terminal_id>/cart/price", views.cart_price_view),
    path("<str:terminal_id>/cart/remove", views.cart_remove_view),
    path("<str:terminal_id>/cart/clear", views.cart_clear_view),
    path(
        "<str:terminal_id>/confirmations/<str:confirmation_id>",
        views.confirmation_view,
    ),
    path("<str:terminal_id>/customer", views.customer_view),
    path("<str:terminal_id>/products/search", views.product_search_view),
    path("<str:terminal_id>/checkout", views.checkout_view),
]
