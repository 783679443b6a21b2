"""Marketplace HTTP API package."""

from marketplace.api.errors import register_error_handlers
from marketplace.api.routes import cart_router, catalogue_router, checkout_router, order_router, payment_router

ROUTERS = [catalogue_router, cart_router, checkout_router, order_router, payment_router]

__all__ = [
    "ROUTERS",
    "cart_router",
    "catalogue_router",
    "checkout_router",
    "order_router",
    "payment_router",
    "register_error_handlers",
]
