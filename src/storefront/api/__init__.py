from storefront.api.errors import register_storefront_exception_handlers
from storefront.api.routes import cart_router, inventory_router, order_router, payment_router

__all__ = [
    "cart_router",
    "inventory_router",
    "order_router",
    "payment_router",
    "register_storefront_exception_handlers",
]
