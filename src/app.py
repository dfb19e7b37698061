"""Storefront FastAPI application.

Web server that processes cart, inventory, order and payment commands
synchronously via HTTP. Every request runs inside the storefront domain
context.

Usage:
    uvicorn src.app:app --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV selects the protean config overlay.
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from storefront.domain import storefront  # noqa: E402
from storefront.utils.logging import configure_logging

configure_logging()
storefront.init()

# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Storefront API",
    description="Carts, checkout payments, orders and stock",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the storefront domain context for each request."""
    with storefront.domain_context():
        response = await call_next(request)
    return response


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from storefront.api import (  # noqa: E402
    cart_router,
    inventory_router,
    order_router,
    payment_router,
    register_storefront_exception_handlers,
)

app.include_router(cart_router)
app.include_router(inventory_router)
app.include_router(order_router)
app.include_router(payment_router)

register_storefront_exception_handlers(app)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(
        content={
            "status": "ok",
            "domains": {
                "storefront": {"name": storefront.name},
            },
        }
    )
