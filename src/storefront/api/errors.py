"""HTTP status mapping for checkout failures.

Protean's own handlers cover ``ValidationError`` (400); the handlers here add
the checkout taxonomy on top.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.exceptions import ObjectNotFoundError
from protean.integrations.fastapi import register_exception_handlers

from storefront.errors import (
    InsufficientStock,
    PaymentCanceled,
    PaymentDeclined,
    PaymentGatewayError,
    PersistenceFailure,
)

logger = structlog.get_logger(__name__)

STATUS_CODES = {
    InsufficientStock: 409,
    PaymentDeclined: 402,
    PaymentCanceled: 409,
    PaymentGatewayError: 502,
    PersistenceFailure: 500,
}


async def _checkout_error_handler(request: Request, exc: Exception) -> JSONResponse:
    status_code = STATUS_CODES[type(exc)]
    content = {"error": type(exc).__name__, "message": str(exc)}
    if isinstance(exc, InsufficientStock):
        content.update(product_name=exc.product_name, available=exc.available, requested=exc.requested)
    if isinstance(exc, PersistenceFailure):
        content["message"] = exc.user_message
    logger.info("checkout_error_response", path=request.url.path, status_code=status_code, error=content["error"])
    return JSONResponse(status_code=status_code, content=content)


async def _not_found_handler(request: Request, exc: ObjectNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": "NotFound", "message": str(exc)})


def register_storefront_exception_handlers(app: FastAPI) -> None:
    register_exception_handlers(app)
    app.add_exception_handler(ObjectNotFoundError, _not_found_handler)
    for exc_class in STATUS_CODES:
        app.add_exception_handler(exc_class, _checkout_error_handler)
