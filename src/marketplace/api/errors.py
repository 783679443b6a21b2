"""Mapping of domain errors onto HTTP responses.

Every failure leaves the API in the same shape::

    {"success": false, "error": "InsufficientStock", "message": "...", "details": {...}}

Protean's own handlers cover its remaining exception classes. Starlette
resolves handlers along the exception's MRO, so the specific classes below
win over the Protean base classes.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.integrations.fastapi import register_exception_handlers

from marketplace.errors import (
    GatewayError,
    InsufficientStock,
    InvalidTransition,
    OrderNotCancellable,
    PaymentAmountMismatch,
    PaymentNotVerified,
    TransactionAborted,
    first_message,
)

logger = structlog.get_logger(__name__)

STATUS_CODES = {
    InsufficientStock: 409,
    OrderNotCancellable: 409,
    InvalidTransition: 409,
    PaymentNotVerified: 409,
    PaymentAmountMismatch: 409,
    GatewayError: 502,
    TransactionAborted: 503,
    ObjectNotFoundError: 404,
    ValidationError: 400,
}


def error_body(exc) -> dict:
    messages = getattr(exc, "messages", None)
    return {
        "success": False,
        "error": exc.__class__.__name__,
        "message": first_message(exc),
        "details": messages if isinstance(messages, dict) else None,
    }


def _handler(status_code):
    async def handle(request: Request, exc: Exception) -> JSONResponse:
        if status_code >= 500:
            logger.warning("Request failed", path=request.url.path, error=exc.__class__.__name__)
        return JSONResponse(status_code=status_code, content=error_body(exc))

    return handle


def register_error_handlers(app: FastAPI) -> None:
    register_exception_handlers(app)
    for exc_class, status_code in STATUS_CODES.items():
        app.add_exception_handler(exc_class, _handler(status_code))
