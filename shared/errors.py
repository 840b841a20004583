"""
Error taxonomy shared by every service.

Services raise these; the handlers registered by ``register_exception_handlers``
render them as ``{"error": ..., "details": ...}`` with the matching status code.
"""
from typing import Any, Optional

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = structlog.get_logger(__name__)


class ServiceError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, details: Any = None, headers: Optional[dict] = None):
        self.message = message or self.message
        self.details = details
        self.headers = headers
        super().__init__(self.message)

    def to_payload(self) -> dict:
        payload: dict[str, Any] = {"error": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ValidationError(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Invalid request"


class InsufficientStockError(ValidationError):
    message = "Stock problems"


class ProductUnavailableError(ValidationError):
    message = "Product unavailable"


class OrderAmountOutOfBoundsError(ValidationError):
    message = "Order amount out of bounds"


class InsufficientWalletBalanceError(ValidationError):
    message = "Insufficient wallet balance"


class InvalidStatusTransitionError(ValidationError):
    message = "Invalid order status transition"


class DuplicateReferenceError(ValidationError):
    """Replayed bank reference. Never retryable; always paired with a CRITICAL audit entry."""

    message = (
        "This payment reference cannot be used. "
        "Please contact support if you believe this is a mistake."
    )

    def to_payload(self) -> dict:
        return {"error": self.message, "duplicateReference": True, "requiresContact": True}


class UnauthorizedError(ServiceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Not authenticated"


class ForbiddenError(ServiceError):
    status_code = status.HTTP_403_FORBIDDEN
    message = "Forbidden"


class NotFoundError(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "Not found"


class RateLimitedError(ServiceError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    message = "Too many requests"


class ExternalServiceError(ServiceError):
    """The bank API failed. Callers turn this into a 'not verified, needs manual review' result."""

    status_code = status.HTTP_502_BAD_GATEWAY
    message = "External service unavailable"


class InternalError(ServiceError):
    pass


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    log = logger.warning if exc.status_code < 500 else logger.error
    log("service_error", path=request.url.path, status=exc.status_code, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload(), headers=exc.headers)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg')}"
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Invalid request", "details": details},
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Internals stay in the server log only
    logger.exception("unhandled_error", path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": InternalError.message},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
