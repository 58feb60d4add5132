"""
Error taxonomy shared by the services and the HTTP layer.

Every error carries the HTTP status it maps to; the handlers registered in
``main`` render them as ``{"message": ...}`` bodies.
"""

from typing import Any, Dict, Optional

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class TechStoreError(Exception):
    """Base class for errors that surface at the HTTP boundary."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message}


class ValidationError(TechStoreError):
    """Malformed or empty request. Rejected before any transaction opens."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        if self.field:
            body["field"] = self.field
        return body


class InsufficientStockError(ValidationError):
    """Stock decrement would take a product below zero."""

    status_code = status.HTTP_409_CONFLICT

    def __init__(self, product_id: int, requested: int):
        super().__init__(
            f"Insufficient stock for product {product_id} (requested {requested})",
            field="orderItems",
        )
        self.product_id = product_id
        self.requested = requested


class AuthenticationError(TechStoreError):
    """No credential, or one that does not resolve to an account."""

    status_code = status.HTTP_401_UNAUTHORIZED


class AuthorizationError(TechStoreError):
    """Valid credential, but the caller does not own the resource."""

    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(TechStoreError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(TechStoreError):
    status_code = status.HTTP_409_CONFLICT


class PersistenceError(TechStoreError):
    """The transaction failed and was rolled back. Safe to retry verbatim."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class ReadBackError(TechStoreError):
    """
    The order committed but the confirmation read failed.

    Callers should re-fetch the order by id rather than resubmit it.
    """

    status_code = status.HTTP_202_ACCEPTED

    def __init__(self, order_id: int, message: Optional[str] = None):
        super().__init__(message or f"Order {order_id} was placed but could not be loaded; fetch it by id")
        self.order_id = order_id

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "orderId": self.order_id}


# --- Exception handlers ---


async def techstore_error_handler(request: Request, exc: TechStoreError) -> JSONResponse:
    headers = None
    if isinstance(exc, AuthenticationError):
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render body/query type errors as 400 with the first problem as the message."""
    errors = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        errors.append({"field": loc, "message": err.get("msg", "Invalid value")})
    message = f"{errors[0]['field']}: {errors[0]['message']}" if errors else "Invalid request"
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"message": message, "errors": errors},
    )
