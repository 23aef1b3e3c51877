"""
Error taxonomy shared by the services and the HTTP layer.

Services raise these; ``register_exception_handlers`` renders them with the
same ``{"detail": ...}`` body FastAPI uses for ``HTTPException``.
"""
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse


class PaymentServiceError(Exception):
    """Base class for errors raised by the payment services."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    retryable: bool = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(PaymentServiceError):
    """Merchant, payment method or payment reference does not exist."""

    status_code = status.HTTP_404_NOT_FOUND


class ForbiddenError(PaymentServiceError):
    """The resource exists but belongs to a different merchant."""

    status_code = status.HTTP_403_FORBIDDEN


class ValidationError(PaymentServiceError):
    """Malformed amount or currency, missing webhook signature, bad paging."""

    status_code = status.HTTP_400_BAD_REQUEST


class ConflictError(PaymentServiceError):
    """Reference collision or lost update race; safe to retry."""

    status_code = status.HTTP_409_CONFLICT
    retryable = True


class UnavailableError(PaymentServiceError):
    """Event channel or cache transiently unreachable."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    retryable = True


class UnauthenticatedError(PaymentServiceError):
    status_code = status.HTTP_401_UNAUTHORIZED


async def payment_service_error_handler(request: Request, exc: PaymentServiceError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, UnauthenticatedError) else None
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message}, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PaymentServiceError, payment_service_error_handler)
