"""
Error handler middleware and custom exceptions.

Provides consistent error responses and the exception classes raised by
the booking lifecycle, the repository and the API layer.
"""
import logging
from typing import Optional, Dict, Any
from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from mekacash.lib.logging import get_logger

logger = get_logger(__name__)


# Custom exception classes
class AppException(Exception):
    """Base application exception."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class NotFoundException(AppException):
    """Resource not found exception."""

    def __init__(self, resource: str, resource_id: Optional[str] = None):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "resource_id": resource_id},
        )


class UnauthorizedException(AppException):
    """Unauthorized access exception."""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED,
        )


class ForbiddenException(AppException):
    """Forbidden access exception."""

    def __init__(self, message: str = "Forbidden"):
        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
        )


class BadRequestException(AppException):
    """Bad request exception."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details or {},
        )


class ConflictException(AppException):
    """Resource conflict exception."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            details=details or {},
        )


class ValidationException(AppException):
    """Validation error exception."""

    def __init__(self, message: str, errors: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details={"errors": errors or {}},
        )


# Booking lifecycle exceptions
class InvalidStatusException(BadRequestException):
    """Target status is not one of the known booking statuses."""

    def __init__(self, value: Any):
        super().__init__(
            message=f"Invalid booking status '{value}'",
            details={"status": str(value)},
        )


class MissingActorException(BadRequestException):
    """Lifecycle operation invoked without an acting participant."""

    def __init__(self, operation: str):
        super().__init__(
            message=f"An actor is required for {operation}",
            details={"operation": operation},
        )


class InvalidRatingException(ValidationException):
    """Review rating outside the 1-5 range."""

    def __init__(self, rating: Any):
        super().__init__(
            "Rating must be a number between 1 and 5",
            errors={"rating": str(rating)},
        )


class InvalidRefundException(ValidationException):
    """Refund amount is negative."""

    def __init__(self, amount: Any):
        super().__init__(
            "Refund amount cannot be negative",
            errors={"refund_amount": str(amount)},
        )


class InvalidCoordinatesException(ValidationException):
    """Latitude or longitude out of range."""

    def __init__(self, latitude: Any, longitude: Any):
        super().__init__(
            "Coordinates out of range",
            errors={"latitude": str(latitude), "longitude": str(longitude)},
        )


class InvalidTransitionException(ConflictException):
    """Status change rejected by the strict workflow table."""

    def __init__(self, current: str, target: str):
        super().__init__(
            f"Cannot move booking from '{current}' to '{target}'",
            details={"current": current, "target": target},
        )


class AlreadyCancelledException(ConflictException):
    """Booking has already been cancelled."""

    def __init__(self, booking_id: str):
        super().__init__(
            f"Booking '{booking_id}' is already cancelled",
            details={"booking_id": booking_id},
        )


class DisputeAlreadyOpenException(ConflictException):
    """An unresolved dispute already exists on the booking."""

    def __init__(self, booking_id: str):
        super().__init__(
            f"Booking '{booking_id}' already has an open dispute",
            details={"booking_id": booking_id},
        )


class NoOpenDisputeException(ConflictException):
    """Resolution requested for a booking without an open dispute."""

    def __init__(self, booking_id: str):
        super().__init__(
            f"Booking '{booking_id}' has no open dispute",
            details={"booking_id": booking_id},
        )


class NoCancellationException(ConflictException):
    """Refund update requested for a booking that was never cancelled."""

    def __init__(self, booking_id: str):
        super().__init__(
            f"Booking '{booking_id}' has not been cancelled",
            details={"booking_id": booking_id},
        )


# Exception handlers
async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    Handler for custom application exceptions.

    Returns consistent error response with correlation ID.
    """
    correlation_id = getattr(request.state, "correlation_id", "unknown")

    log_level = logging.WARNING if exc.status_code < 500 else logging.ERROR
    logger.log(
        log_level,
        f"Application error: {exc.message}",
        extra={
            "correlation_id": correlation_id,
            "status_code": exc.status_code,
            "path": request.url.path,
            "method": request.method,
            "details": exc.details,
        },
    )

    response_content = {
        "error": exc.message,
        "correlation_id": correlation_id,
    }

    if exc.details:
        response_content["details"] = exc.details

    return JSONResponse(
        status_code=exc.status_code,
        content=response_content,
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """
    Handler for Pydantic validation errors.

    Formats validation errors in a consistent way.
    """
    correlation_id = getattr(request.state, "correlation_id", "unknown")

    errors = []
    for error in exc.errors():
        errors.append({
            "loc": list(error["loc"]),
            "msg": error["msg"],
            "type": error["type"],
        })

    logger.warning(
        "Validation error",
        extra={
            "correlation_id": correlation_id,
            "path": request.url.path,
            "method": request.method,
            "errors": errors,
        },
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "Validation error",
            "correlation_id": correlation_id,
            "details": {"errors": errors},
        },
    )


async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    """
    Handler for Starlette HTTP exceptions.

    Provides consistent format for HTTP errors.
    """
    correlation_id = getattr(request.state, "correlation_id", "unknown")

    logger.warning(
        f"HTTP exception: {exc.detail}",
        extra={
            "correlation_id": correlation_id,
            "status_code": exc.status_code,
            "path": request.url.path,
            "method": request.method,
        },
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.detail,
            "correlation_id": correlation_id,
        },
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handler for unhandled exceptions.

    Logs full stack trace and returns generic error message.
    """
    correlation_id = getattr(request.state, "correlation_id", "unknown")

    logger.error(
        f"Unhandled exception: {exc}",
        extra={
            "correlation_id": correlation_id,
            "path": request.url.path,
            "method": request.method,
        },
        exc_info=True,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal server error",
            "correlation_id": correlation_id,
        },
    )
