"""
Custom exceptions and error handlers for consistent error responses.

Every failure the ride engine can surface is an AppException subclass with a
stable error code. ConflictError is the one exception that never leaves the
engine: it signals a lost compare-and-swap and is retried internally.
"""

import logging

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from typing import Any, Dict

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Optimistic-concurrency signal: the ride changed since it was read."""

    def __init__(self, ride_id: int, expected_version: int):
        self.ride_id = ride_id
        self.expected_version = expected_version
        super().__init__(f"Ride {ride_id} is no longer at version {expected_version}")


class InsufficientPermissionsError(AppException):
    """Raised when user doesn't have permission to perform an action."""

    def __init__(self, message: str = "Insufficient permissions", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_PERM_001",
            status_code=status.HTTP_403_FORBIDDEN,
            details=details
        )


class ResourceNotFoundError(AppException):
    """Raised when requested resource is not found."""

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


class InvalidTransitionError(AppException):
    """Raised when a ride or request state machine refuses a transition."""

    def __init__(self, entity: str, current: str, target: str, reason: str = None):
        message = f"Cannot move {entity} from {current} to {target}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message=message,
            error_code="ERR_STATE_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"entity": entity, "current": current, "target": target}
        )


class RideNotBookableError(AppException):
    """Raised when a ride no longer accepts booking requests."""

    def __init__(self, ride_id: int, ride_status: str):
        super().__init__(
            message=f"Ride {ride_id} is {ride_status} and cannot be booked",
            error_code="ERR_BOOKING_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"ride_id": ride_id, "status": ride_status}
        )


class EligibilityDeniedError(AppException):
    """Raised when the passenger does not meet the ride's gender requirement."""

    def __init__(self, required: str, declared: str):
        super().__init__(
            message=f"This ride is restricted to {required} passengers",
            error_code="ERR_BOOKING_002",
            status_code=status.HTTP_403_FORBIDDEN,
            details={"required_gender": required, "passenger_gender": declared}
        )


class DuplicateRequestError(AppException):
    """Raised when the passenger already holds an active request on the ride."""

    def __init__(self, ride_id: int, request_id: int):
        super().__init__(
            message="You already have an active request for this ride",
            error_code="ERR_BOOKING_003",
            status_code=status.HTTP_409_CONFLICT,
            details={"ride_id": ride_id, "request_id": request_id}
        )


class InsufficientCapacityError(AppException):
    """Raised when the ride cannot hold the requested number of seats."""

    def __init__(self, requested: int, available: int):
        super().__init__(
            message=f"Only {available} seat(s) available, {requested} requested",
            error_code="ERR_BOOKING_004",
            status_code=status.HTTP_409_CONFLICT,
            details={"requested_seats": requested, "available_seats": available}
        )


class ScheduleConflictError(AppException):
    """Raised when a new ride is too close to another of the driver's rides."""

    def __init__(self, min_gap_minutes: int):
        super().__init__(
            message="You have a ride scheduled at approximately the same time",
            error_code="ERR_SCHEDULE_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"min_gap_minutes": min_gap_minutes}
        )


class InvalidRideError(AppException):
    """Raised when a ride draft fails creation rules."""

    def __init__(self, message: str, field: str = None):
        super().__init__(
            message=message,
            error_code="ERR_RIDE_001",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details={"field": field} if field else None
        )


class BusyError(AppException):
    """Raised when compare-and-swap retries are exhausted."""

    def __init__(self, ride_id: int, attempts: int):
        super().__init__(
            message="The ride is busy, please try again",
            error_code="ERR_BUSY_001",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details={"ride_id": ride_id, "attempts": attempts}
        )


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        401: "ERR_UNAUTHORIZED",
        403: "ERR_FORBIDDEN",
        404: "ERR_NOT_FOUND",
        500: "ERR_INTERNAL_SERVER"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "message": exc.detail,
            "details": {}
        }
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": "ERR_VALIDATION",
            "message": "Validation error",
            "details": {
                "errors": jsonable_encoder(exc.errors())
            }
        }
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception: %s", type(exc).__name__, exc_info=exc)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "An internal server error occurred",
            "details": {}
        }
    )
