"""Custom exception handlers for FastAPI."""
from fastapi import FastAPI, Request, HTTPException
from fastapi.responses import JSONResponse
import logging

logger = logging.getLogger(__name__)


class RideshareException(Exception):
    """Base exception for the rideshare application."""
    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class NotFoundError(RideshareException):
    """Resource not found."""
    def __init__(self, resource: str = "Resource"):
        super().__init__(f"{resource} not found", status_code=404)


class ForbiddenError(RideshareException):
    """User forbidden from accessing resource."""
    def __init__(self, message: str = "Access denied"):
        super().__init__(message, status_code=403)


class ValidationError(RideshareException):
    """Validation error."""
    def __init__(self, message: str):
        super().__init__(message, status_code=422)


class BusinessRuleError(RideshareException):
    """Business rule violation."""
    def __init__(self, message: str):
        super().__init__(message, status_code=400)


class TripNotMatchableError(BusinessRuleError):
    """Trip is not in a status that allows matching."""
    def __init__(self, trip_id: str, status: str):
        self.trip_id = trip_id
        super().__init__(f"Trip {trip_id} is not matchable (status {status})")


class InvalidMatchTransition(BusinessRuleError):
    """Match status change not allowed by the lifecycle."""
    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move match from {current} to {target}")


def setup_exception_handlers(app: FastAPI):
    """Register custom exception handlers."""

    @app.exception_handler(RideshareException)
    async def rideshare_exception_handler(request: Request, exc: RideshareException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "error_type": exc.__class__.__name__}
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        # Don't override HTTPException
        if isinstance(exc, HTTPException):
            raise exc

        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "error_type": "InternalError"}
        )
