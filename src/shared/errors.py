"""
Unified Error Handling for the Lumina command service

Standard error response model and exception classes. The error codes are the
transport-level codes returned to the app; internal classification detail
(status codes, provider error kinds) is logged but never returned.

Usage:
    from shared.errors import (
        register_exception_handlers,
        InvalidArgumentError,
        ResourceExhaustedError,
        ServiceUnavailableError,
    )

    # In FastAPI app setup
    register_exception_handlers(app)

    # In route handlers
    if not valid:
        raise InvalidArgumentError("transcribedText must be a non-empty string")
"""
from typing import Optional
from pydantic import BaseModel
from fastapi import Request
from fastapi.responses import JSONResponse
from enum import Enum
from datetime import datetime, timezone
import structlog
import traceback

logger = structlog.get_logger()


class ErrorCode(str, Enum):
    """Transport-level error codes returned to callers."""

    INVALID_ARGUMENT = "invalid-argument"
    UNAUTHENTICATED = "unauthenticated"
    RESOURCE_EXHAUSTED = "resource-exhausted"
    FAILED_PRECONDITION = "failed-precondition"
    UNAVAILABLE = "unavailable"
    INTERNAL = "internal"


class ErrorResponse(BaseModel):
    """
    Standard error response format.

    Example response:
    {
        "error": true,
        "code": "resource-exhausted",
        "message": "Rate limit exceeded: 20/20 requests per minute. Please wait a moment.",
        "detail": null,
        "request_id": "abc123",
        "timestamp": "2026-10-18T10:30:00Z"
    }
    """
    error: bool = True
    code: str
    message: str
    detail: Optional[str] = None
    request_id: Optional[str] = None
    timestamp: Optional[str] = None


class LuminaException(Exception):
    """
    Base exception class for errors that are returned to callers.

    Pipeline-internal errors are translated into one of these subclasses
    before they leave the request handler.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: int = 500,
        detail: Optional[str] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.detail = detail
        super().__init__(message)


# ==============================================================================
# Client Errors
# ==============================================================================

class InvalidArgumentError(LuminaException):
    """400 - Request payload is structurally or semantically invalid."""
    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(ErrorCode.INVALID_ARGUMENT, message, 400, detail)


class UnauthenticatedError(LuminaException):
    """401 - No authenticated user on the request."""
    def __init__(self, message: str = "User must be authenticated", detail: Optional[str] = None):
        super().__init__(ErrorCode.UNAUTHENTICATED, message, 401, detail)


class ResourceExhaustedError(LuminaException):
    """429 - Per-user quota exceeded."""
    def __init__(self, message: str = "Rate limit exceeded", detail: Optional[str] = None):
        super().__init__(ErrorCode.RESOURCE_EXHAUSTED, message, 429, detail)


class FailedPreconditionError(LuminaException):
    """400 - Service is not in a state to handle the request (e.g. credentials)."""
    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(ErrorCode.FAILED_PRECONDITION, message, 400, detail)


# ==============================================================================
# Server Errors
# ==============================================================================

class ServiceUnavailableError(LuminaException):
    """503 - Upstream model provider temporarily unavailable."""
    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(ErrorCode.UNAVAILABLE, message, 503, detail)


class InternalError(LuminaException):
    """500 - Unexpected error occurred."""
    def __init__(self, message: str = "Something went wrong. Please try again.", detail: Optional[str] = None):
        super().__init__(ErrorCode.INTERNAL, message, 500, detail)


# ==============================================================================
# Exception Handlers
# ==============================================================================

def _timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


async def lumina_exception_handler(request: Request, exc: LuminaException) -> JSONResponse:
    """
    FastAPI exception handler for LuminaException and subclasses.

    Logs the error and returns a standardized ErrorResponse.
    """
    request_id = getattr(request.state, "request_id", None)

    logger.warning(
        "lumina_exception",
        code=exc.code.value,
        message=exc.message,
        status_code=exc.status_code,
        request_id=request_id,
        path=str(request.url.path)
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            code=exc.code.value,
            message=exc.message,
            detail=exc.detail,
            request_id=request_id,
            timestamp=_timestamp()
        ).model_dump()
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Catch-all exception handler for unhandled exceptions.

    Logs the full traceback and returns a generic error response.
    Does not expose internal details to clients.
    """
    request_id = getattr(request.state, "request_id", None)

    logger.error(
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        request_id=request_id,
        path=str(request.url.path),
        traceback=traceback.format_exc()
    )

    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            code=ErrorCode.INTERNAL.value,
            message="Something went wrong. Please try again.",
            detail=None,
            request_id=request_id,
            timestamp=_timestamp()
        ).model_dump()
    )


def register_exception_handlers(app) -> None:
    """
    Register exception handlers with a FastAPI application.

    Usage:
        from shared.errors import register_exception_handlers

        app = FastAPI()
        register_exception_handlers(app)
    """
    app.add_exception_handler(LuminaException, lumina_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    logger.info("lumina_exception_handlers_registered")
