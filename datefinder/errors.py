"""Error taxonomy for DateFinder.

Every error the service reports is an ``APIError`` subclass carrying its
HTTP status and a short machine-readable ``error`` string. Validation
errors (``InvalidRangeError``, ``InvalidNameError``,
``InvalidSelectionError``) are raised by the core before anything reaches
persistence. ``PersistenceError`` and ``NotFoundError`` come from the
storage collaborators and are always surfaced to the caller.

Usage:
    from datefinder.errors import InvalidSelectionError

    raise InvalidSelectionError(detail="Date is in the past", date="2026-01-01")

    # in main.py
    from datefinder.errors import register_exception_handlers
    register_exception_handlers(app)
"""

import logging
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class ErrorResponse(BaseModel):
    """Standard error response model."""

    error: str
    detail: str | None = None
    error_code: str | None = None
    context: dict[str, Any] | None = None


class APIError(Exception):
    """Base class for DateFinder errors."""

    status_code: int = 500
    error: str = "internal_error"
    detail: str = "An unexpected error occurred"

    def __init__(
        self,
        detail: str | None = None,
        error_code: str | None = None,
        **context: Any,
    ) -> None:
        self.detail = detail or self.__class__.detail
        self.error_code = error_code
        self.context = context if context else None
        super().__init__(self.detail)

    def to_response(self) -> ErrorResponse:
        """Convert exception to error response model."""
        return ErrorResponse(
            error=self.error,
            detail=self.detail,
            error_code=self.error_code,
            context=self.context,
        )


class InvalidRangeError(APIError):
    """Date window start is after its end (400)."""

    status_code = 400
    error = "invalid_range"
    detail = "Window start must not be after window end"


class InvalidNameError(APIError):
    """Empty or whitespace-only display name (400)."""

    status_code = 400
    error = "invalid_name"
    detail = "Name must not be empty"


class InvalidSelectionError(APIError):
    """Toggle of a date that is not selectable (400)."""

    status_code = 400
    error = "invalid_selection"
    detail = "Date is not selectable"


class IdentityStateError(APIError):
    """Confirm/deny received while no matching confirmation is pending (409)."""

    status_code = 409
    error = "identity_state"
    detail = "No pending name confirmation"


class NotFoundError(APIError):
    """Resource not found error (404)."""

    status_code = 404
    error = "not_found"
    detail = "Event not found"


class PersistenceError(APIError):
    """Storage backend unreachable or write rejected (503)."""

    status_code = 503
    error = "persistence_error"
    detail = "Storage backend unavailable"


class ServiceUnavailableError(APIError):
    """Service unavailable error (503)."""

    status_code = 503
    error = "service_unavailable"
    detail = "Service temporarily unavailable"


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    """Handle DateFinder errors."""
    logger.warning(
        "API error: %s (status=%d, path=%s)",
        exc.detail,
        exc.status_code,
        request.url.path,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response().model_dump(exclude_none=True),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle FastAPI HTTPExceptions with the standard body."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=_status_to_error_type(exc.status_code),
            detail=str(exc.detail),
        ).model_dump(exclude_none=True),
    )


def _status_to_error_type(status_code: int) -> str:
    """Map HTTP status code to error type string."""
    mapping = {
        400: "bad_request",
        404: "not_found",
        409: "conflict",
        422: "validation_error",
        500: "internal_error",
        503: "service_unavailable",
    }
    return mapping.get(status_code, "error")


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app."""
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
