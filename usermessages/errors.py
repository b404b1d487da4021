"""
Application error taxonomy and the FastAPI handlers that render it.

Every error leaves the service as JSON:

    {"detail": "...", "error_type": "...", "errors": [...]}

``errors`` is only present for validation failures and carries the
field-level messages.
"""

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from usermessages.logging_utils import get_request_id

logger = logging.getLogger(__name__)


class APIError(Exception):
    """
    Base exception for API errors.

    Raise a subclass to return a specific status code and message
    to the client.
    """

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_type: str = "api_error",
        details: Optional[list[dict[str, Any]]] = None,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.error_type = error_type
        self.details = details
        super().__init__(message)


class ValidationError(APIError):
    """Malformed or out-of-range input."""

    def __init__(self, message: str = "Validation error", details: Optional[list[dict[str, Any]]] = None) -> None:
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            error_type="validation_error",
            details=details,
        )


class NotFoundError(APIError):
    """The operation targets a message id that does not exist."""

    def __init__(self, message: str = "Resource not found") -> None:
        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            error_type="not_found",
        )


class StorageError(APIError):
    """The database rejected or failed an operation."""

    def __init__(self, message: str = "A storage error occurred") -> None:
        super().__init__(
            message=message,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error_type="storage_error",
        )


def field_errors(exc_errors) -> list[dict[str, Any]]:
    """
    Flatten pydantic error dicts into ``{"field", "message"}`` pairs.

    Location prefixes added by FastAPI (``body``, ``query``, ``path``) are
    dropped so the client sees the bare field name.
    """
    flattened = []
    for err in exc_errors:
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        message = err.get("msg", "Invalid value")
        # pydantic prefixes messages raised from validators
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        flattened.append({"field": ".".join(loc), "message": message})
    return flattened


def summarize(details: list[dict[str, Any]]) -> str:
    """One-line summary of field errors for the ``detail`` key."""
    parts = []
    for d in details:
        field, message = d["field"], d["message"]
        if field and not message.startswith(field):
            parts.append(f"{field}: {message}")
        else:
            parts.append(message)
    return "; ".join(parts) or "Validation error"


def create_error_response(
    status_code: int,
    message: str,
    error_type: str,
    details: Optional[list[dict[str, Any]]] = None,
) -> JSONResponse:
    content: dict[str, Any] = {"detail": message, "error_type": error_type}
    if details:
        content["errors"] = details
    return JSONResponse(status_code=status_code, content=content)


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{exc.error_type}: {exc.message}", extra={"path": request.url.path})
    else:
        logger.warning(f"{exc.error_type}: {exc.message}", extra={"path": request.url.path})
    return create_error_response(exc.status_code, exc.message, exc.error_type, exc.details)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = field_errors(exc.errors())
    summary = summarize(details)
    logger.warning(f"Request validation failed: {summary}", extra={"path": request.url.path})
    return create_error_response(status.HTTP_400_BAD_REQUEST, summary, "validation_error", details)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    # Full trace goes to the log only, the client gets a generic message
    logger.exception(
        f"Unhandled exception: {exc}",
        extra={"path": request.url.path, "request_id": get_request_id()},
    )
    return create_error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "An unexpected error occurred",
        "internal_error",
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the error handlers to the application."""
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
