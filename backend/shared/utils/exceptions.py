"""
Centralized HTTP exceptions for consistent error handling.

Every control-surface error is rendered by the handlers registered in
``register_exception_handlers`` as::

    {"success": false, "error": <detail>, "message"?: <str>, "details"?: <list>}

Usage:
    from shared.utils.exceptions import NotFoundError, InternalError

    raise NotFoundError("Client not found or disconnected", socket_id=socket_id)
    raise InternalError("Failed to broadcast message", message=str(exc))
"""

from typing import Any

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from shared.config.logging import get_logger

logger = get_logger(__name__)


class AppException(HTTPException):
    """
    Base exception with automatic logging.

    All custom exceptions should inherit from this class
    to ensure consistent logging and response format.
    """

    def __init__(
        self,
        status_code: int,
        detail: str,
        log_level: str = "warning",
        headers: dict[str, str] | None = None,
        message: str | None = None,
        details: Any = None,
        **log_context: Any,
    ):
        log_fn = getattr(logger, log_level, logger.warning)
        log_fn(detail, status_code=status_code, **log_context)

        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.message = message
        self.details = details

    def to_body(self) -> dict[str, Any]:
        """Render the response envelope for this error."""
        body: dict[str, Any] = {"success": False, "error": self.detail}
        if self.message is not None:
            body["message"] = self.message
        if self.details is not None:
            body["details"] = self.details
        return body


# =============================================================================
# 404 Not Found Errors
# =============================================================================


class NotFoundError(AppException):
    """
    Target not found error (404).

    Usage:
        raise NotFoundError("Client not found or disconnected", socket_id=socket_id)
    """

    def __init__(self, detail: str = "Not found", **log_context: Any):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
            log_level="warning",
            **log_context,
        )


# =============================================================================
# 400 Bad Request Errors
# =============================================================================


class ValidationError(AppException):
    """
    Input validation error (400).

    Usage:
        raise ValidationError(details=[{"loc": ["body", "message"], "msg": "..."}])
    """

    def __init__(self, details: Any = None, detail: str = "Validation failed", **log_context: Any):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            log_level="warning",
            details=details,
            **log_context,
        )


# =============================================================================
# 500 Internal Server Errors
# =============================================================================


class InternalError(AppException):
    """
    Internal server error (500).

    The detail is the operation label shown to the client; ``message`` carries
    the underlying error text.

    Usage:
        raise InternalError("Failed to publish data", message=str(exc))
    """

    def __init__(
        self,
        detail: str = "Internal server error",
        message: str | None = None,
        **log_context: Any,
    ):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            log_level="error",
            message=message,
            **log_context,
        )


# =============================================================================
# Exception handlers
# =============================================================================


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_body(),
        headers=exc.headers,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Map pydantic body validation failures to 400 with field-level details."""
    error = ValidationError(
        details=jsonable_encoder(exc.errors()),
        path=request.url.path,
    )
    return JSONResponse(status_code=error.status_code, content=error.to_body())


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled exception",
        path=request.url.path,
        error=str(exc),
        exc_info=exc,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "error": "Internal server error", "message": str(exc)},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install the error-to-HTTP-status mapping on an application."""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
