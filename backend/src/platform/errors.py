"""
Consistent error handling for the playback paywall API.

Every HTTP-facing failure is an AppError subclass and is rendered as
{"error": "<message>"} with the class's status code. Internal details are
logged, never returned, and stack traces never leave the process.

Status codes:
- 400: ValidationError (e.g. empty videoId, malformed body)
- 401: AuthenticationError (missing or invalid session)
- 403: PermissionDeniedError (authenticated but not entitled)
- 404: NotFoundError (no entitlement record for the user)
- 500: InternalError (key loading, signing, store failures)
- 503: ServiceUnavailableError (collaborator not configured or unreachable)
"""

import logging
import uuid
from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"
GENERIC_ERROR_MESSAGE = "An unexpected error occurred"


class AppError(Exception):
    """Base application error carrying a stable code and an HTTP status."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict:
        """Client-facing body. details are for logs only."""
        return {"error": self.message}


class _StandardError(AppError):
    """AppError whose code, status and fallback message are fixed per class."""

    error_code = "INTERNAL_ERROR"
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, details: Optional[dict[str, Any]] = None):
        super().__init__(
            code=self.error_code,
            message=message or self.default_message,
            status_code=self.http_status,
            details=details,
        )


class ValidationError(_StandardError):
    error_code = "VALIDATION_ERROR"
    http_status = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class AuthenticationError(_StandardError):
    error_code = "AUTHENTICATION_ERROR"
    http_status = status.HTTP_401_UNAUTHORIZED
    default_message = "Authentication required"


class PermissionDeniedError(_StandardError):
    error_code = "PERMISSION_DENIED"
    http_status = status.HTTP_403_FORBIDDEN
    default_message = "Permission denied"


class InternalError(_StandardError):
    pass


class ServiceUnavailableError(_StandardError):
    error_code = "SERVICE_UNAVAILABLE"
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Service temporarily unavailable"


class NotFoundError(AppError):
    """A named resource does not exist (404)."""

    def __init__(self, resource: str, identifier: Optional[str] = None):
        if identifier:
            message = f"{resource} with id '{identifier}' not found"
        else:
            message = f"{resource} not found"
        super().__init__(
            code="NOT_FOUND",
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource},
        )


def generate_correlation_id() -> str:
    return uuid.uuid4().hex


def get_correlation_id(request: Request) -> str:
    """Incoming X-Correlation-ID, else the one assigned by the middleware, else a new one."""
    incoming = request.headers.get(CORRELATION_HEADER)
    if incoming:
        return incoming
    return getattr(request.state, "correlation_id", None) or generate_correlation_id()


def _json_error(request: Request, status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": message},
        headers={CORRELATION_HEADER: get_correlation_id(request)},
    )


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Log an AppError (ERROR for 5xx, WARNING otherwise) and render it."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "Application error",
        extra={
            "correlation_id": get_correlation_id(request),
            "error_code": exc.code,
            "status_code": exc.status_code,
            "path": request.url.path,
            "method": request.method,
            "details": exc.details,
        },
    )
    return _json_error(request, exc.status_code, exc.message)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render body/query validation failures as a 400 naming the first bad field."""
    message = "Invalid request"
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    return _json_error(request, status.HTTP_400_BAD_REQUEST, message)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Assigns a correlation id to every request and echoes it on the response.

    Exceptions no handler claimed become a generic 500; the traceback goes
    to the log only.
    """

    async def dispatch(self, request: Request, call_next):
        correlation_id = get_correlation_id(request)
        request.state.correlation_id = correlation_id

        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception(
                "Unhandled exception",
                extra={
                    "correlation_id": correlation_id,
                    "error_type": type(e).__name__,
                    "path": request.url.path,
                    "method": request.method,
                },
            )
            return _json_error(request, status.HTTP_500_INTERNAL_SERVER_ERROR, GENERIC_ERROR_MESSAGE)

        response.headers[CORRELATION_HEADER] = correlation_id
        return response


def register_error_handlers(app: FastAPI) -> None:
    """Install the error handlers and the correlation/500 middleware."""
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_middleware(ErrorHandlerMiddleware)
