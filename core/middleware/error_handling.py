"""
Error handling middleware with security-compliant error sanitization.

Maps domain exceptions (authorization, workflow conflicts) and infrastructure
failures to the standard error envelope without leaking personal data.
"""

import logging
import re
import traceback
from typing import Any, Callable, Optional

from fastapi import Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError, ConnectionError as RedisConnectionError
from sqlalchemy.exc import SQLAlchemyError, IntegrityError, OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.middleware.authorization import AuthorizationError
from core.workflow import WorkflowError

logger = logging.getLogger(__name__)

# Patterns for sensitive data that should never be logged
SENSITIVE_PATTERNS = [
    re.compile(r'token["\s:=]+[^"\s,}]+', re.IGNORECASE),
    re.compile(r'secret["\s:=]+[^"\s,}]+', re.IGNORECASE),
    re.compile(r'authorization["\s:]+[^"\s,}]+', re.IGNORECASE),
    re.compile(r'\b\d{1}-?\d{4}-?\d{5}-?\d{2}-?\d{1}\b'),  # National ID
    re.compile(r'[^\s@"]+@[^\s@"]+\.[^\s@"]+'),  # Email address
]

# Partial unique index name -> user-facing conflict message
CONSTRAINT_MESSAGES = {
    "uq_candidate_active_assignment": "Candidate already has an active interviewer assignment",
    "uq_candidate_scheduled_interview": "Candidate already has a scheduled interview",
    "interview_id": "Feedback has already been submitted for this interview",
}


def sanitize_error_message(message: Any) -> str:
    """
    Remove sensitive information from error messages.

    Args:
        message: Original error message

    Returns:
        Sanitized error message
    """
    sanitized = str(message)
    for pattern in SENSITIVE_PATTERNS:
        sanitized = pattern.sub('[REDACTED]', sanitized)
    return sanitized


def get_safe_error_details(exc: Exception) -> dict[str, Any]:
    """Type, sanitized message and traceback, for debug responses only."""
    return {
        "type": type(exc).__name__,
        "message": sanitize_error_message(str(exc)),
        "traceback": traceback.format_exc(),
    }


def integrity_message(exc: IntegrityError) -> str:
    text = str(exc.orig) if exc.orig is not None else str(exc)
    for constraint, message in CONSTRAINT_MESSAGES.items():
        if constraint in text:
            return message
    return "Database integrity constraint violated"


def classify_exception(exc: Exception) -> tuple[int, str, str]:
    """
    Map an exception to ``(status_code, error_code, message)``.

    Unknown exceptions map to a generic 500.
    """
    if isinstance(exc, AuthorizationError):
        return exc.status_code, exc.code, sanitize_error_message(str(exc))

    if isinstance(exc, WorkflowError):
        return exc.status_code, exc.code, sanitize_error_message(str(exc))

    if isinstance(exc, StarletteHTTPException):
        return exc.status_code, "HTTP_EXCEPTION", sanitize_error_message(exc.detail)

    if isinstance(exc, IntegrityError):
        return status.HTTP_409_CONFLICT, "INTEGRITY_ERROR", integrity_message(exc)

    if isinstance(exc, OperationalError):
        return (
            status.HTTP_503_SERVICE_UNAVAILABLE,
            "DATABASE_ERROR",
            "Database service temporarily unavailable",
        )

    if isinstance(exc, SQLAlchemyError):
        return status.HTTP_500_INTERNAL_SERVER_ERROR, "DATABASE_ERROR", "A database error occurred"

    if isinstance(exc, RedisConnectionError):
        return (
            status.HTTP_503_SERVICE_UNAVAILABLE,
            "CACHE_ERROR",
            "Cache service temporarily unavailable",
        )

    if isinstance(exc, RedisError):
        return status.HTTP_500_INTERNAL_SERVER_ERROR, "CACHE_ERROR", "A cache error occurred"

    if isinstance(exc, ValueError):
        message = sanitize_error_message(str(exc)) or "Invalid input provided"
        return status.HTTP_400_BAD_REQUEST, "INVALID_INPUT", message

    if isinstance(exc, PermissionError):
        return (
            status.HTTP_403_FORBIDDEN,
            "PERMISSION_DENIED",
            "You don't have permission to perform this action",
        )

    if isinstance(exc, TimeoutError):
        return status.HTTP_504_GATEWAY_TIMEOUT, "TIMEOUT", "The request timed out"

    return (
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "INTERNAL_SERVER_ERROR",
        "An unexpected error occurred",
    )


def format_validation_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    """Flatten pydantic errors into ``{field, message, type}`` dicts."""
    errors = []
    for error in exc.errors():
        errors.append({
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": sanitize_error_message(error["msg"]),
            "type": error["type"],
        })
    return errors


def error_envelope(
    code: str,
    message: str,
    path: str,
    method: str,
    details: Optional[Any] = None,
    request_id: Optional[str] = None,
) -> dict[str, Any]:
    """Standard error body."""
    body: dict[str, Any] = {
        "code": code,
        "message": message,
        "path": path,
        "method": method,
    }
    if details is not None:
        body["details"] = details
    if request_id:
        body["request_id"] = request_id
    return {"error": body}


def _log_exception(exc: Exception, status_code: int, method: str, path: str, message: str) -> None:
    if status_code >= 500:
        logger.error(
            f"Unhandled exception: {method} {path} - "
            f"{type(exc).__name__}: {sanitize_error_message(str(exc))}",
            exc_info=True,
        )
    else:
        logger.warning(f"{type(exc).__name__}: {method} {path} - Status: {status_code}, Message: {message}")


class ErrorHandlingMiddleware:
    """
    Outermost safety net: any exception that escapes the app becomes an
    enveloped JSON error instead of a bare 500.
    """

    def __init__(self, app: Callable, debug: bool = False):
        self.app = app
        self.debug = debug

    async def __call__(self, scope: dict, receive: Callable, send: Callable) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        try:
            await self.app(scope, receive, send)
        except Exception as exc:
            response = await self._handle_exception(exc, scope)
            await response(scope, receive, send)

    async def _handle_exception(self, exc: Exception, scope: dict) -> Response:
        """
        Build the error response for an escaped exception.

        Args:
            exc: The exception to handle
            scope: ASGI scope for context

        Returns:
            JSONResponse with error details
        """
        request_path = scope.get("path", "unknown")
        request_method = scope.get("method", "unknown")

        details = None
        if isinstance(exc, RequestValidationError):
            status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
            error_code = "VALIDATION_ERROR"
            message = "Request validation failed"
            details = format_validation_errors(exc)
        else:
            status_code, error_code, message = classify_exception(exc)
            if self.debug and status_code >= 500:
                details = get_safe_error_details(exc)

        _log_exception(exc, status_code, request_method, request_path, message)

        request_id = None
        if "headers" in scope:
            raw = dict(scope["headers"]).get(b"x-request-id")
            if raw:
                request_id = raw.decode()

        return JSONResponse(
            status_code=status_code,
            content=error_envelope(
                error_code, message, request_path, request_method, details, request_id
            ),
        )


def setup_error_handlers(app):
    """
    Set up exception handlers for FastAPI application.

    Args:
        app: FastAPI application instance
    """

    def _respond(request: Request, exc: Exception, details: Optional[Any] = None) -> JSONResponse:
        status_code, error_code, message = classify_exception(exc)
        _log_exception(exc, status_code, request.method, str(request.url.path), message)
        return JSONResponse(
            status_code=status_code,
            content=error_envelope(
                error_code, message, str(request.url.path), request.method, details
            ),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Handle HTTP exceptions."""
        return _respond(request, exc)

    @app.exception_handler(AuthorizationError)
    async def authorization_exception_handler(request: Request, exc: AuthorizationError):
        """Handle pending-access and missing-permission refusals."""
        return _respond(request, exc)

    @app.exception_handler(WorkflowError)
    async def workflow_exception_handler(request: Request, exc: WorkflowError):
        """Handle illegal status transitions and other workflow conflicts."""
        return _respond(request, exc)

    @app.exception_handler(IntegrityError)
    async def integrity_exception_handler(request: Request, exc: IntegrityError):
        """Handle unique-index races (double assignment, double feedback)."""
        return _respond(request, exc)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle validation errors."""
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=error_envelope(
                "VALIDATION_ERROR",
                "Request validation failed",
                str(request.url.path),
                request.method,
                format_validation_errors(exc),
            ),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Handle all other exceptions."""
        return _respond(request, exc)
