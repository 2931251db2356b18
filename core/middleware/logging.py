"""
Structured request logging.

Request logs must never carry applicant personal data (national ID, phone,
salary, address) or credentials: keys matching ``SENSITIVE_KEY`` are
redacted outright and free text is scrubbed with ``PII_PATTERNS``.
"""

import json
import logging
import re
import time
import traceback
import uuid
from typing import Any, Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from core.security import mask_pii

logger = logging.getLogger(__name__)

SENSITIVE_KEY = re.compile(
    r"token|secret|authorization|cookie|national[_-]?id|birthday|salary"
    r"|^(house_no|moo|soi|street|sub_district|postal_code)$",
    re.IGNORECASE,
)

PII_PATTERNS = (
    (re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"), "[EMAIL]"),
    (re.compile(r"\b\d-?\d{4}-?\d{5}-?\d{2}-?\d\b"), "[NATIONAL_ID]"),
    (re.compile(r"\+?\d{1,3}[-.\s]?\d{2,4}[-.\s]?\d{3}[-.\s]?\d{3,4}\b"), "[PHONE]"),
    (re.compile(r"\b\d{3}[-.]?\d{3}[-.]?\d{4}\b"), "[PHONE]"),
)

# Probes and docs are not worth a log line
QUIET_PATHS = ("/health", "/ready", "/docs", "/openapi.json")

# Headers logged verbatim
TRACE_HEADERS = frozenset({"x-user-id", "x-request-id"})

EXTRA_FIELDS = ("request_id", "user_id", "event_type", "candidate_id")


def is_sensitive_field(field_name: str) -> bool:
    return SENSITIVE_KEY.search(field_name) is not None


def mask_string(value: str) -> str:
    for pattern, replacement in PII_PATTERNS:
        value = pattern.sub(replacement, value)
    return value


def mask_sensitive_data(data: Any, depth: int = 0, max_depth: int = 10) -> Any:
    """Redact sensitive keys and scrub PII out of every string, recursively."""
    if depth > max_depth:
        return "[MAX_DEPTH_EXCEEDED]"
    if isinstance(data, dict):
        masked = {}
        for key, value in data.items():
            if is_sensitive_field(str(key)):
                masked[key] = "[REDACTED]"
            else:
                masked[key] = mask_sensitive_data(value, depth + 1, max_depth)
        return masked
    if isinstance(data, list):
        return [mask_sensitive_data(item, depth + 1, max_depth) for item in data]
    if isinstance(data, str):
        return mask_string(data)
    return data


def mask_headers(headers: dict) -> dict:
    """Header values with credentials removed; the auth scheme is kept."""
    masked = {}
    for key, value in headers.items():
        name = key.lower()
        if name == "authorization":
            scheme = value.split(" ", 1)[0] if " " in value else ""
            masked[key] = f"{scheme} [REDACTED]".strip()
        elif is_sensitive_field(name):
            masked[key] = "[REDACTED]"
        elif name in TRACE_HEADERS:
            masked[key] = value
        else:
            masked[key] = mask_string(value)
    return masked


def should_log_request(path: str) -> bool:
    return not path.startswith(QUIET_PATHS)


def get_client_ip(request: Request) -> str:
    """Client IPv4 address with the last octet hidden, or ``unknown``."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    elif request.client:
        ip = request.client.host
    else:
        return "unknown"

    octets = ip.split(".")
    if len(octets) != 4:
        return "unknown"
    return ".".join(octets[:3] + ["xxx"])


def _level_for(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """
    One ``request_started`` and one ``request_completed`` JSON line per request,
    tagged with ``x-request-id`` (generated when absent) and the caller id.
    """

    def __init__(
        self,
        app: ASGIApp,
        log_request_body: bool = False,
        log_response_body: bool = False,
        max_body_size: int = 1024,
    ):
        super().__init__(app)
        self.log_request_body = log_request_body
        self.log_response_body = log_response_body
        self.max_body_size = max_body_size

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id

        if not should_log_request(request.url.path):
            response = await call_next(request)
            response.headers["x-request-id"] = request_id
            return response

        logger.info(json.dumps(await self._started(request, request_id)))

        started_at = time.perf_counter()
        response: Optional[Response] = None
        failure: Optional[Exception] = None
        try:
            response = await call_next(request)
            response.headers["x-request-id"] = request_id
            return response
        except Exception as e:
            failure = e
            logger.error(
                f"Request processing error: {request.method} {request.url.path}",
                exc_info=True,
                extra={"request_id": request_id},
            )
            raise
        finally:
            status_code = response.status_code if response is not None else 500
            completed = {
                "event": "request_completed",
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "user_id": getattr(request.scope.get("user"), "user_id", None),
                "duration_ms": round((time.perf_counter() - started_at) * 1000, 2),
                "status_code": status_code,
            }
            if failure is not None:
                completed["error"] = {"type": type(failure).__name__}
            logger.log(_level_for(status_code), json.dumps(completed))

    async def _started(self, request: Request, request_id: str) -> dict:
        entry = {
            "event": "request_started",
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "query_params": mask_sensitive_data(dict(request.query_params)),
            "client_ip": get_client_ip(request),
            "user_agent": request.headers.get("user-agent", "unknown"),
            "headers": mask_headers(dict(request.headers)),
        }
        if self.log_request_body and request.method in ("POST", "PUT", "PATCH"):
            body = await self._read_body(request)
            if body is not None:
                entry["body"] = mask_sensitive_data(mask_pii(body))
        return entry

    async def _read_body(self, request: Request) -> Any:
        """Parsed JSON body, or a marker for other content types."""
        content_type = request.headers.get("content-type", "")
        if "application/json" not in content_type:
            # Multipart application forms carry CV files
            return {"_content_type": content_type}

        raw = await request.body()
        if len(raw) > self.max_body_size:
            return {"_truncated": True, "_size": len(raw)}
        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.debug(f"Could not parse request body: {e}")
            return None


class StructuredFormatter(logging.Formatter):
    """JSON log lines."""

    def format(self, record: logging.LogRecord) -> str:
        line = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        line.update({
            field: getattr(record, field) for field in EXTRA_FIELDS if hasattr(record, field)
        })
        if record.exc_info:
            exc_type, exc, tb = record.exc_info
            line["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc),
                "traceback": traceback.format_exception(exc_type, exc, tb),
            }
        return json.dumps(line, default=str)


# Third-party loggers held at WARNING
QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "httpx", "celery.redirected")


def setup_logging(log_level: str = "INFO", json_logs: bool = True):
    """Route every logger through one stderr handler, JSON or plain text."""
    level = getattr(logging, log_level.upper())

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(
        StructuredFormatter() if json_logs
        else logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )

    root = logging.getLogger()
    root.setLevel(level)
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
