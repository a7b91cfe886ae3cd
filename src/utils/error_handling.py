"""
Centralized Error Handling and Logging System
The single terminal stage that turns any propagated error into a JSON response.
"""

import json
import logging
import time
import traceback
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from config import settings
from utils.errors import AppError, ErrorKind, MalformedRequestError, StorageCode, StorageError, ValidationError

# Context variable for request tracing
request_id_var: ContextVar[str] = ContextVar('request_id', default='')

logger = logging.getLogger(__name__)
access_logger = logging.getLogger("access")

# storage code -> (status, error, details)
STORAGE_ERROR_RESPONSES = {
    StorageCode.DUPLICATE_ENTRY: (409, "Resource already exists", "Duplicate entry detected"),
    StorageCode.NOT_NULL_VIOLATION: (400, "Missing required field", "A required field is missing"),
    StorageCode.FOREIGN_KEY_VIOLATION: (400, "Invalid reference", "Referenced resource does not exist"),
    StorageCode.UNKNOWN_COLUMN: (400, "Invalid field", "Unknown column in field list"),
    StorageCode.CONNECTION_REFUSED: (503, "Database connection failed", "Unable to connect to the database"),
    StorageCode.ACCESS_DENIED: (503, "Database access denied", "Invalid database credentials"),
}

REQUEST_ERROR_RESPONSES = {
    ErrorKind.MALFORMED_REQUEST: (400, "Invalid JSON format", "Request body contains invalid JSON"),
    ErrorKind.PAYLOAD_TOO_LARGE: (413, "Payload too large", "Request body exceeds size limit"),
}


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class StructuredLogger:
    """Structured logging with consistent format and context"""

    @staticmethod
    def log_error(
        error_type: str,
        message: str,
        request: Optional[Request] = None,
        exception: Optional[BaseException] = None,
        extra_context: Optional[Dict] = None,
        include_traceback: bool = True,
        level: int = logging.ERROR
    ) -> str:
        """Log structured error with full context"""

        trace_id = request_id_var.get('') or str(uuid.uuid4())[:8]

        log_entry = {
            "timestamp": _utc_timestamp(),
            "trace_id": trace_id,
            "error_type": error_type,
            "message": message,
            "level": logging.getLevelName(level)
        }

        if request is not None:
            log_entry["request"] = {
                "method": request.method,
                "url": str(request.url),
                "path": request.url.path,
                "client_ip": request.client.host if request.client else None,
            }

        if exception is not None:
            log_entry["exception"] = {
                "type": type(exception).__name__,
                "details": str(exception),
            }
            if include_traceback:
                log_entry["exception"]["traceback"] = "".join(
                    traceback.format_exception(type(exception), exception, exception.__traceback__)
                )

        if extra_context:
            log_entry["context"] = extra_context

        logger.log(level, json.dumps(log_entry, indent=2, default=str))

        return trace_id


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assigns a trace id to each request and writes the access log line"""

    async def dispatch(self, request: Request, call_next):
        trace_id = str(uuid.uuid4())[:8]
        request_id_var.set(trace_id)
        request.state.trace_id = trace_id

        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as exc:
            # Rendered here rather than in ServerErrorMiddleware so 500s keep
            # the trace id, security headers and access log line
            response = await general_exception_handler(request, exc)
        elapsed_ms = (time.perf_counter() - started) * 1000

        response.headers["X-Trace-ID"] = trace_id
        access_logger.info(
            f"{request.method} {request.url.path} {response.status_code} {elapsed_ms:.1f}ms [{trace_id}]"
        )
        return response


def error_response(
    request: Request,
    status_code: int,
    error: str,
    details: Optional[str] = None,
    extra: Optional[Dict[str, Any]] = None
) -> JSONResponse:
    """Build the JSON body shared by every failure response"""
    content: Dict[str, Any] = {"error": error}
    if extra:
        content.update(extra)
    if details is not None:
        content["details"] = details
    content["timestamp"] = _utc_timestamp()
    content["path"] = request.url.path
    return JSONResponse(status_code=status_code, content=content)


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render errors raised by handlers, the repository or the data access layer"""

    if isinstance(exc, StorageError):
        mapped = STORAGE_ERROR_RESPONSES.get(exc.code)
        StructuredLogger.log_error(
            f"storage_{exc.code.value}",
            exc.message,
            request=request,
            exception=exc,
            extra_context={"sqlstate": exc.sqlstate, "retryable": exc.retryable},
            include_traceback=mapped is None
        )
        if mapped is not None:
            status_code, error, details = mapped
            return error_response(request, status_code, error, details)
        logger.error(f"Unhandled database error code: {exc.code.value} (sqlstate {exc.sqlstate})")

    elif exc.kind in REQUEST_ERROR_RESPONSES:
        StructuredLogger.log_error(
            exc.kind.value,
            exc.message,
            request=request,
            exception=exc,
            include_traceback=False,
            level=logging.WARNING
        )
        status_code, error, details = REQUEST_ERROR_RESPONSES[exc.kind]
        return error_response(request, status_code, error, details)

    else:
        StructuredLogger.log_error(
            exc.kind.value,
            exc.message,
            request=request,
            exception=exc,
            include_traceback=exc.status >= 500,
            level=logging.ERROR if exc.status >= 500 else logging.WARNING
        )

    status_code = exc.status
    error = "Internal server error" if status_code == 500 else exc.message
    details = exc.message if settings.DEVELOPMENT_MODE else None
    return error_response(request, status_code, error, details, extra=exc.extra)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle HTTP exceptions raised by routing"""

    StructuredLogger.log_error(
        f"http_{exc.status_code}",
        f"HTTP {exc.status_code}: {exc.detail}",
        request=request,
        exception=exc,
        include_traceback=False,
        level=logging.WARNING
    )

    # Unknown path or unsupported method on a known path
    if exc.status_code in (404, 405):
        return JSONResponse(
            status_code=404,
            content={"error": "Route not found", "path": request.url.path}
        )

    response = error_response(request, exc.status_code, str(exc.detail))
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Route FastAPI request validation failures through the AppError rendering"""

    errors = exc.errors()
    if any(error.get("type") == "json_invalid" for error in errors):
        return await app_error_handler(request, MalformedRequestError("Request body contains invalid JSON"))

    validation_details = [
        {
            "field": " -> ".join(str(loc) for loc in error.get("loc", [])),
            "message": error.get("msg", "Unknown validation error"),
        }
        for error in errors
    ]
    return await app_error_handler(
        request,
        ValidationError("Request validation failed", extra={"detail": validation_details})
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle all other exceptions without leaking internals"""

    StructuredLogger.log_error(
        "internal_server_error",
        f"Unhandled exception: {str(exc)}",
        request=request,
        exception=exc,
        include_traceback=True
    )

    details = str(exc) if settings.DEVELOPMENT_MODE else None
    return error_response(request, 500, "Internal server error", details)


def setup_error_handling(app):
    """Install the request context middleware and exception handlers"""

    app.add_middleware(RequestContextMiddleware)

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    logger.info("Centralized error handling initialized")
