"""Global exception handlers producing the gateway's error envelope.

Every error leaves the service as::

    {"error": {"code": ..., "message": ..., "request_id": ..., "details": {...}}}

Status mapping:
- ValidationAppError → 400
- UpstreamAppError → ``details["http_status"]`` (set by the NumVerify mapping)
- StoreUnavailableError → 503 (normally absorbed by the rate limiter)
- anything else → generic 500 with no internals

The rate limiter's own 429 is produced inline by the middleware and never
passes through here.
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from app.core.errors import AppError, StoreUnavailableError, UpstreamAppError
from app.core.logging import get_request_id

logger = logging.getLogger(__name__)


def _status_for(exc: AppError) -> int:
    if isinstance(exc, UpstreamAppError):
        return int((exc.details or {}).get("http_status", 500))
    if isinstance(exc, StoreUnavailableError):
        return 503
    return 400


def _envelope(code: str, message: str, details: dict | None = None) -> dict:
    error = {"code": code, "message": message, "request_id": get_request_id()}
    if details:
        error["details"] = details
    return {"error": error}


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render an AppError with the status its type (or upstream mapping) implies."""
    status_code = _status_for(exc)

    log = logger.error if status_code >= 500 else logger.warning
    log(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "path": request.url.path,
            "has_details": bool(exc.details),
        },
    )

    return JSONResponse(
        status_code=status_code,
        content=_envelope(exc.code, exc.message, dict(exc.details) if exc.details else None),
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Safety net for unexpected errors.

    The exception type and message are logged; the client only sees a
    generic message and the request id to quote in bug reports.
    """
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
        },
        exc_info=exc,
    )

    return JSONResponse(
        status_code=500,
        content=_envelope(
            "internal_server_error",
            "An unexpected error occurred. Please try again later.",
        ),
    )


def setup_exception_handlers(app) -> None:
    """Register the AppError and catch-all handlers on ``app``."""
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
