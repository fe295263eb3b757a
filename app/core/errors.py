"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep a loose but consistent shape across the
    codebase.
    """

    code: str
    message: str
    hint: str
    http_status: int
    backend: str
    operation: str
    upstream_code: int
    upstream_type: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class UpstreamAppError(AppError):
    """Raised when the phone validation provider fails or rejects a call.

    The HTTP status returned to the client is carried in
    ``details["http_status"]``.
    """


class StoreUnavailableError(AppError):
    """Raised when the rate limit key-value store cannot be reached.

    Never surfaced to clients: the rate limiter converts it into a bypass.
    """
