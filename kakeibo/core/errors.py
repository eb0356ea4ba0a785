"""Application-level exception types.

This module defines domain errors used across the server, the rate limiter
and the client request pipeline, enabling consistent error handling, logging,
and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep backward compatibility while encouraging
    consistent shapes across the codebase.
    """

    code: str
    message: str
    hint: str
    http_status: int
    retry_after: float
    url: str
    method: str
    request_id: str
    errors: list[Any]
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


class AuthenticationAppError(AppError):
    """Raised when bearer token authentication fails."""


@dataclass
class RateLimitExceededError(AppError):
    """Raised when a client exhausts its quota for a route class.

    Attributes:
        retry_after: Seconds until the current window ends.
        headers: Rate limit headers to attach to the 429 response.
    """

    retry_after: int = 0
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class ApiError(AppError):
    """Raised by the client when a request does not produce a usable response.

    Attributes:
        status: HTTP status code, or 0 when no response was obtained.
    """

    status: int = 0


class SessionExpiredError(ApiError):
    """Raised by the client when the server rejects the stored token (HTTP 401)."""


class NetworkUnavailableError(ApiError):
    """Raised when the client is offline and the request was not queued."""


class OfflineQueuedError(NetworkUnavailableError):
    """Raised when the client is offline and the request was queued for replay."""
