"""Global exception handlers for consistent error responses.

Design:
- RateLimitExceededError → 429 with the rate limit body and headers
- AuthenticationAppError → 401
- Other AppError subclasses → 400
- Unexpected Exception → generic 500 (safety net)

Rate limit headers recorded for the request are kept on every error response.
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from kakeibo.core.errors import AppError, AuthenticationAppError, RateLimitExceededError
from kakeibo.core.logging import get_request_id

logger = logging.getLogger(__name__)


def _rate_limit_headers(request: Request) -> dict[str, str]:
    """Headers recorded by the rate limit dependency for this request, if any."""
    return dict(getattr(request.state, "rate_limit_headers", None) or {})


async def rate_limit_error_handler(request: Request, exc: RateLimitExceededError) -> JSONResponse:
    """Build the 429 response.

    Body: ``{"error": "Too Many Requests", "message": ..., "retryAfter": n}``;
    headers: ``X-RateLimit-Limit``, ``X-RateLimit-Remaining``,
    ``X-RateLimit-Reset`` and ``Retry-After``.
    """
    headers = _rate_limit_headers(request)
    headers.update(exc.headers)
    headers["Retry-After"] = str(exc.retry_after)

    return JSONResponse(
        status_code=429,
        content={
            "error": "Too Many Requests",
            "message": exc.message,
            "retryAfter": exc.retry_after,
        },
        headers=headers,
    )


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle domain application errors with consistent JSON format.

    All responses include:
    - error.code: Machine-readable error code
    - error.message: Human-readable message
    - error.request_id: For distributed tracing
    - error.details: Optional structured context
    """
    status_code = 400
    headers = _rate_limit_headers(request)
    if isinstance(exc, AuthenticationAppError):
        status_code = 401
        headers["WWW-Authenticate"] = "Bearer"

    logger.warning(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "status_code": status_code,
            "has_details": bool(exc.details),
        },
    )

    error_content = {
        "code": exc.code,
        "message": exc.message,
        "request_id": get_request_id(),
    }
    if exc.details:
        error_content["details"] = exc.details

    return JSONResponse(
        status_code=status_code,
        content={"error": error_content},
        headers=headers,
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors.

    Logs the failure and returns a generic message without implementation
    details.
    """
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
        },
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "予期しないエラーが発生しました",
                "request_id": get_request_id(),
            }
        },
        headers=_rate_limit_headers(request),
    )


def setup_exception_handlers(app) -> None:
    """Register all exception handlers with a FastAPI app.

    Args:
        app: FastAPI application instance.
    """
    app.exception_handler(RateLimitExceededError)(rate_limit_error_handler)
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
