"""Bearer token authentication.

Requests carry ``Authorization: Bearer <token>``. Tokens are validated against
a comma-separated list from the environment (``APP_API_TOKENS``); user and
session persistence is handled elsewhere.

Design principles:
- Single Responsibility: Only handles token validation
- Dependency Injection: Used via FastAPI Depends() for loose coupling
- Configuration-driven: Tokens managed via env vars, not hardcoded
"""

from __future__ import annotations

import hashlib
import logging
from typing import Annotated

from fastapi import Header

from kakeibo.core.config import settings
from kakeibo.core.errors import AuthenticationAppError

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "
MIN_TOKEN_LENGTH = 32


def parse_tokens(tokens_string: str | None) -> set[str]:
    """Parse comma-separated tokens into a set.

    Examples:
        >>> parse_tokens("a, b ,c")
        {'a', 'b', 'c'}
        >>> parse_tokens(None)
        set()
    """
    if not tokens_string:
        return set()

    return {token.strip() for token in tokens_string.split(",") if token.strip()}


def hash_token(token: str) -> str:
    """Short, log-safe fingerprint of a token."""
    return hashlib.sha256(token.encode()).hexdigest()[:16]


def extract_bearer_token(authorization: str | None) -> str:
    """Return the token from an Authorization header value.

    Raises:
        AuthenticationAppError: If the header is missing, uses another scheme,
            or carries a token too short to be valid.
    """
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        raise AuthenticationAppError(
            code="missing_bearer_token",
            message="認証が必要です",
            details={"hint": "Provide an 'Authorization: Bearer <token>' header"},
        )

    token = authorization[len(BEARER_PREFIX):].strip()
    if len(token) < MIN_TOKEN_LENGTH:
        raise AuthenticationAppError(
            code="malformed_token",
            message="無効なトークンです",
        )
    return token


def validate_token(token: str) -> None:
    """Check a token against the configured tokens.

    Raises:
        AuthenticationAppError: If no tokens are configured or the token is unknown.
    """
    valid_tokens = parse_tokens(settings.app.api_tokens)

    if not valid_tokens:
        logger.error(
            "auth.tokens_not_configured",
            extra={"auth_required": settings.app.auth_required},
        )
        raise AuthenticationAppError(
            code="tokens_not_configured",
            message="Token authentication is enabled but no tokens are configured",
            details={"hint": "Set APP_API_TOKENS or disable auth with APP_AUTH_REQUIRED=false"},
        )

    if token not in valid_tokens:
        logger.warning(
            "auth.invalid_token",
            extra={"token_hash": hash_token(token)},
        )
        raise AuthenticationAppError(
            code="invalid_token",
            message="セッションが無効または期限切れです",
        )


async def verify_bearer_token(
    authorization: Annotated[str | None, Header()] = None,
) -> str | None:
    """FastAPI dependency authenticating the caller.

    Returns:
        The validated token, or None when authentication is disabled.

    Raises:
        AuthenticationAppError: Mapped to HTTP 401 by the exception handlers.
    """
    if not settings.app.auth_required:
        logger.debug("auth.skipped", extra={"reason": "auth_required_false"})
        return None

    token = extract_bearer_token(authorization)
    validate_token(token)
    logger.debug("auth.success", extra={"token_hash": hash_token(token)})
    return token
