"""General API route class: authenticated, limited by the ``api`` limiter."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from kakeibo.core.auth import hash_token, verify_bearer_token
from kakeibo.core.rate_limit import enforce_api_rate_limit

router = APIRouter(
    tags=["API"],
    dependencies=[Depends(enforce_api_rate_limit)],
)


@router.get("/session")
async def current_session(
    token: Annotated[str | None, Depends(verify_bearer_token)],
) -> dict:
    """Describe the caller's session."""
    return {
        "authenticated": token is not None,
        "token_hash": hash_token(token) if token else None,
    }
