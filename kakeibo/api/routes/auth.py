"""Authentication route class.

Every endpoint here shares the strict ``auth`` limiter.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Header

from kakeibo.core.auth import extract_bearer_token, hash_token, validate_token
from kakeibo.core.rate_limit import enforce_auth_rate_limit

router = APIRouter(
    prefix="/auth",
    tags=["Auth"],
    dependencies=[Depends(enforce_auth_rate_limit)],
)


@router.post("/verify")
async def verify_token(
    authorization: Annotated[str | None, Header()] = None,
) -> dict:
    """Check whether the presented bearer token is accepted.

    Rejections (401) still consume the caller's auth budget, which is what
    bounds token guessing.
    """
    token = extract_bearer_token(authorization)
    validate_token(token)
    return {"valid": True, "token_hash": hash_token(token)}
