from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Health check endpoint.

    Not rate limited, so load balancers can poll it freely.

    Returns:
        dict: ``{"status": "ok", "timestamp": <ISO-8601 UTC>}``.
    """

    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}
