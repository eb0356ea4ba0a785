from __future__ import annotations

from kakeibo.api.routes.auth import router as auth_router
from kakeibo.api.routes.health import router as health_router
from kakeibo.api.routes.session import router as session_router

__all__ = ["auth_router", "health_router", "session_router"]
