"""Fixed-window rate limiting for FastAPI routes.

Two route classes are limited independently over one shared record store:

- ``auth``: authentication endpoints, 5 requests per 15 minutes.
- ``api``: general API endpoints, 100 requests per 15 minutes.

Each client identity (the remote address) gets its own window, opened by its
first request and reset once the window length has fully elapsed. Records of
idle identities are purged by a periodic sweep.

Deployment constraint: the default store lives in process memory. Several
workers or instances each enforce their own limits unless a shared store is
plugged in behind ``AbstractRateLimitStore``.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import math
import time
from dataclasses import dataclass
from typing import Callable

from fastapi import Request, Response

from kakeibo.adapters.rate_limit.base import AbstractRateLimitStore, RateLimitResult
from kakeibo.adapters.rate_limit.in_memory import InMemoryRateLimitStore
from kakeibo.core.config import AppSettings, settings
from kakeibo.core.errors import RateLimitExceededError

logger = logging.getLogger(__name__)

AUTH_ROUTE_CLASS = "auth"
API_ROUTE_CLASS = "api"


class FixedWindowRateLimiter:
    """Count requests per identity within a fixed window.

    Configuration is fixed at construction. The limiter never raises for a
    request: it either allows it or reports a structured rejection.
    """

    def __init__(
        self,
        store: AbstractRateLimitStore,
        *,
        limit: int,
        window_seconds: float,
        key_prefix: str,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the limiter.

        Args:
            store: Record store, possibly shared with other limiters.
            limit: Maximum allowed requests per window.
            window_seconds: Window length in seconds.
            key_prefix: Namespace keeping this route class's counts separate.
            clock: Time source returning UNIX time in seconds.
        """
        self._store = store
        self._limit = limit
        self._window_seconds = window_seconds
        self._key_prefix = key_prefix
        self._clock = clock

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def window_seconds(self) -> float:
        return self._window_seconds

    @property
    def key_prefix(self) -> str:
        return self._key_prefix

    def build_key(self, identity: str) -> str:
        return f"{self._key_prefix}:{identity}"

    def consume(self, identity: str) -> RateLimitResult:
        """Record one request from ``identity`` and decide whether it may proceed.

        Args:
            identity: Client identity, e.g. the remote address.

        Returns:
            RateLimitResult with the decision and header metadata.
        """
        key = self.build_key(identity)
        now = self._clock()

        record = self._store.hit(key, now, self._window_seconds)

        window_end = record.window_start + self._window_seconds
        remaining = max(0, self._limit - record.count)
        reset_at = int(math.ceil(window_end))

        if record.count > self._limit:
            return RateLimitResult(
                allowed=False,
                limit=self._limit,
                remaining=0,
                reset_at=reset_at,
                retry_after_seconds=max(0, int(math.ceil(window_end - now))),
            )

        return RateLimitResult(
            allowed=True,
            limit=self._limit,
            remaining=remaining,
            reset_at=reset_at,
            retry_after_seconds=None,
        )


@dataclass(frozen=True)
class RateLimiters:
    """The limiters of every route class, sharing one store and clock."""

    store: AbstractRateLimitStore
    auth: FixedWindowRateLimiter
    api: FixedWindowRateLimiter
    clock: Callable[[], float] = time.time

    def for_route_class(self, route_class: str) -> FixedWindowRateLimiter:
        if route_class == AUTH_ROUTE_CLASS:
            return self.auth
        if route_class == API_ROUTE_CLASS:
            return self.api
        raise KeyError(f"unknown route class: {route_class}")


def build_rate_limiters(
    app_settings: AppSettings | None = None,
    *,
    store: AbstractRateLimitStore | None = None,
    clock: Callable[[], float] = time.time,
) -> RateLimiters:
    """Build the auth and API limiters from settings.

    Args:
        app_settings: Server settings; defaults to the global settings.
        store: Record store; a fresh in-memory store when omitted.
        clock: Time source shared by both limiters.

    Returns:
        RateLimiters bundle ready to be attached to ``app.state``.
    """
    cfg = app_settings or settings.app
    shared_store = store if store is not None else InMemoryRateLimitStore()

    return RateLimiters(
        store=shared_store,
        auth=FixedWindowRateLimiter(
            shared_store,
            limit=cfg.rate_limit_auth_max_requests,
            window_seconds=cfg.rate_limit_window_seconds,
            key_prefix=AUTH_ROUTE_CLASS,
            clock=clock,
        ),
        api=FixedWindowRateLimiter(
            shared_store,
            limit=cfg.rate_limit_api_max_requests,
            window_seconds=cfg.rate_limit_window_seconds,
            key_prefix=API_ROUTE_CLASS,
            clock=clock,
        ),
        clock=clock,
    )


class RateLimitSweeper:
    """Periodically purge records whose window has elapsed.

    Bounds memory use when many distinct identities hit the server.
    """

    def __init__(
        self,
        store: AbstractRateLimitStore,
        *,
        window_seconds: float,
        interval_seconds: float = 300.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._window_seconds = window_seconds
        self._interval_seconds = interval_seconds
        self._clock = clock
        self._task: asyncio.Task | None = None
        self._stop_event = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None

    def sweep_once(self) -> int:
        """Run one purge pass and return the number of removed records."""
        removed = self._store.sweep(self._clock(), self._window_seconds)
        if removed:
            logger.debug(
                "rate_limit.sweep",
                extra={"removed": removed, "remaining_records": len(self._store)},
            )
        return removed

    async def start(self) -> None:
        if self._task is not None:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run())
        logger.info("rate_limit.sweeper_started", extra={"interval_s": self._interval_seconds})

    async def stop(self) -> None:
        if self._task is None:
            return

        self._stop_event.set()
        try:
            await asyncio.wait_for(self._task, timeout=5.0)
        except asyncio.TimeoutError:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        finally:
            self._task = None
            logger.info("rate_limit.sweeper_stopped")

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval_seconds)
            except asyncio.TimeoutError:
                self.sweep_once()


def get_client_identity(request: Request) -> str:
    """Return the identity a request is counted under (its remote address)."""

    return request.client.host if request.client else "unknown"


def _hash_limiter_key(key: str) -> str:
    """Hash the rate limit key for logging without exposing client addresses."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


class RateLimitDependency:
    """FastAPI dependency enforcing the limiter of one route class.

    The limiter is resolved from ``request.app.state.rate_limiters`` so each
    application instance (and each test) owns its counters.

    Usage:
        router = APIRouter(dependencies=[Depends(enforce_auth_rate_limit)])
    """

    def __init__(self, route_class: str) -> None:
        self.route_class = route_class

    async def __call__(self, request: Request, response: Response) -> None:
        """Consume one unit of the caller's budget.

        Raises:
            RateLimitExceededError: When the caller is over quota.
        """
        if not settings.app.rate_limit_enabled:
            return

        limiters: RateLimiters = request.app.state.rate_limiters
        limiter = limiters.for_route_class(self.route_class)
        identity = get_client_identity(request)
        key_hash = _hash_limiter_key(limiter.build_key(identity))

        result = limiter.consume(identity)
        headers = result.headers()

        if result.allowed:
            response.headers.update(headers)
            # Error handlers re-apply these when the route itself fails.
            request.state.rate_limit_headers = headers
            logger.debug(
                "rate_limit.allowed",
                extra={
                    "route_class": self.route_class,
                    "key_hash": key_hash,
                    "limit": result.limit,
                    "remaining": result.remaining,
                },
            )
            return

        retry_after = result.retry_after_seconds or 0
        logger.warning(
            "rate_limit.exceeded",
            extra={
                "route_class": self.route_class,
                "key_hash": key_hash,
                "limit": result.limit,
                "window_s": limiter.window_seconds,
                "retry_after_s": retry_after,
            },
        )
        raise RateLimitExceededError(
            code="rate_limit_exceeded",
            message=settings.app.rate_limit_message,
            details={"retry_after": retry_after},
            retry_after=retry_after,
            headers=headers,
        )


enforce_auth_rate_limit = RateLimitDependency(AUTH_ROUTE_CLASS)
enforce_api_rate_limit = RateLimitDependency(API_ROUTE_CLASS)
