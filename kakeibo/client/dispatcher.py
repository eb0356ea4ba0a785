"""Retrying request dispatcher.

Sends one logical HTTP request, retrying transparently on rate limiting (429)
and on transport failures with a capped backoff schedule. While offline,
mutating requests are handed to the offline queue instead of being sent.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, NoReturn

import httpx

from kakeibo.client.connectivity import ConnectivityMonitor
from kakeibo.core.errors import NetworkUnavailableError, OfflineQueuedError
from kakeibo.schemas.queue import is_mutating

if TYPE_CHECKING:
    from kakeibo.client.offline_queue import OfflineQueue

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class RetryPolicy:
    """Retry ceiling and backoff schedule.

    Attributes:
        max_retries: Retries after the first attempt (4 attempts by default).
        delays: Seconds to wait before retry ``n``, indexed by attempt number.
            The last entry is reused if the index runs past the schedule.

    Example:
        >>> RetryPolicy().calculate_delay(2)
        4.0
    """

    max_retries: int = 3
    delays: tuple[float, ...] = (1.0, 2.0, 4.0)

    def calculate_delay(self, attempt: int) -> float:
        if not self.delays:
            return 0.0
        return self.delays[min(attempt, len(self.delays) - 1)]

    @staticmethod
    def parse_retry_after(value: str | None) -> float | None:
        """Interpret a ``Retry-After`` header given in whole seconds.

        Only plain non-negative integers are accepted; exponents, fractions,
        ``inf`` and ``nan`` are treated as unusable.

        Returns:
            Delay in seconds, or None when the header is absent or unusable.
        """
        if value is None:
            return None
        value = value.strip()
        if not (value.isascii() and value.isdigit()):
            return None
        return float(int(value))


class RetryingDispatcher:
    """Dispatch requests through an ``httpx.AsyncClient`` with retries.

    Response bodies are never inspected: callers receive the final
    ``httpx.Response`` whatever its status.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        connectivity: ConnectivityMonitor,
        offline_queue: "OfflineQueue | None" = None,
        policy: RetryPolicy | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._http = http_client
        self._connectivity = connectivity
        self._offline_queue = offline_queue
        self._policy = policy or RetryPolicy()
        self._sleep = sleep

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    async def dispatch(
        self,
        url: str,
        *,
        method: str = "GET",
        body: str | None = None,
        headers: dict[str, str] | None = None,
        queue_if_offline: bool = True,
    ) -> httpx.Response:
        """Send a request, retrying on 429 and transport errors.

        Args:
            url: Target URL (absolute, or relative to the client's base URL).
            method: HTTP method.
            body: Serialized request body.
            headers: Request headers.
            queue_if_offline: Queue mutating requests issued while offline.

        Returns:
            The final response: a success, a non-429 error, or the last 429
            once retries are exhausted.

        Raises:
            OfflineQueuedError: Offline; the request was queued for replay.
            NetworkUnavailableError: Offline; the request was not queued.
            httpx.TransportError: Transport kept failing after every retry.
            TypeError: ``body`` is not text. Queued requests are persisted as
                JSON, so only text bodies can be replayed.
        """
        if body is not None and not isinstance(body, str):
            raise TypeError(f"body must be str or None, not {type(body).__name__}")
        method = method.upper()
        request_headers = dict(headers or {})

        for attempt in range(self._policy.max_retries + 1):
            if not self._connectivity.online:
                self._handle_offline(url, method, body, request_headers, queue_if_offline)

            try:
                response = await self._http.request(
                    method, url, content=body, headers=request_headers
                )
            except httpx.TransportError as exc:
                if attempt >= self._policy.max_retries:
                    logger.warning(
                        "dispatcher.retries_exhausted",
                        extra={
                            "method": method,
                            "url": url,
                            "attempts": attempt + 1,
                            "error_type": type(exc).__name__,
                        },
                    )
                    raise
                await self._backoff(attempt, self._policy.calculate_delay(attempt), method, url, type(exc).__name__)
                continue

            if response.status_code == 429 and attempt < self._policy.max_retries:
                retry_after = self._policy.parse_retry_after(response.headers.get("Retry-After"))
                delay = retry_after if retry_after is not None else self._policy.calculate_delay(attempt)
                await response.aclose()
                await self._backoff(attempt, delay, method, url, "rate_limited")
                continue

            return response

        # The loop always returns or raises on its final attempt.
        raise AssertionError("unreachable")

    def _handle_offline(
        self,
        url: str,
        method: str,
        body: str | None,
        headers: dict[str, str],
        queue_if_offline: bool,
    ) -> NoReturn:
        if queue_if_offline and is_mutating(method) and self._offline_queue is not None:
            self._offline_queue.enqueue(url, method=method, body=body, headers=headers)
            raise OfflineQueuedError(
                code="offline_queued",
                message="オフラインです",
                details={"url": url, "method": method},
            )

        raise NetworkUnavailableError(
            code="network_unavailable",
            message="ネットワーク接続がありません",
            details={"url": url, "method": method},
        )

    async def _backoff(self, attempt: int, delay: float, method: str, url: str, reason: str) -> None:
        logger.warning(
            "dispatcher.retry",
            extra={
                "method": method,
                "url": url,
                "attempt": attempt + 1,
                "max_retries": self._policy.max_retries,
                "delay_s": delay,
                "reason": reason,
            },
        )
        await self._sleep(delay)
