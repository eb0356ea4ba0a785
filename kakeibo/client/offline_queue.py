"""Durable queue of mutating requests issued while offline.

Entries are persisted after every change and reloaded at start-up, then
replayed in enqueue order when connectivity returns. Replay never reorders
or deduplicates entries.

Only ``enqueue`` and ``flush`` mutate the queue. ``flush`` is guarded by an
in-progress flag: an online signal arriving mid-flush is dropped, and the
next online transition picks up whatever is left.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Protocol

import httpx
from pydantic import ValidationError

from kakeibo.client.connectivity import ConnectivityMonitor, Subscription
from kakeibo.client.notifications import (
    DISCARDED_MESSAGE,
    QUEUED_MESSAGE,
    SYNCED_MESSAGE,
    Notifier,
    log_notifier,
)
from kakeibo.client.storage import AbstractStorage
from kakeibo.schemas.queue import QueuedRequest, QueuedRequestList

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_KEY = "offlineQueue"
DEFAULT_MAX_AGE_SECONDS = 24 * 60 * 60


class RequestSender(Protocol):
    async def dispatch(
        self,
        url: str,
        *,
        method: str = "GET",
        body: str | None = None,
        headers: dict[str, str] | None = None,
        queue_if_offline: bool = True,
    ) -> httpx.Response: ...


@dataclass(frozen=True)
class FlushResult:
    """Counts from one flush pass.

    ``skipped`` is True when the pass did not run (already flushing, empty
    queue, or offline).
    """

    delivered: int = 0
    retained: int = 0
    discarded: int = 0
    skipped: bool = False


def _is_transient(response: httpx.Response) -> bool:
    return response.status_code == 429 or response.status_code >= 500


class OfflineQueue:
    """Ordered, persisted list of ``QueuedRequest``."""

    def __init__(
        self,
        storage: AbstractStorage,
        *,
        connectivity: ConnectivityMonitor,
        clock: Callable[[], float] = time.time,
        notifier: Notifier = log_notifier,
        storage_key: str = DEFAULT_STORAGE_KEY,
        max_age_seconds: float = DEFAULT_MAX_AGE_SECONDS,
    ) -> None:
        self._storage = storage
        self._connectivity = connectivity
        self._clock = clock
        self._notify = notifier
        self._storage_key = storage_key
        self._max_age_seconds = max_age_seconds
        self._sender: RequestSender | None = None
        self._flushing = False
        self._queue: list[QueuedRequest] = self._load()

    @property
    def pending(self) -> tuple[QueuedRequest, ...]:
        return tuple(self._queue)

    @property
    def flushing(self) -> bool:
        return self._flushing

    def __len__(self) -> int:
        return len(self._queue)

    def bind(self, sender: RequestSender) -> None:
        """Attach the dispatcher used to replay entries."""
        self._sender = sender

    def subscribe_to(self, connectivity: ConnectivityMonitor) -> Subscription:
        """Flush whenever ``connectivity`` reports coming back online."""
        return connectivity.subscribe(self.flush)

    def _load(self) -> list[QueuedRequest]:
        raw = self._storage.get_item(self._storage_key)
        if not raw:
            return []
        try:
            return QueuedRequestList.validate_json(raw)
        except ValidationError:
            logger.warning("offline_queue.load_failed", extra={"storage_key": self._storage_key})
            return []

    def _save(self) -> None:
        self._storage.set_item(
            self._storage_key,
            QueuedRequestList.dump_json(self._queue).decode("utf-8"),
        )

    def enqueue(
        self,
        url: str,
        *,
        method: str,
        body: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> QueuedRequest:
        """Append a request stamped with the current time and persist the queue."""
        entry = QueuedRequest(
            url=url,
            method=method.upper(),
            body=body,
            headers=dict(headers or {}),
            timestamp=int(self._clock() * 1000),
        )
        self._queue.append(entry)
        self._save()
        logger.info(
            "offline_queue.enqueued",
            extra={"method": entry.method, "url": entry.url, "queue_size": len(self._queue)},
        )
        self._notify(QUEUED_MESSAGE, "warning")
        return entry

    async def flush(self) -> FlushResult:
        """Replay queued requests in order.

        Delivered entries are dropped. Entries that fail (an exception, or a
        429/5xx response) are kept for the next flush unless they have been
        waiting longer than the maximum age, in which case they are discarded.

        Returns:
            FlushResult with per-outcome counts.
        """
        if self._flushing or not self._queue or not self._connectivity.online:
            return FlushResult(skipped=True)
        if self._sender is None:
            raise RuntimeError("OfflineQueue.flush() called before bind()")

        self._flushing = True
        try:
            snapshot = list(self._queue)
            retained: list[QueuedRequest] = []
            delivered = discarded = 0

            for entry in snapshot:
                if await self._replay(entry):
                    delivered += 1
                    continue

                if entry.age_seconds(self._clock()) < self._max_age_seconds:
                    retained.append(entry)
                else:
                    discarded += 1
                    logger.warning(
                        "offline_queue.discarded",
                        extra={"method": entry.method, "url": entry.url, "enqueued_at_ms": entry.timestamp},
                    )

            # Requests queued while this pass was awaiting keep their place at the end.
            self._queue = retained + self._queue[len(snapshot):]
            self._save()
        finally:
            self._flushing = False

        logger.info(
            "offline_queue.flush",
            extra={
                "delivered": delivered,
                "retained": len(retained),
                "discarded": discarded,
                "queue_size": len(self._queue),
            },
        )
        if discarded:
            self._notify(DISCARDED_MESSAGE.format(count=discarded), "error")
        if not retained and not discarded and not self._queue:
            self._notify(SYNCED_MESSAGE, "success")

        return FlushResult(delivered=delivered, retained=len(retained), discarded=discarded)

    async def _replay(self, entry: QueuedRequest) -> bool:
        try:
            response = await self._sender.dispatch(
                entry.url,
                method=entry.method,
                body=entry.body,
                headers=entry.headers,
                queue_if_offline=False,
            )
        except Exception as exc:
            logger.info(
                "offline_queue.replay_failed",
                extra={"method": entry.method, "url": entry.url, "error_type": type(exc).__name__},
            )
            return False

        if _is_transient(response):
            logger.info(
                "offline_queue.replay_failed",
                extra={"method": entry.method, "url": entry.url, "status_code": response.status_code},
            )
            return False
        return True
