"""In-memory rate limit store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state. Concurrent updates of the
  same key within a process are serialized; across processes they are not.
"""

from __future__ import annotations

import threading

from kakeibo.adapters.rate_limit.base import AbstractRateLimitStore, RateLimitRecord


class InMemoryRateLimitStore(AbstractRateLimitStore):
    """Dictionary-backed store shared by every limiter of a process.

    Keys are namespaced by the limiters themselves (``"auth:1.2.3.4"``), so
    one store can hold the records of several route classes.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._records: dict[str, RateLimitRecord] = {}

    def get(self, key: str) -> RateLimitRecord | None:
        with self._lock:
            record = self._records.get(key)
            if record is None:
                return None
            return RateLimitRecord(count=record.count, window_start=record.window_start)

    def reset(self, key: str, now: float) -> RateLimitRecord:
        with self._lock:
            record = RateLimitRecord(count=1, window_start=now)
            self._records[key] = record
            return RateLimitRecord(count=record.count, window_start=record.window_start)

    def increment(self, key: str) -> RateLimitRecord:
        with self._lock:
            record = self._records[key]
            record.count += 1
            return RateLimitRecord(count=record.count, window_start=record.window_start)

    def hit(self, key: str, now: float, window_seconds: float) -> RateLimitRecord:
        with self._lock:
            record = self._records.get(key)
            if record is None or now - record.window_start > window_seconds:
                record = RateLimitRecord(count=1, window_start=now)
                self._records[key] = record
            else:
                record.count += 1
            return RateLimitRecord(count=record.count, window_start=record.window_start)

    def sweep(self, now: float, window_seconds: float) -> int:
        with self._lock:
            expired = [
                key
                for key, record in self._records.items()
                if now - record.window_start > window_seconds
            ]
            for key in expired:
                del self._records[key]
            return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
