"""Pydantic schemas for the persisted offline queue."""

from __future__ import annotations

from pydantic import BaseModel, Field, TypeAdapter

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


class QueuedRequest(BaseModel):
    """A mutating HTTP call that could not be delivered while offline.

    Timestamps are epoch milliseconds so entries stay comparable with the
    queues written by the browser front end.
    """

    url: str = Field(..., description="Target URL, absolute or relative to the client base URL.")
    method: str = Field(..., description="HTTP method, upper case.")
    body: str | None = Field(None, description="Serialized request body.")
    headers: dict[str, str] = Field(default_factory=dict, description="Request headers.")
    timestamp: int = Field(..., description="Enqueue time in epoch milliseconds.")

    def age_seconds(self, now: float) -> float:
        """Seconds elapsed between enqueueing and ``now`` (epoch seconds)."""
        return now - self.timestamp / 1000


QueuedRequestList = TypeAdapter(list[QueuedRequest])


def is_mutating(method: str) -> bool:
    return method.upper() not in SAFE_METHODS
