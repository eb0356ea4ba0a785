"""Client request pipeline: retries, offline queue and API facade."""

from __future__ import annotations

from kakeibo.client.api import ApiClient
from kakeibo.client.connectivity import ConnectivityMonitor, Subscription
from kakeibo.client.dispatcher import RetryingDispatcher, RetryPolicy
from kakeibo.client.factory import RequestPipeline, create_request_pipeline
from kakeibo.client.offline_queue import FlushResult, OfflineQueue
from kakeibo.client.storage import AbstractStorage, JsonFileStorage, MemoryStorage

__all__ = [
    "AbstractStorage",
    "ApiClient",
    "ConnectivityMonitor",
    "FlushResult",
    "JsonFileStorage",
    "MemoryStorage",
    "OfflineQueue",
    "RequestPipeline",
    "RetryPolicy",
    "RetryingDispatcher",
    "Subscription",
    "create_request_pipeline",
]
