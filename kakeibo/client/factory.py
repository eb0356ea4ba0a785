"""Factory wiring the client request pipeline together."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Callable

import httpx

from kakeibo.client.api import ApiClient
from kakeibo.client.auth import TokenStore
from kakeibo.client.connectivity import ConnectivityMonitor, Subscription
from kakeibo.client.dispatcher import RetryingDispatcher, RetryPolicy, Sleep
from kakeibo.client.notifications import Notifier, log_notifier
from kakeibo.client.offline_queue import OfflineQueue
from kakeibo.client.storage import AbstractStorage, JsonFileStorage
from kakeibo.core.config import ClientSettings, settings


@dataclass
class RequestPipeline:
    """Every collaborator of the client pipeline, wired together."""

    storage: AbstractStorage
    connectivity: ConnectivityMonitor
    http_client: httpx.AsyncClient
    offline_queue: OfflineQueue
    dispatcher: RetryingDispatcher
    tokens: TokenStore
    api: ApiClient
    subscription: Subscription
    owns_http_client: bool = False

    async def aclose(self) -> None:
        """Stop listening for connectivity changes and release the transport."""
        self.subscription.cancel()
        if self.owns_http_client:
            await self.http_client.aclose()


def create_request_pipeline(
    client_settings: ClientSettings | None = None,
    *,
    storage: AbstractStorage | None = None,
    connectivity: ConnectivityMonitor | None = None,
    http_client: httpx.AsyncClient | None = None,
    clock: Callable[[], float] = time.time,
    notifier: Notifier = log_notifier,
    sleep: Sleep = asyncio.sleep,
) -> RequestPipeline:
    """Build a ready-to-use pipeline.

    Any collaborator may be injected (tests pass in-memory storage, a mocked
    transport and a fake clock); the rest is built from ``ClientSettings``.
    The offline queue is reloaded from storage and subscribed to
    connectivity so it flushes on every offline→online transition.
    """
    cfg = client_settings or settings.client

    storage = storage if storage is not None else JsonFileStorage(cfg.storage_path)
    connectivity = connectivity if connectivity is not None else ConnectivityMonitor()

    owns_http_client = http_client is None
    if http_client is None:
        http_client = httpx.AsyncClient(base_url=cfg.api_base_url, timeout=cfg.timeout_seconds)

    offline_queue = OfflineQueue(
        storage,
        connectivity=connectivity,
        clock=clock,
        notifier=notifier,
        storage_key=cfg.offline_queue_key,
        max_age_seconds=cfg.offline_queue_max_age_hours * 3600,
    )
    dispatcher = RetryingDispatcher(
        http_client,
        connectivity=connectivity,
        offline_queue=offline_queue,
        policy=RetryPolicy(max_retries=cfg.max_retries, delays=tuple(cfg.retry_delays)),
        sleep=sleep,
    )
    offline_queue.bind(dispatcher)
    subscription = offline_queue.subscribe_to(connectivity)

    tokens = TokenStore(storage, key=cfg.token_key)
    api = ApiClient(dispatcher, tokens, base_path=cfg.api_base_path)

    return RequestPipeline(
        storage=storage,
        connectivity=connectivity,
        http_client=http_client,
        offline_queue=offline_queue,
        dispatcher=dispatcher,
        tokens=tokens,
        api=api,
        subscription=subscription,
        owns_http_client=owns_http_client,
    )
