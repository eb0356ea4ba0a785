"""Connectivity signal for the client.

Plays the role of the browser's ``navigator.onLine`` flag and ``online``
event: the pipeline reads ``online`` before each attempt, and listeners
subscribed here run when the state flips from offline to online.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

Listener = Callable[[], Awaitable[object]]


class Subscription:
    """Handle returned by ``ConnectivityMonitor.subscribe``."""

    def __init__(self, monitor: "ConnectivityMonitor", listener: Listener) -> None:
        self._monitor = monitor
        self._listener = listener
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        """Stop receiving online notifications. Safe to call more than once."""
        if not self._active:
            return
        self._active = False
        self._monitor._remove(self._listener)


class ConnectivityMonitor:
    """Tracks whether the network is believed to be reachable."""

    def __init__(self, online: bool = True) -> None:
        self._online = online
        self._listeners: list[Listener] = []

    @property
    def online(self) -> bool:
        return self._online

    def subscribe(self, listener: Listener) -> Subscription:
        """Register an async callable to run on each offline→online transition."""
        self._listeners.append(listener)
        return Subscription(self, listener)

    def _remove(self, listener: Listener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    async def set_online(self, online: bool) -> None:
        """Record the connectivity state, notifying listeners when it comes back.

        Listeners run one after another in subscription order. A failing
        listener is logged and does not stop the others.
        """
        came_online = online and not self._online
        self._online = online
        logger.info("connectivity.changed", extra={"online": online})

        if not came_online:
            return

        for listener in list(self._listeners):
            try:
                await listener()
            except Exception:
                logger.exception("connectivity.listener_failed")
