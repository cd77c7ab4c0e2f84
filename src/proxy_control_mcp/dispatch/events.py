"""Persistent multi-subscriber event lists.

Unlike request callbacks, subscribers stay registered across deliveries
until they are removed with :meth:`EventRouter.unsubscribe`.
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)

Handler = Callable[..., None]


class EventKind(Enum):
    """Event kinds and the arguments their handlers receive."""

    CONNECTION_ATTEMPT = "connection_attempt"      # (success: bool)
    RECONNECTION_ATTEMPT = "reconnection_attempt"  # (success: bool)
    DISCONNECTION = "disconnection"                # ()
    BUTTON_DOWN = "button_down"                    # (position: float)
    BUTTON_UP = "button_up"                        # (position: float)
    BUTTON_CHANGE = "button_change"                # (now_up: bool, position: float)
    ERROR = "error"                                # (error: ProxyControlError)


class EventRouter:
    """Ordered subscriber lists, one per :class:`EventKind`.

    Handlers run in registration order on the thread calling :meth:`emit`.
    A handler that raises is logged and the remaining handlers still run.
    """

    def __init__(self) -> None:
        self._subscribers: dict[EventKind, list[Handler]] = {kind: [] for kind in EventKind}
        self._lock = threading.Lock()

    def subscribe(self, kind: EventKind, handler: Handler) -> Handler:
        """Add ``handler`` to the list for ``kind`` and return it."""
        with self._lock:
            self._subscribers[kind].append(handler)
        return handler

    def unsubscribe(self, kind: EventKind, handler: Handler) -> bool:
        """Remove the first registration of ``handler`` for ``kind``.

        Returns:
            True if the handler was subscribed.
        """
        with self._lock:
            try:
                self._subscribers[kind].remove(handler)
            except ValueError:
                return False
        return True

    def subscribers(self, kind: EventKind) -> list[Handler]:
        with self._lock:
            return list(self._subscribers[kind])

    def emit(self, kind: EventKind, *args) -> int:
        """Deliver ``args`` to every subscriber of ``kind``.

        The list is copied first, so handlers may (un)subscribe while being
        called; changes apply from the next emit.

        Returns:
            The number of handlers that completed without raising.
        """
        delivered = 0
        for handler in self.subscribers(kind):
            try:
                handler(*args)
            except Exception:
                logger.exception("%s handler %r failed", kind.value, handler)
            else:
                delivered += 1
        return delivered
