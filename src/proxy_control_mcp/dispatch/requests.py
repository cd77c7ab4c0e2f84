"""One-shot response callbacks, one slot per command.

The protocol carries no request id, so a response can only be matched to
its request by command code. Each code therefore has a single slot:
registering a callback for a code that already has one replaces it, and the
replaced callback is never invoked.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable

from ..protocol.commands import Command

logger = logging.getLogger(__name__)

ResponseCallback = Callable[[Any], None]
ConnectionCheckCallback = Callable[[bool], None]


class PendingRequests:
    """Thread-safe table of ``Command -> callback`` one-shot slots.

    The connection check has its own slot. It is answered by any position
    response, since the position query doubles as the liveness probe.
    """

    def __init__(self) -> None:
        self._slots: dict[Command, ResponseCallback] = {}
        self._connection_check: ConnectionCheckCallback | None = None
        self._lock = threading.Lock()

    def register(self, command: Command, callback: ResponseCallback) -> ResponseCallback | None:
        """Put ``callback`` in the slot for ``command``.

        Returns:
            The callback that was replaced, if any.
        """
        with self._lock:
            replaced = self._slots.get(command)
            self._slots[command] = callback
        if replaced is not None:
            logger.debug("Replaced pending %s callback", command.name)
        return replaced

    def register_connection_check(self, callback: ConnectionCheckCallback) -> None:
        with self._lock:
            self._connection_check = callback

    def pop(self, command: Command) -> ResponseCallback | None:
        """Remove and return the callback waiting on ``command``."""
        with self._lock:
            return self._slots.pop(command, None)

    def pop_connection_check(self) -> ConnectionCheckCallback | None:
        with self._lock:
            callback, self._connection_check = self._connection_check, None
            return callback

    def is_pending(self, command: Command) -> bool:
        with self._lock:
            return command in self._slots

    @property
    def connection_check_pending(self) -> bool:
        with self._lock:
            return self._connection_check is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._slots) + (self._connection_check is not None)
