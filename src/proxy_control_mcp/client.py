"""Host-facing client for the proxy control protocol.

The client never starts a receive thread. The host drives it by calling
:meth:`ProxyControlClient.poll_once` regularly (once per tick of its main
loop); each call dispatches at most one inbound frame.

Requests are matched to responses by command code only. There is one
pending slot per code, so issuing a second request of the same kind before
the first is answered silently replaces the first callback. Requests never
time out and are not cleared by disconnecting.

Usage::

    client = ProxyControlClient()
    client.subscribe(EventKind.BUTTON_CHANGE, on_button)
    if client.connect("192.168.4.1", 8090):
        client.request_current_position(lambda pos: print("at", pos))
        while running:
            client.poll_once()
            ...
        client.disconnect()
"""

from __future__ import annotations

import logging
import threading
from typing import Callable

from .dispatch.events import EventKind, EventRouter, Handler
from .dispatch.requests import ConnectionCheckCallback, PendingRequests, ResponseCallback
from .exceptions import PayloadCoercionError, ProxyControlError, UnknownCommandError
from .models.status import ConnectionState
from .protocol.commands import (
    Command,
    SteppingMode,
    UNSOLICITED_COMMANDS,
    build_check_expected_time,
    build_check_position,
    build_check_speed,
    build_check_target_reached,
    build_disconnect,
    build_recalibrate,
    build_save_power,
    build_set_speed,
    build_set_stepping_mode,
    build_set_target_position,
    build_version_info,
    lookup_command,
)
from .protocol.framing import Frame, FrameBuffer, build_frame
from .protocol.parser import coerce_payload
from .transport.tcp_connection import TCPConnection

logger = logging.getLogger(__name__)

ConnectCallback = Callable[[bool], None]
DisconnectCallback = Callable[[], None]


class ProxyControlClient:
    """Remote control for a single proxy over one TCP connection.

    Thread model: requests, subscriptions and :meth:`poll_once` are meant to
    be called from the host thread. The ``*_async`` variants run on a
    background thread and call their callback (and the matching
    subscribers) from that thread; the shared tables are locked, but any
    host state touched from those callbacks is the host's to synchronize.
    """

    def __init__(self, connection: TCPConnection | None = None) -> None:
        self._connection = connection if connection is not None else TCPConnection()
        self._requests = PendingRequests()
        self._events = EventRouter()
        self._buffer = FrameBuffer()
        self._buffer_lock = threading.Lock()

    def __enter__(self) -> ProxyControlClient:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @property
    def connected(self) -> bool:
        return self._connection.connected

    @property
    def state(self) -> ConnectionState:
        return self._connection.state

    # ─── CONNECTION LIFECYCLE ─────────────────────────────────────────

    def connect(self, host: str, port: int, callback: ConnectCallback | None = None) -> bool:
        """Connect to the proxy. Blocks until connected or failed.

        ``callback`` (one-shot) and then the ``CONNECTION_ATTEMPT``
        subscribers receive the result.

        Returns:
            True on success. Failures are reported as False, never raised.
        """
        success = self._open(host, port)
        if callback is not None:
            self._invoke(callback, success)
        self._events.emit(EventKind.CONNECTION_ATTEMPT, success)
        return success

    def connect_async(
        self, host: str, port: int, callback: ConnectCallback | None = None
    ) -> threading.Thread:
        """Run :meth:`connect` on a background thread and return the thread."""
        return self._run_in_background("proxy-connect", self.connect, host, port, callback)

    def reconnect(self, host: str, port: int, callback: ConnectCallback | None = None) -> bool:
        """Disconnect (if connected), then connect again.

        ``callback`` and then the ``RECONNECTION_ATTEMPT`` subscribers
        receive the result.
        """
        self._close()
        success = self._open(host, port)
        if callback is not None:
            self._invoke(callback, success)
        self._events.emit(EventKind.RECONNECTION_ATTEMPT, success)
        return success

    def reconnect_async(
        self, host: str, port: int, callback: ConnectCallback | None = None
    ) -> threading.Thread:
        """Run :meth:`reconnect` on a background thread and return the thread."""
        return self._run_in_background("proxy-reconnect", self.reconnect, host, port, callback)

    def disconnect(self, callback: DisconnectCallback | None = None) -> None:
        """Notify the proxy, then close the socket. No-op when not connected.

        ``callback`` runs once the call completes, connected or not. The
        ``DISCONNECTION`` subscribers run only if a connection was closed.
        """
        closed = self._close()
        if callback is not None:
            self._invoke(callback)
        if closed:
            self._events.emit(EventKind.DISCONNECTION)

    def disconnect_async(self, callback: DisconnectCallback | None = None) -> threading.Thread:
        """Run :meth:`disconnect` on a background thread and return the thread."""
        return self._run_in_background("proxy-disconnect", self.disconnect, callback)

    def close(self) -> None:
        """Alias for :meth:`disconnect`, for context manager use."""
        self.disconnect()

    def _open(self, host: str, port: int) -> bool:
        with self._buffer_lock:
            self._buffer.clear()
        return self._connection.open(host, port)

    def _close(self) -> bool:
        if not self._connection.connected:
            return False
        self._connection.write(build_disconnect())
        self._connection.close()
        with self._buffer_lock:
            self._buffer.clear()
        return True

    def _run_in_background(self, name: str, target: Callable, *args) -> threading.Thread:
        thread = threading.Thread(target=target, args=args, name=name, daemon=True)
        thread.start()
        return thread

    # ─── SUBSCRIPTIONS ────────────────────────────────────────────────

    def subscribe(self, kind: EventKind, handler: Handler) -> Handler:
        """Register a persistent handler for ``kind``. Returns the handler."""
        return self._events.subscribe(kind, handler)

    def unsubscribe(self, kind: EventKind, handler: Handler) -> bool:
        """Remove a handler. Returns False if it was not subscribed."""
        return self._events.unsubscribe(kind, handler)

    # ─── REQUESTS ─────────────────────────────────────────────────────

    def send(self, command: Command | int, payload: float = 0.0) -> bool:
        """Send a raw frame. Silently skipped when not connected.

        Returns:
            True if the frame was written to the socket. False if not
            connected or the frame could not be encoded.
        """
        try:
            frame = build_frame(int(command), payload)
        except ValueError as e:
            logger.debug("Frame not sent: %s", e)
            return False
        return self._connection.write(frame)

    def is_pending(self, command: Command) -> bool:
        """Return True if a callback is waiting for a ``command`` response."""
        return self._requests.is_pending(command)

    @property
    def connection_check_pending(self) -> bool:
        return self._requests.connection_check_pending

    def check_connection(self, callback: ConnectionCheckCallback) -> bool:
        """Probe the proxy with a position query.

        ``callback(True)`` runs when the next position response arrives.
        Nothing is reported if the proxy never answers.
        """
        self._requests.register_connection_check(callback)
        return self._connection.write(build_check_position())

    def request_current_position(self, callback: Callable[[float], None]) -> bool:
        """Ask for the current position (0.0-1.0)."""
        return self._request(Command.CHECK_CURRENT_POSITION, callback, build_check_position)

    def request_new_target(self, callback: Callable[[int], None], target: float) -> bool:
        """Move toward ``target`` (0.0-1.0).

        The proxy answers with the expected travel time, which ``callback``
        receives as an integer. Out-of-range targets are not sent and their
        callback never runs.
        """
        return self._request(
            Command.SEND_NEW_TARGET_POSITION, callback, build_set_target_position, target
        )

    def request_new_speed(self, callback: Callable[[float], None], speed: int) -> bool:
        return self._request(Command.SEND_NEW_SPEED, callback, build_set_speed, speed)

    def request_target_reached(self, callback: Callable[[bool], None]) -> bool:
        return self._request(Command.CHECK_IS_TARGET_REACHED, callback, build_check_target_reached)

    def request_current_speed(self, callback: Callable[[int], None]) -> bool:
        return self._request(Command.CHECK_CURRENT_SPEED, callback, build_check_speed)

    def request_recalibration(self, callback: Callable[[float], None]) -> bool:
        return self._request(Command.RECALIBRATE, callback, build_recalibrate)

    def request_expected_time(self, callback: Callable[[int], None], position: float) -> bool:
        """Ask how long travelling to ``position`` would take, as an integer."""
        return self._request(
            Command.CHECK_EXPECTED_TIME, callback, build_check_expected_time, position
        )

    def request_save_power(self, callback: Callable[[float], None]) -> bool:
        """Release the motor. ``callback`` gets the ack payload."""
        return self._request(Command.SEND_SAVE_POWER, callback, build_save_power)

    def request_stepping_mode(
        self, callback: Callable[[float], None], mode: SteppingMode | float
    ) -> bool:
        return self._request(Command.STEPPING_MODE, callback, build_set_stepping_mode, mode)

    def request_version_info(self, callback: Callable[[float], None]) -> bool:
        return self._request(Command.VERSION_INFO, callback, build_version_info)

    def _request(
        self, command: Command, callback: ResponseCallback, build: Callable[..., bytes], *args
    ) -> bool:
        # Arguments that cannot be encoded are never sent or registered
        try:
            frame = build(*args)
        except (ValueError, OverflowError) as e:
            logger.debug("%s request not sent: %s", command.name, e)
            return False
        self._requests.register(command, callback)
        return self._connection.write(frame)

    # ─── POLL STEP ────────────────────────────────────────────────────

    def poll_once(self) -> Frame | None:
        """Read and dispatch at most one frame. Never blocks.

        Bytes of a frame that has not fully arrived are kept until a later
        call completes it.

        Returns:
            The frame that was dispatched, or None.
        """
        with self._buffer_lock:
            if not self._connection.connected:
                return None
            data = self._connection.read(self._buffer.missing)
            if data:
                self._buffer.feed(data)
            frame = self._buffer.pop()
        if frame is not None:
            self._dispatch(frame)
        return frame

    def _dispatch(self, frame: Frame) -> None:
        command = lookup_command(frame.command)
        if command is None:
            logger.warning("Unknown command (%d) received from proxy, dropped", frame.command)
            self._report(UnknownCommandError(frame.command, frame.payload))
            return

        if command in UNSOLICITED_COMMANDS:
            self._route_button(command, frame.payload)
            return

        try:
            value = coerce_payload(command, frame.payload)
        except PayloadCoercionError as e:
            logger.warning("%s response dropped: %s", command.name, e)
            self._report(e)
            return

        callback = self._requests.pop(command)
        if callback is not None:
            self._invoke(callback, value)
            logger.debug("%s response received, callback executed", command.name)
        else:
            logger.debug("%s response received with no pending request", command.name)

        if command is Command.CHECK_CURRENT_POSITION:
            check = self._requests.pop_connection_check()
            if check is not None:
                self._invoke(check, True)
                logger.debug("Connection to proxy is alive")

    def _route_button(self, command: Command, position: float) -> None:
        now_up = command is Command.EVENT_BUTTON_UP
        self._events.emit(EventKind.BUTTON_UP if now_up else EventKind.BUTTON_DOWN, position)
        self._events.emit(EventKind.BUTTON_CHANGE, now_up, position)
        logger.debug("Button %s at %r", "up" if now_up else "down", position)

    def _report(self, error: ProxyControlError) -> None:
        self._events.emit(EventKind.ERROR, error)

    @staticmethod
    def _invoke(callback: Callable, *args) -> None:
        try:
            callback(*args)
        except Exception:
            logger.exception("Callback %r failed", callback)
