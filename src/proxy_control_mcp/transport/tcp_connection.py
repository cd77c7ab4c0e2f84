"""TCP connection to the proxy.

The proxy listens for a single client on a plain TCP stream. Every message
in both directions is one fixed-size frame; see :mod:`..protocol.framing`.
"""

from __future__ import annotations

import logging
import select
import socket
import threading

from ..models.status import ConnectionState

logger = logging.getLogger(__name__)

DEFAULT_PORT = 8090


class TCPConnection:
    """Owns the socket to the proxy.

    None of the methods raise on socket failures: ``open`` reports False,
    ``write`` reports False and drops the socket, ``read`` reports None.

    Usage::

        conn = TCPConnection()
        if conn.open("192.168.4.1", 8090):
            conn.write(frame_bytes)
            data = conn.read(5)
            conn.close()
    """

    def __init__(self, connect_timeout: float | None = None) -> None:
        self._connect_timeout = connect_timeout
        self._sock: socket.socket | None = None
        self._endpoint: tuple[str, int] | None = None
        self._lock = threading.RLock()

    @property
    def connected(self) -> bool:
        return self._sock is not None

    @property
    def state(self) -> ConnectionState:
        return ConnectionState.CONNECTED if self.connected else ConnectionState.DISCONNECTED

    @property
    def endpoint(self) -> tuple[str, int] | None:
        """The (host, port) of the last successful open."""
        return self._endpoint

    def open(self, host: str, port: int) -> bool:
        """Open a TCP stream to the proxy. Blocks until connected or failed.

        An already open socket is closed first.

        Returns:
            True on success, False on any socket-level failure.
        """
        with self._lock:
            self._drop()
            try:
                sock = socket.create_connection((host, port), timeout=self._connect_timeout)
            except (OSError, ValueError, OverflowError, TypeError) as e:
                logger.warning("Could not connect to proxy at %s:%s: %s", host, port, e)
                return False

            sock.settimeout(None)
            try:
                # Frames are tiny and latency matters more than throughput
                sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            except OSError as e:
                logger.debug("Could not set TCP_NODELAY: %s", e)

            self._sock = sock
            self._endpoint = (host, port)
            logger.info("Connected to proxy at %s:%s", host, port)
            return True

    def close(self) -> None:
        """Shut the stream down in both directions and close it."""
        with self._lock:
            if self._sock is None:
                return
            try:
                self._sock.shutdown(socket.SHUT_RDWR)
            except OSError as e:
                logger.debug("Error shutting down socket: %s", e)
            self._drop()
            logger.info("Disconnected from proxy")

    def write(self, data: bytes) -> bool:
        """Send ``data`` in full.

        Returns:
            True if sent. False if not connected or the send failed; a
            failed send also closes the socket.
        """
        with self._lock:
            if self._sock is None:
                logger.debug("Not connected, dropping %d outbound bytes", len(data))
                return False
            try:
                self._sock.sendall(data)
            except OSError as e:
                logger.warning("Send to proxy failed: %s", e)
                self._drop()
                return False
            logger.debug("Sent %s", data.hex(" "))
            return True

    def available(self) -> bool:
        """Return True if bytes can be read without blocking."""
        with self._lock:
            if self._sock is None:
                return False
            try:
                readable, _, _ = select.select([self._sock], [], [], 0)
            except (OSError, ValueError) as e:
                logger.debug("Readiness check failed: %s", e)
                return False
            return bool(readable)

    def read(self, max_bytes: int) -> bytes | None:
        """Read up to ``max_bytes`` without blocking.

        Returns:
            The bytes read, or None if nothing was available. If the proxy
            closed the stream the connection is dropped and None returned.
        """
        with self._lock:
            if not self.available():
                return None
            try:
                data = self._sock.recv(max_bytes)
            except OSError as e:
                logger.warning("Receive from proxy failed: %s", e)
                self._drop()
                return None
            if not data:
                logger.info("Proxy closed the connection")
                self._drop()
                return None
            logger.debug("Received %d bytes: %s", len(data), data.hex(" "))
            return data

    def _drop(self) -> None:
        if self._sock is None:
            return
        try:
            self._sock.close()
        except OSError as e:
            logger.debug("Error closing socket: %s", e)
        finally:
            self._sock = None
