"""Transport layer: the TCP stream to the proxy."""

from .tcp_connection import DEFAULT_PORT, TCPConnection
