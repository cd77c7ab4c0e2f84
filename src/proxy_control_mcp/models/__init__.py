"""Data models for connection state and device status."""

from .status import ConnectionState, ProxyStatus
