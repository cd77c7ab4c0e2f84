"""Inbound routing: one-shot request slots and persistent event subscribers."""

from .requests import PendingRequests
from .events import EventKind, EventRouter
