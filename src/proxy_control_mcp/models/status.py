"""Connection state and device status models."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum


class ConnectionState(Enum):
    """Observable connection states. Connecting is never observable."""

    DISCONNECTED = "disconnected"
    CONNECTED = "connected"


@dataclass
class ProxyStatus:
    """Last values reported by the proxy, as seen by the front end."""

    host: str = ""
    port: int = 0
    state: ConnectionState = ConnectionState.DISCONNECTED
    position: float | None = None
    target: float | None = None
    speed: int | None = None
    target_reached: bool | None = None
    stepping_mode: str | None = None
    version: float | None = None

    def to_dict(self) -> dict:
        result = asdict(self)
        result["state"] = self.state.value
        return result
