"""
Proxy control library exceptions.

None of these escape the client's connect, request or poll operations; they
are raised by the low-level helpers and published on the client's error
channel.
"""


class ProxyControlError(Exception):
    """Base exception for proxy protocol errors"""

    def __init__(self, message: str, raw: bytes = b""):
        super().__init__(message)
        self.raw = raw


class MalformedFrameError(ProxyControlError, ValueError):
    """Raised when inbound data is not exactly one frame"""
    pass


class UnknownCommandError(ProxyControlError):
    """Raised when a frame carries a command code outside the protocol"""

    def __init__(self, command: int, payload: float):
        super().__init__(f"Unknown command ({command}) received from proxy")
        self.command = command
        self.payload = payload


class PayloadCoercionError(ProxyControlError, ValueError):
    """Raised when a response payload cannot be converted for its callback"""
    pass
