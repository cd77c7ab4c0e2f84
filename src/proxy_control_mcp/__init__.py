"""Client and MCP server for remote control of a motorized proxy actuator."""

from .client import ProxyControlClient
from .dispatch.events import EventKind
from .models.status import ConnectionState, ProxyStatus
from .protocol.commands import Command, SteppingMode
from .protocol.framing import FRAME_SIZE, Frame, build_frame, parse_frame
from .exceptions import (
    MalformedFrameError,
    PayloadCoercionError,
    ProxyControlError,
    UnknownCommandError,
)

__version__ = "0.1.0"
