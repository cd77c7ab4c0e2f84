"""Frame builder and parser for the fixed 5-byte proxy protocol.

Frame layout::

    +---------+----------------------------+
    | Command |          Payload           |
    | 1 byte  | 4 bytes, float32 (LE)      |
    +---------+----------------------------+

- Command: operation code, see :class:`~.commands.Command`
- Payload: IEEE-754 single precision, little-endian
- No checksum, no preamble: frame boundaries come from the fixed size only
"""

from __future__ import annotations

import struct
from dataclasses import dataclass

from ..exceptions import MalformedFrameError

FRAME_SIZE = 5
FRAME_FORMAT = "<Bf"

_FRAME_STRUCT = struct.Struct(FRAME_FORMAT)


@dataclass(frozen=True)
class Frame:
    """A decoded protocol frame."""

    command: int
    payload: float

    def __repr__(self) -> str:
        return f"Frame(command={self.command}, payload={self.payload!r})"


def build_frame(command: int, payload: float = 0.0) -> bytes:
    """Build a 5-byte frame.

    Args:
        command: Single-byte command code.
        payload: Value sent as a single-precision float.

    Returns:
        The encoded frame, ready to write to the socket.

    Raises:
        ValueError: If ``command`` does not fit in one byte or ``payload``
            is too large for a single-precision float.
    """
    if not 0 <= command <= 0xFF:
        raise ValueError(f"Command must be 0-255, got {command}")
    try:
        return _FRAME_STRUCT.pack(command, payload)
    except OverflowError as e:
        raise ValueError(f"Payload {payload!r} does not fit in a float: {e}") from e


def parse_frame(data: bytes) -> Frame:
    """Parse exactly one frame.

    The command byte is not checked against the known command set; unknown
    codes are reported further up by the client.

    Raises:
        MalformedFrameError: If ``data`` is not exactly ``FRAME_SIZE`` bytes.
    """
    if len(data) != FRAME_SIZE:
        raise MalformedFrameError(
            f"Frame must be {FRAME_SIZE} bytes, got {len(data)}", raw=bytes(data)
        )
    command, payload = _FRAME_STRUCT.unpack(data)
    return Frame(command=command, payload=payload)


class FrameBuffer:
    """Reassembles frames from stream reads.

    TCP may deliver a frame in several pieces; bytes are kept here until a
    whole frame is available instead of being discarded.

    Usage::

        buf = FrameBuffer()
        buf.feed(sock.recv(buf.missing))
        frame = buf.pop()
    """

    def __init__(self) -> None:
        self._data = bytearray()

    def __len__(self) -> int:
        return len(self._data)

    @property
    def missing(self) -> int:
        """Bytes still needed to complete the current frame."""
        return FRAME_SIZE - len(self._data) % FRAME_SIZE

    def feed(self, data: bytes) -> None:
        self._data += data

    def pop(self) -> Frame | None:
        """Remove and return the oldest complete frame, or None."""
        if len(self._data) < FRAME_SIZE:
            return None
        chunk = bytes(self._data[:FRAME_SIZE])
        del self._data[:FRAME_SIZE]
        return parse_frame(chunk)

    def clear(self) -> None:
        self._data.clear()
