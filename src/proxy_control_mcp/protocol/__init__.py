"""Protocol layer: 5-byte framing, command builders, and payload parsing."""

from .framing import Frame, FrameBuffer, build_frame, parse_frame
from .commands import Command, SteppingMode, build_command
