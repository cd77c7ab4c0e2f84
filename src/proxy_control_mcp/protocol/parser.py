"""Response payload parsing.

Every response carries a single float; these helpers convert it into the
type the matching callback expects.
"""

from __future__ import annotations

import math
import struct

from ..exceptions import PayloadCoercionError
from .commands import Command

# The firmware acknowledges commands by sending the bytes of the C string
# "OK" reinterpreted as a float; only the first two bytes are reliable.
ACK_PREFIX = b"OK"


def _to_int(payload: float, what: str) -> int:
    if not math.isfinite(payload):
        raise PayloadCoercionError(f"{what} payload is not a finite number: {payload!r}")
    return int(payload)


def parse_target_reached(payload: float) -> bool:
    """Any non-zero payload means the target was reached."""
    return payload != 0


def parse_speed(payload: float) -> int:
    return _to_int(payload, "Speed")


def parse_expected_time(payload: float) -> int:
    """Expected travel time, truncated toward zero."""
    return _to_int(payload, "Expected time")


def is_ack(payload: float) -> bool:
    """Return True if ``payload`` is the firmware's "OK" acknowledgement."""
    return struct.pack("<f", payload)[:2] == ACK_PREFIX


# Commands whose callbacks receive something other than the raw float
PAYLOAD_COERCIONS = {
    # The proxy answers a new target with the expected travel time
    Command.SEND_NEW_TARGET_POSITION: parse_expected_time,
    Command.CHECK_IS_TARGET_REACHED: parse_target_reached,
    Command.CHECK_CURRENT_SPEED: parse_speed,
    Command.CHECK_EXPECTED_TIME: parse_expected_time,
}


def coerce_payload(command: Command, payload: float):
    """Convert ``payload`` to the callback type for ``command``.

    Raises:
        PayloadCoercionError: If the payload cannot be converted.
    """
    coerce = PAYLOAD_COERCIONS.get(command)
    return coerce(payload) if coerce else payload

