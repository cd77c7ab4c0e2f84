"""Command codes and request builders.

Each command is identified by a single-byte code used for both the request
sent by the client and the response sent back by the proxy. Button events
are the exception: the proxy sends them unprompted.
"""

from __future__ import annotations

from enum import IntEnum

from .framing import build_frame


class Command(IntEnum):
    """Command codes, in wire order."""

    CHECK_CURRENT_POSITION = 0
    SEND_NEW_TARGET_POSITION = 1
    SEND_NEW_SPEED = 2
    CHECK_IS_TARGET_REACHED = 3
    CHECK_CURRENT_SPEED = 4
    RECALIBRATE = 5
    CHECK_EXPECTED_TIME = 6
    EVENT_BUTTON_DOWN = 7
    EVENT_BUTTON_UP = 8
    SEND_SAVE_POWER = 9
    DISCONNECT = 10
    STEPPING_MODE = 11
    VERSION_INFO = 12


class SteppingMode(IntEnum):
    """Stepper driver modes understood by the proxy firmware."""

    SINGLE = 0
    DOUBLE = 1
    INTERLEAVE = 2
    MICROSTEPPING = 3


# Sent by the proxy without a request
UNSOLICITED_COMMANDS: frozenset[Command] = frozenset(
    {Command.EVENT_BUTTON_DOWN, Command.EVENT_BUTTON_UP}
)

# Answered by the proxy with a frame carrying the same code
REQUEST_COMMANDS: frozenset[Command] = frozenset(
    set(Command) - UNSOLICITED_COMMANDS - {Command.DISCONNECT}
)

MIN_POSITION = 0.0
MAX_POSITION = 1.0


def lookup_command(code: int) -> Command | None:
    """Return the Command for ``code``, or None if the code is unknown."""
    try:
        return Command(code)
    except ValueError:
        return None


def build_command(command: Command, payload: float = 0.0) -> bytes:
    """Build a single 5-byte frame for a command."""
    return build_frame(command.value, payload)


def build_check_position() -> bytes:
    """Build a position query. Also serves as the connection check."""
    return build_command(Command.CHECK_CURRENT_POSITION)


def build_set_target_position(target: float) -> bytes:
    """Build a new-target command.

    Args:
        target: Fractional position 0.0-1.0.
    """
    if not MIN_POSITION <= target <= MAX_POSITION:
        raise ValueError(f"Target position must be 0.0-1.0, got {target}")
    return build_command(Command.SEND_NEW_TARGET_POSITION, target)


def build_set_speed(speed: int) -> bytes:
    """Build a new-speed command. Speed travels as a float holding an integer."""
    return build_command(Command.SEND_NEW_SPEED, float(int(speed)))


def build_check_target_reached() -> bytes:
    return build_command(Command.CHECK_IS_TARGET_REACHED)


def build_check_speed() -> bytes:
    return build_command(Command.CHECK_CURRENT_SPEED)


def build_recalibrate() -> bytes:
    return build_command(Command.RECALIBRATE)


def build_check_expected_time(position: float) -> bytes:
    """Build a query for the time needed to travel to ``position``."""
    return build_command(Command.CHECK_EXPECTED_TIME, position)


def build_save_power() -> bytes:
    """Build the command that releases the motor to save power."""
    return build_command(Command.SEND_SAVE_POWER)


def build_disconnect() -> bytes:
    """Build the disconnect notification sent before closing the socket."""
    return build_command(Command.DISCONNECT)


def build_set_stepping_mode(mode: SteppingMode | float) -> bytes:
    """Build a stepping-mode command.

    Args:
        mode: A :class:`SteppingMode`, or a raw number passed through as-is.
    """
    return build_command(Command.STEPPING_MODE, float(mode))


def build_version_info() -> bytes:
    """Build a firmware version query."""
    return build_command(Command.VERSION_INFO)
