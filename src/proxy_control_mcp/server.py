"""MCP server entry point for the proxy control client.

Exposes tools, resources, and prompts via the Model Context Protocol
using the official Python MCP SDK with stdio transport.

The client itself is callback driven and never waits. Each tool here sends
one request and then polls until the response arrives or
``RESPONSE_TIMEOUT`` passes.
"""

from __future__ import annotations

import json
import logging
import time
from collections import deque
from typing import Any, Callable

from mcp.server.fastmcp import FastMCP

from .client import ProxyControlClient
from .dispatch.events import EventKind
from .models.status import ProxyStatus
from .protocol.commands import Command, SteppingMode, UNSOLICITED_COMMANDS
from .protocol.parser import is_ack
from .transport.tcp_connection import DEFAULT_PORT

logger = logging.getLogger(__name__)

RESPONSE_TIMEOUT = 2.0
POLL_INTERVAL = 0.01
BUTTON_EVENT_HISTORY = 100

mcp = FastMCP(
    "proxy-control",
    instructions="MCP server for remote control of a motorized proxy actuator",
)

# Global connection state
_client: ProxyControlClient | None = None
_status = ProxyStatus()
_button_events: deque[dict[str, Any]] = deque(maxlen=BUTTON_EVENT_HISTORY)


def _get_client() -> ProxyControlClient:
    """Get the connected client, raising if not connected."""
    if _client is None or not _client.connected:
        raise RuntimeError(
            "Not connected to proxy. Use the 'connect' tool first."
        )
    return _client


def _record_button(now_up: bool, position: float) -> None:
    _button_events.append({
        "state": "up" if now_up else "down",
        "position": position,
        "timestamp": time.time(),
    })


def _await_response(
    client: ProxyControlClient,
    register: Callable[[Callable[[Any], None]], bool],
    timeout: float | None = None,
) -> tuple[bool, Any]:
    """Send a request through ``register`` and poll until it is answered.

    Returns:
        ``(True, value)`` if the response arrived in time, else
        ``(False, None)``.
    """
    if timeout is None:
        timeout = RESPONSE_TIMEOUT
    results: list[Any] = []
    register(results.append)

    deadline = time.monotonic() + timeout
    while not results:
        client.poll_once()
        if results:
            break
        if not client.connected or time.monotonic() >= deadline:
            return False, None
        time.sleep(POLL_INTERVAL)
    return True, results[0]


def _no_response() -> dict[str, str]:
    return {"error": "No response from proxy"}


# ─── CONNECTION TOOLS ─────────────────────────────────────────────────

@mcp.tool()
def connect(host: str, port: int = DEFAULT_PORT) -> dict[str, Any]:
    """Open the TCP connection to the proxy.

    Args:
        host: Proxy address, e.g. 192.168.4.1 when joined to its hotspot.
        port: Proxy TCP port (default 8090).
    """
    global _client
    if _client is not None and _client.connected:
        return {
            "connected": True,
            "message": "Already connected",
            "host": _status.host,
            "port": _status.port,
        }

    if _client is None:
        _client = ProxyControlClient()
        _client.subscribe(EventKind.BUTTON_CHANGE, _record_button)

    if not _client.connect(host, port):
        return {"connected": False, "error": f"Could not connect to {host}:{port}"}

    _status.host, _status.port = host, port
    _status.state = _client.state
    result: dict[str, Any] = {"connected": True, "host": host, "port": port}

    answered, version = _await_response(_client, _client.request_version_info)
    if answered:
        _status.version = version
        result["version"] = version
    return result


@mcp.tool()
def disconnect() -> dict[str, bool]:
    """Notify the proxy and close the connection."""
    if _client is not None:
        _client.disconnect()
        _status.state = _client.state
    return {"disconnected": True}


@mcp.tool()
def reconnect() -> dict[str, Any]:
    """Drop and re-open the connection to the last connected proxy."""
    if _client is None or not _status.host:
        return {"error": "No previous connection. Use the 'connect' tool first."}
    success = _client.reconnect(_status.host, _status.port)
    _status.state = _client.state
    return {"connected": success, "host": _status.host, "port": _status.port}


@mcp.tool()
def check_connection() -> dict[str, bool]:
    """Check that the proxy still answers, using a position query."""
    if _client is None or not _client.connected:
        return {"alive": False}
    answered, alive = _await_response(_client, _client.check_connection)
    return {"alive": bool(answered and alive)}


# ─── MOTION TOOLS ─────────────────────────────────────────────────────

@mcp.tool()
def get_position() -> dict[str, Any]:
    """Read the current position as a fraction of the travel range (0.0-1.0)."""
    client = _get_client()
    answered, position = _await_response(client, client.request_current_position)
    if not answered:
        return _no_response()
    _status.position = position
    return {"position": position}


@mcp.tool()
def set_target_position(target: float) -> dict[str, Any]:
    """Start moving toward a target position.

    The proxy replies with the expected travel time.

    Args:
        target: Fraction of the travel range, 0.0-1.0.
    """
    if not 0.0 <= target <= 1.0:
        return {"error": "Target position must be 0.0-1.0"}

    client = _get_client()
    answered, expected = _await_response(
        client, lambda cb: client.request_new_target(cb, target)
    )
    if not answered:
        return _no_response()
    _status.target = target
    _status.target_reached = None
    return {"target": target, "expected_time": expected}


@mcp.tool()
def is_target_reached() -> dict[str, Any]:
    """Check whether the last target position has been reached."""
    client = _get_client()
    answered, reached = _await_response(client, client.request_target_reached)
    if not answered:
        return _no_response()
    _status.target_reached = reached
    return {"reached": reached}


@mcp.tool()
def get_expected_time(position: float) -> dict[str, Any]:
    """Estimate the travel time from the current position to another.

    Args:
        position: Destination as a fraction of the travel range, 0.0-1.0.
    """
    client = _get_client()
    answered, expected = _await_response(
        client, lambda cb: client.request_expected_time(cb, position)
    )
    if not answered:
        return _no_response()
    return {"position": position, "expected_time": expected}


@mcp.tool()
def set_speed(speed: int) -> dict[str, Any]:
    """Change the motor speed.

    Args:
        speed: Speed in steps per second.
    """
    if speed < 0:
        return {"error": "Speed must not be negative"}

    client = _get_client()
    answered, payload = _await_response(client, lambda cb: client.request_new_speed(cb, speed))
    if not answered:
        return _no_response()
    _status.speed = speed
    return {"speed": speed, "acknowledged": is_ack(payload)}


@mcp.tool()
def get_speed() -> dict[str, Any]:
    """Read the current motor speed."""
    client = _get_client()
    answered, speed = _await_response(client, client.request_current_speed)
    if not answered:
        return _no_response()
    _status.speed = speed
    return {"speed": speed}


@mcp.tool()
def set_stepping_mode(mode: str) -> dict[str, Any]:
    """Change the stepper driver mode.

    Args:
        mode: One of single, double, interleave, microstepping.
    """
    try:
        stepping = SteppingMode[mode.upper()]
    except KeyError:
        return {"error": f"Unknown mode '{mode}'. Valid: {[m.name.lower() for m in SteppingMode]}"}

    client = _get_client()
    answered, payload = _await_response(
        client, lambda cb: client.request_stepping_mode(cb, stepping)
    )
    if not answered:
        return _no_response()
    _status.stepping_mode = stepping.name.lower()
    return {"mode": stepping.name.lower(), "acknowledged": is_ack(payload)}


@mcp.tool()
def recalibrate() -> dict[str, Any]:
    """Re-run the proxy's end-stop calibration."""
    client = _get_client()
    answered, payload = _await_response(client, client.request_recalibration)
    if not answered:
        return _no_response()
    _status.position = None
    return {"recalibrating": True, "acknowledged": is_ack(payload)}


@mcp.tool()
def save_power() -> dict[str, Any]:
    """Release the motor so it stops drawing holding current."""
    client = _get_client()
    answered, payload = _await_response(client, client.request_save_power)
    if not answered:
        return _no_response()
    return {"released": True, "acknowledged": is_ack(payload)}


@mcp.tool()
def get_version() -> dict[str, Any]:
    """Read the proxy firmware version."""
    client = _get_client()
    answered, version = _await_response(client, client.request_version_info)
    if not answered:
        return _no_response()
    _status.version = version
    return {"version": version}


@mcp.tool()
def get_button_events(clear: bool = True) -> dict[str, Any]:
    """List button presses and releases received from the proxy.

    Args:
        clear: Forget the returned events (default True).
    """
    if _client is not None:
        # Drain whatever arrived since the last tool call
        for _ in range(BUTTON_EVENT_HISTORY):
            if _client.poll_once() is None:
                break

    events = list(_button_events)
    if clear:
        _button_events.clear()
    return {"events": events}


# ─── RESOURCES ────────────────────────────────────────────────────────

@mcp.resource("proxy://device/status")
def resource_device_status() -> str:
    """Connection state and the last values reported by the proxy."""
    if _client is not None:
        _status.state = _client.state
    return json.dumps(_status.to_dict(), indent=2)


@mcp.resource("proxy://catalog/commands")
def resource_command_catalog() -> str:
    """Wire command codes."""
    return json.dumps(
        [
            {
                "code": command.value,
                "name": command.name,
                "unsolicited": command in UNSOLICITED_COMMANDS,
            }
            for command in Command
        ],
        indent=2,
    )


@mcp.resource("proxy://catalog/stepping-modes")
def resource_stepping_modes() -> str:
    """Stepper driver modes."""
    return json.dumps({m.name.lower(): m.value for m in SteppingMode}, indent=2)


# ─── PROMPTS ──────────────────────────────────────────────────────────

@mcp.prompt()
def haptic_sweep(steps: int = 5) -> str:
    """Move the weight through evenly spaced positions and report timing."""
    return f"""Check the connection with check_connection, then read get_position.
Move the weight through {steps} evenly spaced targets between 0.0 and 1.0:

- Use get_expected_time before each move
- Use set_target_position, then poll is_target_reached until it is true
- Compare the expected and observed travel times

Finish with save_power so the motor does not hold current."""


# ─── ENTRY POINT ─────────────────────────────────────────────────────

def main():
    """Run the MCP server with stdio transport."""
    logging.basicConfig(level=logging.INFO)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
