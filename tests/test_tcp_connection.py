"""Tests for the TCP transport and the client over a loopback socket."""

from __future__ import annotations

import socket

import pytest

from proxy_control_mcp.client import ProxyControlClient
from proxy_control_mcp.dispatch.events import EventKind
from proxy_control_mcp.models.status import ConnectionState
from proxy_control_mcp.protocol.commands import Command
from proxy_control_mcp.protocol.framing import FRAME_SIZE, build_frame, parse_frame
from proxy_control_mcp.transport.tcp_connection import DEFAULT_PORT, TCPConnection


def _unused_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def _read_frame(conn: TCPConnection, wait) -> bytes:
    received = bytearray()

    def complete():
        data = conn.read(FRAME_SIZE - len(received))
        if data:
            received.extend(data)
        return len(received) == FRAME_SIZE

    assert wait(complete)
    return bytes(received)


# ─── TRANSPORT ────────────────────────────────────────────────────────

def test_default_port():
    assert DEFAULT_PORT == 8090


def test_new_connection_is_disconnected():
    conn = TCPConnection()
    assert not conn.connected
    assert conn.state is ConnectionState.DISCONNECTED
    assert conn.endpoint is None
    assert conn.read(FRAME_SIZE) is None
    assert not conn.available()


def test_open_refused_returns_false():
    conn = TCPConnection(connect_timeout=1.0)
    assert conn.open("127.0.0.1", _unused_port()) is False
    assert not conn.connected


@pytest.mark.parametrize("port", [-1, 70000])
def test_open_invalid_port_returns_false(port):
    assert TCPConnection(connect_timeout=1.0).open("127.0.0.1", port) is False


def test_write_when_disconnected_returns_false():
    assert TCPConnection().write(build_frame(Command.VERSION_INFO)) is False


def test_close_when_disconnected_is_safe():
    conn = TCPConnection()
    conn.close()
    assert not conn.connected


def test_open_write_read_close(proxy_server, wait):
    conn = TCPConnection(connect_timeout=1.0)
    assert conn.open(proxy_server.host, proxy_server.port)
    assert conn.connected
    assert conn.endpoint == (proxy_server.host, proxy_server.port)

    assert conn.write(build_frame(Command.VERSION_INFO))
    reply = parse_frame(_read_frame(conn, wait))
    assert reply.command == Command.VERSION_INFO
    assert reply.payload == 2.0

    conn.close()
    assert not conn.connected
    assert conn.write(build_frame(Command.VERSION_INFO)) is False
    assert proxy_server.closed_by_client.wait(timeout=2.0)


def test_peer_close_drops_connection(proxy_server, wait):
    conn = TCPConnection(connect_timeout=1.0)
    assert conn.open(proxy_server.host, proxy_server.port)
    assert proxy_server.wait_for_client()

    proxy_server.drop_client()

    assert wait(lambda: conn.read(FRAME_SIZE) is None and not conn.connected)


# ─── CLIENT END TO END ────────────────────────────────────────────────

@pytest.fixture
def live_client(proxy_server):
    client = ProxyControlClient(TCPConnection(connect_timeout=1.0))
    assert client.connect(proxy_server.host, proxy_server.port)
    assert proxy_server.wait_for_client()
    yield client
    client.disconnect()


def test_position_round_trip(live_client, proxy_server, poll):
    positions, alive = [], []
    live_client.check_connection(alive.append)
    live_client.request_current_position(positions.append)

    assert poll(live_client, lambda: positions and alive)
    assert positions == [0.25]
    assert alive == [True]

    frames = proxy_server.wait_for_frames(2)
    assert [f.command for f in frames] == [Command.CHECK_CURRENT_POSITION] * 2
    assert all(f.payload == 0.0 for f in frames)


def test_coerced_responses(live_client, poll):
    results = {}
    live_client.request_current_speed(lambda v: results.setdefault("speed", v))
    live_client.request_target_reached(lambda v: results.setdefault("reached", v))
    live_client.request_expected_time(lambda v: results.setdefault("time", v), 0.5)

    assert poll(live_client, lambda: len(results) == 3)
    assert results == {"speed": 200, "reached": True, "time": 1500}


def test_new_target_returns_travel_time(live_client, poll):
    times = []
    assert live_client.request_new_target(times.append, 0.5)

    assert poll(live_client, lambda: times)
    assert times == [1200]


def test_button_event_pushed_by_proxy(live_client, proxy_server, poll):
    changes = []
    live_client.subscribe(EventKind.BUTTON_CHANGE, lambda up, pos: changes.append((up, pos)))

    proxy_server.push(build_frame(Command.EVENT_BUTTON_DOWN, 0.5))
    proxy_server.push(build_frame(Command.EVENT_BUTTON_UP, 0.75))

    assert poll(live_client, lambda: len(changes) == 2)
    assert changes == [(False, 0.5), (True, 0.75)]


def test_frame_split_across_segments(live_client, proxy_server, poll):
    downs = []
    live_client.subscribe(EventKind.BUTTON_DOWN, downs.append)
    data = build_frame(Command.EVENT_BUTTON_DOWN, 0.125)

    proxy_server.push(data[:2])
    for _ in range(5):
        live_client.poll_once()
    assert downs == []

    proxy_server.push(data[2:])
    assert poll(live_client, lambda: downs)
    assert downs == [0.125]


def test_disconnect_frame_reaches_proxy(live_client, proxy_server):
    disconnections = []
    live_client.subscribe(EventKind.DISCONNECTION, lambda: disconnections.append(True))

    live_client.disconnect()

    frames = proxy_server.wait_for_frames(1)
    assert frames[-1].command == Command.DISCONNECT
    assert proxy_server.closed_by_client.wait(timeout=2.0)
    assert disconnections == [True]
    assert live_client.state is ConnectionState.DISCONNECTED


def test_proxy_going_away_ends_polling(live_client, proxy_server, poll):
    proxy_server.drop_client()
    assert poll(live_client, lambda: not live_client.connected)
    assert live_client.poll_once() is None
    assert live_client.request_version_info(lambda v: None) is False


def test_connect_async_to_closed_port():
    client = ProxyControlClient(TCPConnection(connect_timeout=1.0))
    results = []
    thread = client.connect_async("127.0.0.1", _unused_port(), results.append)
    thread.join(timeout=5.0)
    assert results == [False]
    assert not client.connected
