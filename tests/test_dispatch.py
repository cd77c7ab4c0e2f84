"""Tests for the one-shot request slots and the event router."""

from proxy_control_mcp.dispatch.events import EventKind, EventRouter
from proxy_control_mcp.dispatch.requests import PendingRequests
from proxy_control_mcp.protocol.commands import Command


def _noop(*args):
    pass


def test_register_and_pop():
    """A registered callback is returned once, then the slot is empty."""
    requests = PendingRequests()
    requests.register(Command.CHECK_CURRENT_SPEED, _noop)
    assert requests.is_pending(Command.CHECK_CURRENT_SPEED)
    assert requests.pop(Command.CHECK_CURRENT_SPEED) is _noop
    assert requests.pop(Command.CHECK_CURRENT_SPEED) is None
    assert not requests.is_pending(Command.CHECK_CURRENT_SPEED)


def test_register_replaces_previous_callback():
    """One slot per command: the second registration wins."""
    requests = PendingRequests()

    def first(value):
        pass

    def second(value):
        pass

    assert requests.register(Command.CHECK_CURRENT_SPEED, first) is None
    assert requests.register(Command.CHECK_CURRENT_SPEED, second) is first
    assert requests.pop(Command.CHECK_CURRENT_SPEED) is second
    assert len(requests) == 0


def test_slots_are_independent_per_command():
    requests = PendingRequests()
    requests.register(Command.CHECK_CURRENT_SPEED, _noop)
    requests.register(Command.VERSION_INFO, _noop)
    assert len(requests) == 2
    requests.pop(Command.VERSION_INFO)
    assert requests.is_pending(Command.CHECK_CURRENT_SPEED)


def test_connection_check_slot_is_separate():
    """The connection check does not occupy the position slot."""
    requests = PendingRequests()
    requests.register_connection_check(_noop)
    assert requests.connection_check_pending
    assert not requests.is_pending(Command.CHECK_CURRENT_POSITION)
    assert len(requests) == 1
    assert requests.pop_connection_check() is _noop
    assert requests.pop_connection_check() is None
    assert not requests.connection_check_pending


def test_emit_in_registration_order():
    router = EventRouter()
    calls = []
    router.subscribe(EventKind.BUTTON_DOWN, lambda pos: calls.append(("a", pos)))
    router.subscribe(EventKind.BUTTON_DOWN, lambda pos: calls.append(("b", pos)))

    assert router.emit(EventKind.BUTTON_DOWN, 0.3) == 2
    assert calls == [("a", 0.3), ("b", 0.3)]


def test_subscribers_persist_across_deliveries():
    router = EventRouter()
    calls = []
    router.subscribe(EventKind.BUTTON_UP, calls.append)
    router.emit(EventKind.BUTTON_UP, 0.1)
    router.emit(EventKind.BUTTON_UP, 0.2)
    assert calls == [0.1, 0.2]


def test_unsubscribe_stops_delivery():
    router = EventRouter()
    calls = []
    handler = router.subscribe(EventKind.BUTTON_UP, calls.append)
    assert router.unsubscribe(EventKind.BUTTON_UP, handler)
    router.emit(EventKind.BUTTON_UP, 0.5)
    assert calls == []


def test_unsubscribe_unknown_handler():
    router = EventRouter()
    assert router.unsubscribe(EventKind.DISCONNECTION, _noop) is False


def test_failing_subscriber_does_not_block_others():
    """A raising handler is logged; later handlers still run."""
    router = EventRouter()
    calls = []

    def broken(now_up, pos):
        raise RuntimeError("boom")

    router.subscribe(EventKind.BUTTON_CHANGE, broken)
    router.subscribe(EventKind.BUTTON_CHANGE, lambda now_up, pos: calls.append(now_up))

    assert router.emit(EventKind.BUTTON_CHANGE, True, 0.0) == 1
    assert calls == [True]


def test_subscribe_during_emit_applies_next_time():
    router = EventRouter()
    late = []

    def add_late(pos):
        router.subscribe(EventKind.BUTTON_DOWN, late.append)

    router.subscribe(EventKind.BUTTON_DOWN, add_late)
    router.emit(EventKind.BUTTON_DOWN, 0.1)
    assert late == []
    router.emit(EventKind.BUTTON_DOWN, 0.2)
    assert late == [0.2]


def test_kinds_are_isolated():
    router = EventRouter()
    calls = []
    router.subscribe(EventKind.BUTTON_DOWN, calls.append)
    router.emit(EventKind.BUTTON_UP, 0.9)
    assert calls == []
    assert router.subscribers(EventKind.BUTTON_UP) == []
