"""Tests for events module."""
from idlecore.events import EventBus


def test_emit_reaches_subscribers():
    bus = EventBus()
    received = []
    bus.on("resource:changed", received.append)
    bus.emit("resource:changed", {"resource_id": "rice"})
    assert received == [{"resource_id": "rice"}]


def test_emit_without_payload_sends_empty_dict():
    bus = EventBus()
    received = []
    bus.on("game:tick", received.append)
    bus.emit("game:tick")
    assert received == [{}]


def test_unsubscribe():
    bus = EventBus()
    received = []
    unsubscribe = bus.on("x", received.append)
    unsubscribe()
    bus.emit("x", {"n": 1})
    assert received == []
    assert bus.handler_count("x") == 0


def test_once_fires_a_single_time():
    bus = EventBus()
    received = []
    bus.once("x", received.append)
    bus.emit("x", {"n": 1})
    bus.emit("x", {"n": 2})
    assert received == [{"n": 1}]


def test_failing_handler_does_not_stop_others():
    bus = EventBus()
    received = []

    def broken(payload):
        raise RuntimeError("boom")

    bus.on("x", broken)
    bus.on("x", received.append)
    bus.emit("x", {"n": 1})
    assert received == [{"n": 1}]


def test_buses_are_isolated():
    a, b = EventBus(), EventBus()
    received = []
    a.on("x", received.append)
    b.emit("x", {"n": 1})
    assert received == []


def test_clear():
    bus = EventBus()
    bus.on("x", lambda p: None)
    bus.on("y", lambda p: None)
    bus.clear("x")
    assert bus.handler_count("x") == 0
    assert bus.handler_count("y") == 1
    bus.clear()
    assert bus.handler_count("y") == 0
