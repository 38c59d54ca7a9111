"""Tests for the coalescing EventBus."""

import gc
import logging

import pytest

from nicebins.events import ChangeEvent, ChangeType, EventBus


@pytest.fixture
def bus():
    return EventBus(name="test")


def _event(change_type=ChangeType.RANGE, payload=None):
    return ChangeEvent(change_type, payload=payload)


class Recorder:
    """Subscriber that records events and handles them synchronously."""

    def __init__(self, log=None, name="rec", handled=True):
        self.events = []
        self.log = log
        self.name = name
        self.handled = handled

    def __call__(self, event):
        self.events.append(event)
        if self.log is not None:
            self.log.append(self.name)
        return self.handled


def test_synchronous_subscriber_completes_delivery(bus):
    rec = Recorder()
    bus.subscribe(rec)
    e = _event()
    bus.enqueue(e)
    assert rec.events == [e]
    assert bus.in_flight is None
    assert bus.pending is None
    assert bus.outstanding_acks == 0


def test_events_coalesce_while_processing_disabled(bus):
    rec = Recorder()
    bus.subscribe(rec)
    bus.set_processing_enabled(False)
    events = [_event(ChangeType.RANGE), _event(ChangeType.SCALING), _event(ChangeType.LABEL)]
    for e in events:
        bus.enqueue(e)
    assert rec.events == []
    assert bus.pending.is_batch

    bus.set_processing_enabled(True)

    assert len(rec.events) == 1
    assert rec.events[0].is_batch
    assert rec.events[0].events == events


def test_suspended_restores_previous_state(bus):
    rec = Recorder()
    bus.subscribe(rec)
    with bus.suspended():
        bus.enqueue(_event())
        bus.enqueue(_event())
        assert not bus.processing_enabled
    assert bus.processing_enabled
    assert len(rec.events) == 1

    bus.set_processing_enabled(False)
    with bus.suspended():
        bus.enqueue(_event())
    assert not bus.processing_enabled
    assert len(rec.events) == 1


def test_prioritized_subscribers_go_first(bus):
    order = []
    bus.subscribe(Recorder(order, "default-1"))
    bus.subscribe(Recorder(order, "prio-1"), prioritized=True)
    bus.subscribe(Recorder(order, "default-2"))
    bus.subscribe(Recorder(order, "prio-2"), prioritized=True)
    bus.enqueue(_event())
    assert order == ["prio-1", "prio-2", "default-1", "default-2"]
    assert bus.prioritized_count == 2
    assert bus.subscriber_count == 4


def test_asynchronous_subscriber_holds_delivery_until_acknowledged(bus):
    rec = Recorder(handled=False)
    bus.subscribe(rec)
    first, second, third = _event(), _event(ChangeType.LABEL), _event(ChangeType.SCALING)

    bus.enqueue(first)
    assert bus.in_flight is first
    assert bus.outstanding_acks == 1

    bus.enqueue(second)
    bus.enqueue(third)
    assert rec.events == [first]
    assert bus.pending.events == [second, third]

    bus.acknowledge()
    assert len(rec.events) == 2
    assert rec.events[1].events == [second, third]

    bus.acknowledge()
    assert bus.in_flight is None


def test_processing_listeners_see_start_and_end(bus):
    states = []
    bus.add_processing_listener(states.append)
    bus.subscribe(Recorder(handled=False))
    bus.enqueue(_event())
    assert states == [True]
    bus.acknowledge()
    assert states == [True, False]

    bus.remove_processing_listener(states.append)
    bus.enqueue(_event())
    assert states == [True, False]


def test_reentrant_enqueue_waits_for_current_delivery(bus):
    depth = {"now": 0, "max": 0}
    received = []
    follow_up = _event(ChangeType.TRIGGER_REPLOT)

    def subscriber(event):
        depth["now"] += 1
        depth["max"] = max(depth["max"], depth["now"])
        received.append(event)
        if event.change_type is ChangeType.RANGE:
            bus.enqueue(follow_up)
            assert bus.pending is follow_up
        depth["now"] -= 1
        return True

    bus.subscribe(subscriber)
    first = _event(ChangeType.RANGE)
    bus.enqueue(first)
    assert received == [first, follow_up]
    assert depth["max"] == 1


def test_acknowledge_inside_subscriber_does_not_start_nested_delivery(bus):
    received = []

    def subscriber(event):
        received.append(event)
        if len(received) == 1:
            bus.enqueue(_event(ChangeType.LABEL))
        bus.acknowledge()
        assert bus.in_flight is event
        return None

    bus.subscribe(subscriber)
    bus.enqueue(_event())
    assert len(received) == 2
    assert bus.in_flight is None


def test_disabling_does_not_abort_in_flight_delivery(bus):
    rec = Recorder(handled=False)
    bus.subscribe(rec)
    bus.enqueue(_event())
    bus.set_processing_enabled(False)
    bus.enqueue(_event(ChangeType.LABEL))
    bus.acknowledge()
    assert bus.in_flight is None
    assert bus.pending is not None
    assert len(rec.events) == 1
    bus.set_processing_enabled(True)
    assert len(rec.events) == 2


def test_failing_subscriber_is_logged_and_counted_as_handled(bus, caplog):
    rec = Recorder()

    def broken(event):
        raise RuntimeError("boom")

    bus.subscribe(broken)
    bus.subscribe(rec)
    with caplog.at_level(logging.ERROR, logger="nicebins"):
        bus.enqueue(_event())
    assert len(rec.events) == 1
    assert bus.in_flight is None
    assert "failed" in caplog.text


def test_unsubscribe_by_handle_and_by_callable(bus):
    a, b = Recorder(), Recorder()
    handle = bus.subscribe(a)
    bus.subscribe(b, prioritized=True)
    assert bus.unsubscribe(handle) is True
    assert bus.unsubscribe(handle) is False
    assert bus.unsubscribe(b) is True
    bus.enqueue(_event())
    assert a.events == [] and b.events == []
    assert bus.subscriber_count == 0


def test_subscriber_removed_during_delivery_is_skipped(bus):
    later = Recorder()
    handles = {}

    def remover(event):
        bus.unsubscribe(handles["later"])
        return True

    bus.subscribe(remover)
    handles["later"] = bus.subscribe(later)
    bus.enqueue(_event())
    assert later.events == []


def test_weak_subscription_is_dropped_after_collection(bus):
    received = []

    class Owner:
        def on_change(self, event):
            received.append(event)
            return True

    owner = Owner()
    bus.subscribe(owner.on_change, weak=True)
    bus.enqueue(_event())
    assert len(received) == 1

    del owner
    gc.collect()
    bus.enqueue(_event())
    assert len(received) == 1
    assert bus.subscriber_count == 0


def test_acknowledge_without_in_flight_is_ignored(bus, caplog):
    with caplog.at_level(logging.WARNING, logger="nicebins"):
        bus.acknowledge()
    assert bus.outstanding_acks == 0
    assert "no event in flight" in caplog.text


def test_no_subscribers_still_drains_queue(bus):
    bus.enqueue(_event())
    assert bus.in_flight is None
    assert bus.pending is None


def test_long_chain_of_reenqueues_drains_without_nesting(bus):
    received = []

    def subscriber(event):
        received.append(event)
        if len(received) < 5000:
            bus.enqueue(_event(ChangeType.LABEL))
        return True

    bus.subscribe(subscriber)
    bus.enqueue(_event())
    assert len(received) == 5000
    assert bus.in_flight is None
    assert bus.pending is None
    assert bus.outstanding_acks == 0

    # the bus keeps working afterwards
    bus.enqueue(_event(ChangeType.SCALING))
    assert len(received) == 5001


def test_long_chain_of_acknowledged_reenqueues(bus):
    received = []
    states = []
    bus.add_processing_listener(states.append)

    def subscriber(event):
        received.append(event)
        if len(received) < 3000:
            bus.enqueue(_event(ChangeType.LABEL))
        bus.acknowledge()
        return None

    bus.subscribe(subscriber)
    bus.enqueue(_event())
    assert len(received) == 3000
    assert bus.in_flight is None
    assert states.count(True) == states.count(False) == 3000


def test_processing_listener_enqueue_is_picked_up_by_running_drain(bus):
    received = []
    bus.subscribe(Recorder())

    def listener(started):
        received.append(started)
        if not started and len(received) == 2:
            bus.enqueue(_event(ChangeType.LABEL))

    bus.add_processing_listener(listener)
    bus.enqueue(_event())
    assert received == [True, False, True, False]
    assert bus.in_flight is None
    assert bus.pending is None
