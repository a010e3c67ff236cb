"""Tests for the event bus."""

from __future__ import annotations

import gc

from inkwell.events import AffordanceHidden, EventBus, ReviewClosed, SettingsChanged


class _Listener:
    def __init__(self) -> None:
        self.received: list[object] = []

    def on_event(self, event: object) -> None:
        self.received.append(event)


def test_publish_reaches_subscribers_of_exact_type() -> None:
    bus = EventBus()
    closed: list[ReviewClosed] = []
    bus.subscribe(ReviewClosed, closed.append)

    bus.publish(ReviewClosed("s1", "rejected"))
    bus.publish(SettingsChanged(("model",)))

    assert closed == [ReviewClosed("s1", "rejected")]


def test_unsubscribe_removes_handler() -> None:
    bus = EventBus()
    received: list[object] = []
    handler = received.append
    bus.subscribe(AffordanceHidden, handler)

    bus.unsubscribe(AffordanceHidden, handler)
    bus.unsubscribe(AffordanceHidden, handler)
    bus.publish(AffordanceHidden("doc", "focus-lost"))

    assert received == []
    assert bus.handler_count() == 0


def test_failing_handler_does_not_stop_others() -> None:
    bus = EventBus()
    received: list[object] = []

    def broken(event: object) -> None:
        raise RuntimeError("boom")

    bus.subscribe(ReviewClosed, broken)
    bus.subscribe(ReviewClosed, received.append)

    bus.publish(ReviewClosed("s1", "closed"))

    assert len(received) == 1


def test_bound_methods_are_weakly_held() -> None:
    bus = EventBus()
    listener = _Listener()
    bus.subscribe(ReviewClosed, listener.on_event)
    bus.publish(ReviewClosed("s1", "closed"))
    assert len(listener.received) == 1

    del listener
    gc.collect()
    bus.publish(ReviewClosed("s2", "closed"))

    assert bus.handler_count(ReviewClosed) == 0
