"""
Unit tests for the in-process event bus.
"""
from __future__ import annotations

import threading

from apps.notifier.event_bus import IN_APP_TOPIC, EventBus


def test_subscriber_sees_only_later_publishes():
    bus = EventBus()
    bus.publish(IN_APP_TOPIC, "before")
    sub = bus.subscribe(IN_APP_TOPIC)
    bus.publish(IN_APP_TOPIC, "after")
    assert sub.get(timeout=0.1) == "after"
    assert sub.get(timeout=0.05) is None


def test_each_subscriber_keeps_its_own_cursor():
    bus = EventBus()
    first = bus.subscribe(IN_APP_TOPIC)
    bus.publish(IN_APP_TOPIC, 1)
    second = bus.subscribe(IN_APP_TOPIC)
    bus.publish(IN_APP_TOPIC, 2)

    assert [first.get(0.1), first.get(0.1)] == [1, 2]
    assert second.get(0.1) == 2
    assert second.get(0.05) is None


def test_topics_are_isolated():
    bus = EventBus()
    sub = bus.subscribe("other")
    assert bus.publish(IN_APP_TOPIC, "x") == 0
    assert sub.get(timeout=0.05) is None


def test_full_queue_drops_for_that_subscriber_only():
    bus = EventBus(queue_size=2)
    slow = bus.subscribe(IN_APP_TOPIC)
    fast = bus.subscribe(IN_APP_TOPIC)

    for n in range(3):
        bus.publish(IN_APP_TOPIC, n)
        assert fast.get(0.1) == n

    assert slow.dropped == 1
    assert [slow.get(0.1), slow.get(0.1)] == [0, 1]


def test_closed_subscription_stops_receiving():
    bus = EventBus()
    sub = bus.subscribe(IN_APP_TOPIC)
    sub.close()
    assert bus.subscriber_count(IN_APP_TOPIC) == 0
    assert bus.publish(IN_APP_TOPIC, "x") == 0
    assert sub.get(timeout=0.05) is None


def test_iteration_ends_when_bus_closes():
    bus = EventBus()
    sub = bus.subscribe(IN_APP_TOPIC)
    received = []

    def consume():
        for item in sub:
            received.append(item)

    worker = threading.Thread(target=consume)
    worker.start()
    bus.publish(IN_APP_TOPIC, "a")
    bus.publish(IN_APP_TOPIC, "b")
    bus.close()
    worker.join(timeout=3)

    assert not worker.is_alive()
    assert received == ["a", "b"]
