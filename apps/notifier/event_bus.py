"""
Process-local publish/subscribe bus.

Every subscriber owns its own bounded queue, so each sees publishes made after it
subscribed and nothing earlier. Delivery is best-effort: a full subscriber queue drops the
event for that subscriber only. The notification log stays the source of truth.
"""
from __future__ import annotations

import logging
import queue
import threading
from collections import defaultdict
from typing import Any, Generic, Iterator, Optional, TypeVar

logger = logging.getLogger("emrnotify.bus")

IN_APP_TOPIC = "notifications.in_app"

T = TypeVar("T")

_POLL_SECONDS = 0.5


class Subscription(Generic[T]):
    def __init__(self, bus: "EventBus", topic: str, maxsize: int):
        self.bus = bus
        self.topic = topic
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self._closed = threading.Event()
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def _deliver(self, payload: T) -> bool:
        if self.closed:
            return False
        try:
            self._queue.put_nowait(payload)
        except queue.Full:
            self.dropped += 1
            return False
        return True

    def get(self, timeout: Optional[float] = None) -> Optional[T]:
        """Next payload, or None if nothing arrives within *timeout* or the subscription is closed."""
        if self.closed and self._queue.empty():
            return None
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def __iter__(self) -> Iterator[T]:
        while True:
            if self.closed and self._queue.empty():
                return
            try:
                yield self._queue.get(timeout=_POLL_SECONDS)
            except queue.Empty:
                continue

    def close(self) -> None:
        if not self.closed:
            self._closed.set()
            self.bus._unsubscribe(self)

    def __enter__(self) -> "Subscription[T]":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()


class EventBus:
    def __init__(self, queue_size: int = 256):
        self.queue_size = queue_size
        self._lock = threading.Lock()
        self._subscribers: dict[str, list[Subscription]] = defaultdict(list)

    def subscribe(self, topic: str) -> Subscription:
        sub: Subscription = Subscription(self, topic, self.queue_size)
        with self._lock:
            self._subscribers[topic].append(sub)
        return sub

    def _unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            subs = self._subscribers.get(sub.topic, [])
            if sub in subs:
                subs.remove(sub)

    def publish(self, topic: str, payload: Any) -> int:
        """Hand *payload* to every current subscriber of *topic*. Returns the number reached."""
        with self._lock:
            subs = list(self._subscribers.get(topic, ()))
        delivered = 0
        for sub in subs:
            if sub._deliver(payload):
                delivered += 1
            else:
                logger.debug("Dropped %s event for a full or closed subscriber", topic)
        return delivered

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._subscribers.get(topic, ()))

    def close(self) -> None:
        with self._lock:
            subs = [s for group in self._subscribers.values() for s in group]
        for sub in subs:
            sub.close()
