"""Channels that carry envelopes to sinks, and the sink interface itself."""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Generic, Iterator, Protocol, TypeVar

T = TypeVar("T")


class ChannelClosed(Exception):
    """A channel was used after it had been closed."""


class Channel(Generic[T]):
    """A thread-safe FIFO hand-off between producers and consumers.

    With capacity 0 a send completes only once a receiver is waiting.
    Receivers drain a closed channel, then get ChannelClosed.
    """

    def __init__(self, capacity: int = 0) -> None:
        if capacity < 0:
            raise ValueError("channel capacity cannot be negative")
        self.capacity = capacity
        self._items: deque[T] = deque()
        self._closed = False
        self._receivers = 0
        self._cond = threading.Condition()

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def _has_room(self) -> bool:
        return len(self._items) < self.capacity + self._receivers

    def _put(self, item: T) -> None:
        if self._closed:
            raise ChannelClosed("send on closed channel")
        self._items.append(item)
        self._cond.notify_all()

    def send(self, item: T) -> None:
        """Queue an item, waiting for room or a receiver."""
        with self._cond:
            self._cond.wait_for(lambda: self._closed or self._has_room())
            self._put(item)

    def try_send(self, item: T) -> bool:
        """Queue an item only if that needs no waiting; tell whether it was."""
        with self._cond:
            if not self._closed and not self._has_room():
                return False
            self._put(item)
            return True

    def receive(self, timeout: float | None = None) -> T:
        """Take the oldest item; TimeoutError if none arrives in time."""
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            self._receivers += 1
            self._cond.notify_all()
            try:
                while not self._items:
                    if self._closed:
                        raise ChannelClosed("receive from closed channel")
                    remaining = None if deadline is None else deadline - time.monotonic()
                    if remaining is not None and remaining <= 0:
                        raise TimeoutError("no item received in time")
                    self._cond.wait(remaining)
                item = self._items.popleft()
                self._cond.notify_all()
                return item
            finally:
                self._receivers -= 1

    def close(self) -> None:
        """Refuse further sends; closing twice raises ChannelClosed."""
        with self._cond:
            if self._closed:
                raise ChannelClosed("close of closed channel")
            self._closed = True
            self._cond.notify_all()

    def __len__(self) -> int:
        with self._cond:
            return len(self._items)

    def __iter__(self) -> Iterator[T]:
        try:
            while True:
                yield self.receive()
        except ChannelClosed:
            return


@dataclass
class Metric:
    """An instrumentation value reported by a sink."""

    name: str
    tags: dict[str, Any] = field(default_factory=dict)
    value: float = 0


class Sink(Protocol):
    """A destination for the envelopes of one app or firehose subscription."""

    @property
    def stream_id(self) -> str: ...

    @property
    def identifier(self) -> str: ...

    def run(self, channel: Channel[Any]) -> None: ...

    def should_receive_errors(self) -> bool: ...

    def instrumentation_metric(self) -> Metric: ...

    def update_dropped_message_count(self, count: int) -> None: ...


@dataclass(eq=False)
class SinkWrapper:
    """A sink paired with the channel that feeds it."""

    channel: Channel[Any] | None
    sink: Sink