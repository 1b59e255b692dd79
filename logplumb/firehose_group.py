"""Sinks sharing one firehose subscription, fed in turn."""

from __future__ import annotations

import logging
import threading
from typing import Any

from .sink_wrapper import Channel, Sink, SinkWrapper

_log = logging.getLogger(__name__)


class FirehoseGroup:
    """Spreads messages round-robin over the sinks of one subscription."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._log = logger or _log
        self._wrappers: list[SinkWrapper] = []
        self._next = 0
        self._lock = threading.Lock()

    def add_sink(self, sink: Sink, channel: Channel[Any] | None) -> bool:
        """Add a sink; False if one with the same identifier is present."""
        with self._lock:
            if any(w.sink.identifier == sink.identifier for w in self._wrappers):
                return False
            self._wrappers.append(SinkWrapper(channel=channel, sink=sink))
            return True

    def remove_sink(self, sink: Sink) -> bool:
        """Remove the sink and close its channel; False if it is not here."""
        with self._lock:
            wrapper = next((w for w in self._wrappers if w.sink is sink), None)
            if wrapper is None:
                return False
            if wrapper.channel is not None:
                wrapper.channel.close()
            self._wrappers.remove(wrapper)
            return True

    def remove_all_sinks(self) -> None:
        """Remove every sink, closing their channels."""
        with self._lock:
            for wrapper in self._wrappers:
                if wrapper.channel is not None:
                    wrapper.channel.close()
            self._wrappers.clear()

    def is_empty(self) -> bool:
        """Whether the group has no sinks."""
        return len(self) == 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._wrappers)

    def broadcast_message(self, message: Any) -> None:
        """Offer the message to the next sink; drop it if that sink is busy."""
        with self._lock:
            if not self._wrappers:
                self._log.debug("No firehose sinks, dropping message")
                return
            if self._next >= len(self._wrappers):
                self._next = 0
            wrapper = self._wrappers[self._next]
            if wrapper.channel is None or not wrapper.channel.try_send(message):
                self._log.debug(
                    "No firehose consumer, dropping message for sink: %s",
                    wrapper.sink.identifier,
                )
            self._next += 1