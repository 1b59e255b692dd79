"""Registry of the sinks for each app and each firehose subscription."""

from __future__ import annotations

import logging
import threading
from typing import Any

from .firehose_group import FirehoseGroup
from .sink_wrapper import Channel, Metric, Sink, SinkWrapper

_log = logging.getLogger(__name__)

_CONTAINER_METRICS_PREFIX = "container-metrics-"


class GroupedSinks:
    """Routes envelopes to the sinks registered for an app and to firehoses."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._log = logger or _log
        self._apps: dict[str, dict[str, SinkWrapper]] = {}
        self._firehoses: dict[str, FirehoseGroup] = {}
        self._lock = threading.RLock()

    def register_app_sink(self, channel: Channel[Any] | None, sink: Sink) -> bool:
        """Register a sink for its app; False for empty ids or a duplicate."""
        with self._lock:
            app_id = sink.stream_id
            identifier = sink.identifier
            if not app_id or not identifier:
                return False
            sinks = self._apps.setdefault(app_id, {})
            if identifier in sinks:
                return False
            sinks[identifier] = SinkWrapper(channel=channel, sink=sink)
            return True

    def register_firehose_sink(self, channel: Channel[Any] | None, sink: Sink) -> bool:
        """Register a sink for its firehose subscription."""
        with self._lock:
            subscription_id = sink.stream_id
            if not subscription_id:
                return False
            group = self._firehoses.get(subscription_id)
            if group is None:
                group = self._firehoses[subscription_id] = FirehoseGroup(self._log)
            return group.add_sink(sink, channel)

    def broadcast(self, app_id: str, message: Any) -> None:
        """Offer a message to the app's sinks without waiting, then to firehoses.

        Sinks whose channel has no room count the message as dropped.
        """
        with self._lock:
            for wrapper in list(self._apps.get(app_id, {}).values()):
                if wrapper.channel is not None and wrapper.channel.try_send(message):
                    continue
                if wrapper.channel is not None:
                    wrapper.sink.update_dropped_message_count(1)
                self._log.debug(
                    "Not broadcasting message to sink %s for app %s because no consumer "
                    "present or ready",
                    wrapper.sink.identifier,
                    app_id,
                )
            self.broadcast_message_to_firehoses(message)

    def broadcast_error(self, app_id: str, message: Any) -> None:
        """Send an error to the app's sinks that want errors, then to firehoses.

        Unlike broadcast, this waits until each such sink's channel takes it.
        """
        with self._lock:
            for wrapper in list(self._apps.get(app_id, {}).values()):
                if wrapper.sink.should_receive_errors() and wrapper.channel is not None:
                    wrapper.channel.send(message)
            self.broadcast_message_to_firehoses(message)

    def broadcast_message_to_firehoses(self, message: Any) -> None:
        """Give the message to one sink of every firehose subscription."""
        with self._lock:
            for group in self._firehoses.values():
                group.broadcast_message(message)

    def count_for(self, app_id: str) -> int:
        """Number of sinks registered for the app."""
        with self._lock:
            return len(self._apps.get(app_id, {}))

    def drain_for(self, app_id: str, drain_url: str) -> Sink | None:
        """The app's sink registered under the drain URL, if any."""
        with self._lock:
            wrapper = self._apps.get(app_id, {}).get(drain_url)
            return wrapper.sink if wrapper is not None else None

    def dump_for(self, app_id: str) -> Sink | None:
        """The app's dump sink, which is registered under the app id itself."""
        with self._lock:
            wrapper = self._apps.get(app_id, {}).get(app_id)
            return wrapper.sink if wrapper is not None else None

    def container_metrics_for(self, app_id: str) -> Sink | None:
        """The app's container-metric sink, if any."""
        with self._lock:
            sinks = self._apps.get(app_id)
            if sinks is None:
                self._log.debug(
                    "GroupedSinks.container_metrics_for: no sink cache for app id %s", app_id
                )
                return None
            wrapper = sinks.get(_CONTAINER_METRICS_PREFIX + app_id)
            if wrapper is None:
                self._log.debug(
                    "GroupedSinks.container_metrics_for: no ContainerMetricSink found "
                    "for app id %s",
                    app_id,
                )
                return None
            return wrapper.sink

    def close_and_delete(self, sink: Sink) -> bool:
        """Unregister an app sink and close its channel; False if unknown."""
        with self._lock:
            sinks = self._apps.get(sink.stream_id, {})
            wrapper = sinks.get(sink.identifier)
            if wrapper is None:
                return False
            if wrapper.channel is not None:
                wrapper.channel.close()
            del sinks[sink.identifier]
            return True

    def close_and_delete_firehose(self, sink: Sink) -> bool:
        """Unregister a firehose sink, dropping its group once it is empty."""
        with self._lock:
            subscription_id = sink.stream_id
            group = self._firehoses.get(subscription_id)
            if group is None or not group.remove_sink(sink):
                return False
            if group.is_empty():
                del self._firehoses[subscription_id]
            return True

    def delete_all(self) -> None:
        """Unregister every sink and close every channel."""
        with self._lock:
            for sinks in self._apps.values():
                for wrapper in sinks.values():
                    if wrapper.channel is not None:
                        wrapper.channel.close()
            self._apps.clear()
            for group in self._firehoses.values():
                group.remove_all_sinks()
            self._firehoses.clear()

    def get_all_instrumentation_metrics(self) -> list[Metric]:
        """Non-zero metrics of every app sink."""
        with self._lock:
            return [
                metric
                for sinks in self._apps.values()
                for wrapper in sinks.values()
                if (metric := wrapper.sink.instrumentation_metric()).value != 0
            ]