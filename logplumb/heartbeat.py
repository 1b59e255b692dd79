"""Health-status heartbeats that register a doppler server in the store."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Iterable, Protocol

from .config import Config

_log = logging.getLogger(__name__)

StopHeartbeats = Callable[[], None]
"""Stops maintaining a node; returns once the heartbeats have stopped."""


class HeartbeatError(RuntimeError):
    """Heartbeats could not be started."""


@dataclass(frozen=True)
class StoreNode:
    """A key in the store, with its value and time to live in seconds."""

    key: str
    value: bytes
    ttl: int = 0


class StoreAdapter(Protocol):
    """A key-value store that can keep a node alive."""

    def maintain_node(self, node: StoreNode) -> tuple[Iterable[Any], StopHeartbeats]:
        """Keep the node alive until stopped.

        Returns the stream of status updates and a function that stops the
        maintenance. Raises if the node cannot be maintained.
        """
        ...


def heartbeat_key(config: Config) -> str:
    """Store key under which the server announces its health."""
    return f"/healthstatus/doppler/{config.zone}/{config.job_name}/{config.index}"


def _seconds(ttl: float | timedelta) -> int:
    if isinstance(ttl, timedelta):
        ttl = ttl.total_seconds()
    if ttl < 0:
        raise ValueError(f"ttl cannot be negative: {ttl}")
    return int(ttl)


def _watch_status(status: Iterable[Any]) -> None:
    for update in status:
        _log.debug(
            "Health updates channel pushed %s at time %s", update, time.strftime("%c")
        )


def start_heartbeats(
    local_ip: str,
    ttl: float | timedelta,
    config: Config,
    store_adapter: StoreAdapter | None,
) -> StopHeartbeats | None:
    """Maintain the server's health-status node in the store.

    Returns None, doing nothing, when the config names no store URLs;
    otherwise returns the function that stops the heartbeats. Raises
    HeartbeatError without a store adapter, and lets errors from the adapter
    propagate.
    """
    if not config.etcd_urls:
        return None

    if store_adapter is None:
        raise HeartbeatError("store adapter is nil")

    key = heartbeat_key(config)
    _log.debug("Starting Health Status Updates to Store: %s", key)
    status, stop = store_adapter.maintain_node(
        StoreNode(key=key, value=local_ip.encode("utf-8"), ttl=_seconds(ttl))
    )

    threading.Thread(
        target=_watch_status, args=(status,), name="heartbeat-status", daemon=True
    ).start()

    return stop