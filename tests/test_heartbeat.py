import threading
from datetime import timedelta

import pytest

from logplumb.config import Config
from logplumb.heartbeat import (
    HeartbeatError,
    StoreNode,
    heartbeat_key,
    start_heartbeats,
)

LOCAL_IP = "10.0.0.5"


class FakeStoreAdapter:
    def __init__(self, error=None, status=()):
        self.error = error
        self.status = list(status)
        self.maintained = None
        self.stopped = False
        self.status_drained = threading.Event()

    def maintain_node(self, node):
        if self.error is not None:
            raise self.error
        self.maintained = node

        def updates():
            yield from self.status
            self.status_drained.set()

        def stop():
            self.stopped = True

        return updates(), stop


def valid_config():
    return Config(
        job_name="doppler_z1",
        index=0,
        etcd_max_concurrent_requests=10,
        etcd_urls=["test:123", "test:456"],
        zone="z1",
        dropsonde_incoming_messages_port=1234,
    )


def test_heartbeat_key_format():
    config = Config(zone="z2", job_name="doppler_z2", index=7)
    assert heartbeat_key(config) == "/healthstatus/doppler/z2/doppler_z2/7"


def test_raises_when_store_adapter_is_none():
    with pytest.raises(HeartbeatError, match="store adapter is nil"):
        start_heartbeats(LOCAL_IP, 1.0, valid_config(), None)


def test_sends_heartbeat_to_store():
    adapter = FakeStoreAdapter()
    start_heartbeats(LOCAL_IP, 1.0, valid_config(), adapter)
    assert adapter.maintained.key == "/healthstatus/doppler/z1/doppler_z1/0"
    assert adapter.maintained.value == LOCAL_IP.encode()


def test_ttl_is_whole_seconds():
    adapter = FakeStoreAdapter()
    start_heartbeats(LOCAL_IP, timedelta(seconds=10, milliseconds=900), valid_config(), adapter)
    assert adapter.maintained == StoreNode(
        key="/healthstatus/doppler/z1/doppler_z1/0", value=LOCAL_IP.encode(), ttl=10
    )


def test_adapter_error_propagates():
    adapter = FakeStoreAdapter(error=RuntimeError("error"))
    with pytest.raises(RuntimeError, match="error"):
        start_heartbeats(LOCAL_IP, 1.0, valid_config(), adapter)


def test_no_heartbeat_without_store_urls():
    adapter = FakeStoreAdapter()
    config = Config(job_name="doppler_z1", index=0, etcd_max_concurrent_requests=10)
    result = start_heartbeats(LOCAL_IP, 1.0, config, adapter)
    assert result is None
    assert adapter.maintained is None


def test_returned_function_stops_heartbeats():
    adapter = FakeStoreAdapter()
    stop = start_heartbeats(LOCAL_IP, 1.0, valid_config(), adapter)
    assert adapter.stopped is False
    stop()
    assert adapter.stopped is True


def test_status_updates_are_consumed():
    adapter = FakeStoreAdapter(status=[True, True, False])
    start_heartbeats(LOCAL_IP, 1.0, valid_config(), adapter)
    assert adapter.status_drained.wait(2.0) is True


def test_negative_ttl_is_rejected():
    adapter = FakeStoreAdapter()
    with pytest.raises(ValueError):
        start_heartbeats(LOCAL_IP, -1.0, valid_config(), adapter)