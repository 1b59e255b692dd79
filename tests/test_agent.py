import json
import os
import shutil
import socket
import tempfile
import time

import pytest

from logplumb.agent import Agent
from logplumb.task import Task
from logplumb.task_listener import MessageType

SOCKET_PREFIX = b"\n\n\n\n"
EXPECTED_MESSAGE = "Some Output"


def _eventually(predicate, timeout=3.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def _listen(path):
    if os.path.exists(path):
        os.remove(path)
    server = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    server.bind(path)
    server.listen(8)
    server.settimeout(5)
    return server


def _setup_sockets(task):
    os.makedirs(task.identifier(), exist_ok=True)
    return (
        _listen(os.path.join(task.identifier(), "stdout.sock")),
        _listen(os.path.join(task.identifier(), "stderr.sock")),
    )


def _instance(tmpdir, app_id, job_id, index, drains=None):
    entry = {
        "state": "RUNNING",
        "application_id": app_id,
        "warden_job_id": job_id,
        "warden_container_path": tmpdir,
        "instance_index": index,
    }
    if drains is not None:
        entry["syslog_drain_urls"] = drains
    return entry


def _write(path, *instances):
    with open(path, "w", encoding="utf-8") as handle:
        json.dump({"instances": list(instances)}, handle)


def _sees_close(conn):
    conn.settimeout(5)
    try:
        return conn.recv(1) == b""
    except ConnectionError:
        return True


@pytest.fixture
def env():
    tmpdir = tempfile.mkdtemp(prefix="lp", dir="/tmp" if os.path.isdir("/tmp") else None)
    file_path = os.path.join(tmpdir, "instances.json")
    task1 = Task(application_id="1234", source_name="App", warden_job_id=56,
                 warden_container_path=tmpdir, index=3)
    task2 = Task(application_id="3456", source_name="App", warden_job_id=59,
                 warden_container_path=tmpdir, index=1)
    listeners = {"1234": _setup_sockets(task1), "3456": _setup_sockets(task2)}
    _write(
        file_path,
        _instance(tmpdir, "1234", 56, 3, ["url1"]),
        _instance(tmpdir, "3456", 59, 1),
    )
    records = []
    agent = Agent(file_path, records.append)
    yield agent, records, tmpdir, file_path, listeners
    for pair in listeners.values():
        for server in pair:
            server.close()
    agent.stop()
    shutil.rmtree(tmpdir, ignore_errors=True)


def test_picks_up_tasks_at_startup(env):
    agent, records, _, _, listeners = env
    agent.start()
    conn, _ = listeners["1234"][0].accept()
    with conn:
        conn.sendall(SOCKET_PREFIX + EXPECTED_MESSAGE.encode() + b"\n")
        assert _eventually(lambda: len(records) == 1)
        assert records[0].app_id == "1234"


def test_picks_up_new_tasks_while_running(env):
    agent, records, tmpdir, file_path, listeners = env
    agent.start()

    new_task = Task(application_id="5678", source_name="App", warden_job_id=58,
                    warden_container_path=tmpdir, index=0)
    listeners["5678"] = _setup_sockets(new_task)
    _write(
        file_path,
        _instance(tmpdir, "1234", 56, 3, ["url1"]),
        _instance(tmpdir, "3456", 59, 1),
        _instance(tmpdir, "5678", 58, 0, ["url2"]),
    )

    conn, _ = listeners["5678"][0].accept()
    with conn:
        conn.sendall(SOCKET_PREFIX + EXPECTED_MESSAGE.encode() + b"\n")
        assert _eventually(lambda: len(records) == 1)
        assert records[0].app_id == "5678"
        assert records[0].source_instance == "0"


def test_forwarded_message_structure(env):
    agent, records, _, _, listeners = env
    agent.start()
    conn, _ = listeners["1234"][0].accept()
    with conn:
        conn.sendall(SOCKET_PREFIX + EXPECTED_MESSAGE.encode() + b"\n")
        assert _eventually(lambda: len(records) == 1)
        record = records[0]
        assert record.source_type == "App"
        assert record.message_type is MessageType.OUT
        assert record.message == EXPECTED_MESSAGE
        assert not hasattr(record, "drain_urls")


def test_stops_listener_of_removed_task(env):
    agent, records, tmpdir, file_path, listeners = env
    agent.start()
    conn, _ = listeners["3456"][0].accept()
    with conn:
        conn.sendall(SOCKET_PREFIX + EXPECTED_MESSAGE.encode() + b"\n")
        assert _eventually(lambda: len(records) == 1)
        assert records[0].app_id == "3456"
        assert records[0].source_instance == "1"
        _write(file_path, _instance(tmpdir, "1234", 56, 3, ["url1"]))
        assert _sees_close(conn)


def test_deleting_file_stops_all_listeners(env):
    agent, records, _, file_path, listeners = env
    agent.start()
    first, _ = listeners["1234"][0].accept()
    second, _ = listeners["3456"][0].accept()
    with first, second:
        first.sendall(SOCKET_PREFIX + b"one\n")
        second.sendall(SOCKET_PREFIX + b"two\n")
        assert _eventually(lambda: len(records) == 2)
        assert sorted(record.app_id for record in records) == ["1234", "3456"]
        os.remove(file_path)
        assert _sees_close(first)
        assert _sees_close(second)


def test_stop_closes_task_sockets(env):
    agent, records, _, _, listeners = env
    agent.start()
    conn, _ = listeners["1234"][0].accept()
    with conn:
        conn.sendall(SOCKET_PREFIX + EXPECTED_MESSAGE.encode() + b"\n")
        assert _eventually(lambda: len(records) == 1)
        assert records[0].message == EXPECTED_MESSAGE
        agent.stop()
        assert _sees_close(conn)