"""Tasks running on a DEA and the reader for its instances.json snapshot."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Any

_TRACKED_STATES = frozenset({"RUNNING", "STARTING", "STOPPING"})


@dataclass
class Task:
    """A unit of work (app instance or staging job) whose logs are forwarded."""

    application_id: str = ""
    drain_urls: list[str] | None = None
    index: int = 0
    warden_job_id: int = 0
    warden_container_path: str = ""
    source_name: str = ""

    def identifier(self) -> str:
        """Directory of the task's job, which holds its log sockets."""
        return os.path.normpath(
            os.path.join(self.warden_container_path, "jobs", str(self.warden_job_id))
        )


def _object(value: Any) -> dict[str, Any]:
    """A JSON object with its keys lower-cased, as keys match ignoring case."""
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"expected an object, got {value!r}")
    return {key.lower(): item for key, item in value.items()}


def _get(obj: dict[str, Any], key: str, kind: type, default: Any) -> Any:
    value = obj.get(key)
    if value is None:
        return default
    if not isinstance(value, kind) or (kind is int and (isinstance(value, bool) or value < 0)):
        raise ValueError(f"{key}: unexpected value {value!r}")
    if kind is list and not all(isinstance(item, str) for item in value):
        raise ValueError(f"{key}: expected a list of strings, got {value!r}")
    return value


def read_tasks(data: bytes | str | None) -> dict[str, Task]:
    """Parse instances.json content into tasks keyed by their identifier.

    Raises ValueError on empty data, malformed JSON or fields of the wrong type.
    """
    if not data:
        raise ValueError("Empty data, can't parse json")
    document = _object(json.loads(data))
    tasks: dict[str, Task] = {}

    for raw in _get(document, "instances", list, []) if False else document.get("instances") or []:
        instance = _object(raw)
        task = Task(
            application_id=_get(instance, "application_id", str, ""),
            source_name="App",
            warden_container_path=_get(instance, "warden_container_path", str, ""),
            warden_job_id=_get(instance, "warden_job_id", int, 0),
            index=_get(instance, "instance_index", int, 0),
            drain_urls=_get(instance, "syslog_drain_urls", list, None),
        )
        state = _get(instance, "state", str, "")
        if task.warden_container_path and task.warden_job_id and state in _TRACKED_STATES:
            tasks[task.identifier()] = task

    for raw in document.get("staging_tasks") or []:
        staging = _object(raw)
        message = _object(staging.get("staging_message"))
        task = Task(
            application_id=_get(message, "app_id", str, ""),
            source_name="STG",
            warden_container_path=_get(staging, "warden_container_path", str, ""),
            warden_job_id=_get(staging, "warden_job_id", int, 0),
            drain_urls=_get(staging, "syslog_drain_urls", list, None),
        )
        if task.warden_job_id:
            tasks[task.identifier()] = task

    return tasks