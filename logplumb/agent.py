"""Watches a DEA's instances.json and keeps a log listener per running task."""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import replace
from pathlib import Path

from .task import Task, read_tasks
from .task_listener import Emitter, TaskListener, TaskListenerError

_log = logging.getLogger(__name__)

_POLL_INTERVAL = 0.1


class Agent:
    """Forwards the logs of every task listed in an instances.json file.

    The file is polled for changes; new tasks get a listener, tasks that
    disappear have theirs stopped, and deleting the file stops them all.
    """

    def __init__(self, instances_json_path: str | os.PathLike[str], emit: Emitter) -> None:
        self.instances_json_path = os.fspath(instances_json_path)
        self._emit = emit
        self._known: dict[str, TaskListener] = {}
        self._lock = threading.Lock()
        self._stopping = threading.Event()
        self._poller: threading.Thread | None = None
        self._listener_threads: list[threading.Thread] = []

    def start(self) -> None:
        """Begin watching the file in the background."""
        self._poller = threading.Thread(target=self._poll, name="instances-poller", daemon=True)
        self._poller.start()

    def stop(self) -> None:
        """Stop watching, stop every listener and wait for them to finish."""
        self._stopping.set()
        if self._poller is not None:
            self._poller.join()
        self._reset_cache()
        with self._lock:
            threads = list(self._listener_threads)
        for thread in threads:
            thread.join()

    def _poll(self) -> None:
        directory = os.path.dirname(self.instances_json_path) or "."
        while not os.path.isdir(directory):
            _log.warning("Reading failed, retrying. %s does not exist", directory)
            if self._stopping.wait(_POLL_INTERVAL):
                return

        _log.info("Read initial tasks data")
        signature = self._signature()
        self._process_instances_json()

        while not self._stopping.wait(_POLL_INTERVAL):
            current = self._signature()
            if current == signature:
                continue
            signature = current
            _log.debug("Change detected on %s", self.instances_json_path)
            if current is None:
                self._reset_cache()
            else:
                self._process_instances_json()

    def _signature(self) -> tuple[int, int, int] | None:
        try:
            stat = os.stat(self.instances_json_path)
        except OSError:
            return None
        return stat.st_ino, stat.st_size, stat.st_mtime_ns

    def _process_instances_json(self) -> None:
        tasks = self._read_instances_json()
        if tasks is not None:
            self._process_tasks(tasks)

    def _read_instances_json(self) -> dict[str, Task] | None:
        try:
            data = Path(self.instances_json_path).read_bytes()
        except OSError as exc:
            _log.warning("Reading failed, retrying. %s", exc)
            return None
        try:
            return read_tasks(data)
        except ValueError as exc:
            _log.warning("Failed parsing json %s: %r Trying again...", exc, data)
            return None

    def _process_tasks(self, current_tasks: dict[str, Task]) -> None:
        with self._lock:
            if self._stopping.is_set():
                return
            _log.debug("Reading tasks data after event on instances.json")
            _log.debug("Current known tasks are %s", list(self._known))

            for identifier in [key for key in self._known if key not in current_tasks]:
                self._known.pop(identifier).stop_listening()
                _log.debug("Removing stale task %s", identifier)

            for identifier, task in current_tasks.items():
                if identifier in self._known:
                    continue
                task = replace(task, drain_urls=None)
                _log.debug("Adding new task %s", identifier)
                try:
                    listener = TaskListener(task, self._emit)
                except TaskListenerError as exc:
                    _log.debug("%s", exc)
                    continue
                self._known[identifier] = listener
                thread = threading.Thread(
                    target=self._run_listener, args=(identifier, listener), daemon=True
                )
                self._listener_threads = [t for t in self._listener_threads if t.is_alive()]
                self._listener_threads.append(thread)
                thread.start()

    def _run_listener(self, identifier: str, listener: TaskListener) -> None:
        try:
            listener.start_listening()
        finally:
            with self._lock:
                if self._known.get(identifier) is listener:
                    del self._known[identifier]

    def _reset_cache(self) -> None:
        with self._lock:
            for listener in self._known.values():
                listener.stop_listening()