"""Forwarding of a task's stdout and stderr sockets to a log emitter."""

from __future__ import annotations

import logging
import os
import socket
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from .task import Task

_log = logging.getLogger(__name__)


class MessageType(Enum):
    """The stream a log line came from."""

    OUT = "OUT"
    ERR = "ERR"


@dataclass(frozen=True)
class LogRecord:
    """One line of output from a task."""

    app_id: str
    source_type: str
    source_instance: str
    message_type: MessageType
    message: str


Emitter = Callable[[LogRecord], None]


class TaskListenerError(ConnectionError):
    """A task's log sockets could not be opened."""


def socket_name(message_type: MessageType) -> str:
    """File name of the socket that carries the given stream."""
    return "stdout.sock" if message_type is MessageType.OUT else "stderr.sock"


def _dial(identifier: str, message_type: MessageType) -> socket.socket:
    path = os.path.join(identifier, socket_name(message_type))
    for attempt in range(10):
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            sock.connect(path)
        except OSError as exc:
            sock.close()
            _log.debug("Could not read from socket %s, %s, retrying: %s",
                       message_type.value, identifier, exc)
            if attempt == 9:
                raise
            time.sleep(0.1)
        else:
            _log.debug("Opened socket %s, %s", message_type.value, identifier)
            return sock
    raise AssertionError("unreachable")


class TaskListener:
    """Reads a task's stdout and stderr sockets line by line.

    Both sockets are opened on construction; TaskListenerError is raised,
    with no socket left open, if either cannot be opened.
    """

    def __init__(self, task: Task, emit: Emitter) -> None:
        self.task = task
        self._emit = emit
        self._identifier = task.identifier()
        try:
            self._stdout = _dial(self._identifier, MessageType.OUT)
        except OSError as exc:
            raise TaskListenerError(f"Connection to stdout {self._identifier} failed") from exc
        try:
            self._stderr = _dial(self._identifier, MessageType.ERR)
        except OSError as exc:
            self._stdout.close()
            raise TaskListenerError(f"Connection to stderr {self._identifier} failed") from exc

    def start_listening(self) -> None:
        """Forward both streams until either ends; blocks until both stop."""
        _log.debug("Starting to listen to %s", self._identifier)
        threads = [
            threading.Thread(target=self._forward, args=pair, daemon=True)
            for pair in ((self._stdout, MessageType.OUT), (self._stderr, MessageType.ERR))
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

    def stop_listening(self) -> None:
        """Close both sockets, which ends any forwarding in progress."""
        for sock in (self._stdout, self._stderr):
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            sock.close()
        _log.debug("Shutting down logs for %s", self.task.application_id)

    def _forward(self, sock: socket.socket, message_type: MessageType) -> None:
        pending = b""
        try:
            while True:
                try:
                    chunk = sock.recv(65536)
                except OSError:
                    return
                if not chunk:
                    break
                *lines, pending = (pending + chunk).split(b"\n")
                for line in lines:
                    self._send(line, message_type)
            self._send(pending, message_type)
        finally:
            self.stop_listening()

    def _send(self, line: bytes, message_type: MessageType) -> None:
        line = line.removesuffix(b"\r")
        if line:
            self._emit(
                LogRecord(
                    app_id=self.task.application_id,
                    source_type=self.task.source_name,
                    source_instance=str(self.task.index),
                    message_type=message_type,
                    message=line.decode("utf-8", errors="replace"),
                )
            )