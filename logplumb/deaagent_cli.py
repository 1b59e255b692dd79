"""Command that runs the DEA logging agent."""

from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
import threading
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Mapping, Sequence, TextIO

from .agent import Agent
from .config import ConfigError
from .task_listener import LogRecord

_FIELDS = {
    "index": int,
    "metron_address": str,
    "shared_secret": str,
    "etcd_urls": list,
    "etcd_max_concurrent_requests": int,
}


@dataclass
class DeaAgentConfig:
    """Settings of the DEA logging agent."""

    index: int = 0
    metron_address: str = ""
    shared_secret: str = ""
    etcd_urls: list[str] = field(default_factory=list)
    etcd_max_concurrent_requests: int = 0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DeaAgentConfig:
        """Build a config from decoded JSON; keys match ignoring case."""
        lowered = {key.lower(): value for key, value in data.items()}
        values = {}
        for name, kind in _FIELDS.items():
            raw = lowered.get(name.replace("_", ""))
            if raw is None:
                continue
            if not isinstance(raw, kind) or (kind is int and isinstance(raw, bool)):
                raise ConfigError(f"{name}: expected {kind.__name__}, got {raw!r}")
            values[name] = raw
        return cls(**values)

    def validate(self) -> None:
        """Raise ConfigError if the settings cannot be used."""
        if not self.metron_address:
            raise ConfigError("Need Metron address (host:port).")


def load_agent_config(path: str | Path) -> DeaAgentConfig:
    """Read the agent's JSON config file."""
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"{path}: {exc}") from exc
    if data is None:
        return DeaAgentConfig()
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: expected a JSON object")
    return DeaAgentConfig.from_dict(data)


class _JsonLines:
    """Writes each log record as one JSON object per line."""

    def __init__(self, stream: TextIO) -> None:
        self._stream = stream
        self._lock = threading.Lock()

    def __call__(self, record: LogRecord) -> None:
        line = json.dumps({**asdict(record), "message_type": record.message_type.value})
        with self._lock:
            self._stream.write(line + "\n")
            self._stream.flush()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="deaagent", description="DEA logging agent")
    parser.add_argument("-logFile", "--logFile", dest="log_file", default="",
                        help="The agent log file, defaults to STDOUT")
    parser.add_argument("-debug", "--debug", action="store_true", help="Debug logging")
    parser.add_argument("-config", "--config", default="config/dea_logging_agent.json",
                        help="Location of the DEA loggregator agent config json file")
    parser.add_argument("-instancesFile", "--instancesFile", dest="instances_file",
                        default="/var/vcap/data/dea_next/db/instances.json",
                        help="The DEA instances JSON file")
    return parser


def _wait_for_interrupt() -> None:
    interrupted = threading.Event()
    previous = signal.signal(signal.SIGINT, lambda signum, frame: interrupted.set())
    try:
        while not interrupted.wait(1.0):
            pass
    finally:
        signal.signal(signal.SIGINT, previous)


def main(argv: Sequence[str] | None = None) -> int:
    """Run the agent until interrupted."""
    args = _build_parser().parse_args(argv)
    config = load_agent_config(args.config)

    handler: logging.Handler = (
        logging.FileHandler(args.log_file, encoding="utf-8")
        if args.log_file
        else logging.StreamHandler(sys.stdout)
    )
    handler.setFormatter(logging.Formatter("%(asctime)s %(name)s %(levelname)s %(message)s"))
    package_logger = logging.getLogger("logplumb")
    previous_level = package_logger.level
    package_logger.addHandler(handler)
    package_logger.setLevel(logging.DEBUG if args.debug else logging.INFO)
    try:
        log = logging.getLogger("logplumb.deaagent")
        log.info("Startup: Setting up the loggregator dea logging agent")
        config.validate()
        agent = Agent(args.instances_file, _JsonLines(sys.stdout))
        agent.start()
        _wait_for_interrupt()
        log.info("Shutting down")
        agent.stop()
    finally:
        package_logger.removeHandler(handler)
        package_logger.setLevel(previous_level)
        handler.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())