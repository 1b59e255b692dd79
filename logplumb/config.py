"""Doppler server configuration."""

from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping

from .iprange import IPRange, validate_ip_addresses

HEARTBEAT_INTERVAL = 10.0
"""Seconds between health-status heartbeats written to the store."""


class ConfigError(ValueError):
    """The configuration is malformed or incomplete."""


def _check(value: Any, kind: type, key: str) -> Any:
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise ConfigError(f"{key}: expected {kind.__name__}, got {value!r}")
    return value


def _ranges(value: Any) -> list[IPRange]:
    ranges = []
    for item in _check(value, list, "BlackListIps"):
        item = {key.lower(): v for key, v in _check(item or {}, dict, "BlackListIps").items()}
        ranges.append(
            IPRange(
                start=_check(item.get("start") or "", str, "BlackListIps.Start"),
                end=_check(item.get("end") or "", str, "BlackListIps.End"),
            )
        )
    return ranges


@dataclass
class Config:
    """Settings of a doppler server."""

    etcd_urls: list[str] = field(default_factory=list)
    etcd_max_concurrent_requests: int = 0
    index: int = 0
    dropsonde_incoming_messages_port: int = 0
    outgoing_port: int = 0
    log_file_path: str = ""
    max_retained_log_messages: int = 0
    ws_message_buffer_size: int = 0
    shared_secret: str = ""
    skip_cert_verify: bool = False
    black_list_ips: list[IPRange] | None = None
    job_name: str = ""
    zone: str = ""
    container_metric_ttl_seconds: int = 0
    sink_inactivity_timeout_seconds: int = 0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Config:
        """Build a config from decoded JSON; keys match ignoring case."""
        lowered = {key.lower(): value for key, value in data.items()}
        defaults = cls()
        values: dict[str, Any] = {}
        for item in fields(cls):
            raw = lowered.get(item.name.replace("_", ""))
            if raw is None:
                continue
            if item.name == "black_list_ips":
                values[item.name] = _ranges(raw)
            else:
                values[item.name] = _check(raw, type(getattr(defaults, item.name)), item.name)
        return cls(**values)

    def validate(self) -> None:
        """Raise ConfigError or IPRangeError if the settings cannot be used."""
        if self.max_retained_log_messages == 0:
            raise ConfigError("Need max number of log messages to retain per application")
        if self.black_list_ips is not None:
            validate_ip_addresses(self.black_list_ips)


def load_config(path: str | Path) -> Config:
    """Read a JSON config file."""
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"{path}: {exc}") from exc
    if data is None:
        return Config()
    return Config.from_dict(_check(data, dict, str(path)))


def parse_config(
    debug: bool, config_file: str | Path, log_file_path: str | Path | None
) -> tuple[Config, logging.Logger]:
    """Load the config and set up the server's logger."""
    config = load_config(config_file)
    logger = logging.Logger("doppler", logging.DEBUG if debug else logging.INFO)
    handler: logging.Handler = (
        logging.FileHandler(log_file_path, encoding="utf-8")
        if log_file_path
        else logging.StreamHandler(sys.stdout)
    )
    handler.setFormatter(logging.Formatter("%(asctime)s %(name)s %(levelname)s %(message)s"))
    logger.addHandler(handler)
    logger.info("Startup: Setting up the doppler server")
    return config, logger