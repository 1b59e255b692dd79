"""IP ranges used to blacklist syslog drain destinations."""

from __future__ import annotations

import ipaddress
import socket
from dataclasses import dataclass
from typing import Iterable
from urllib.parse import SplitResult, urlsplit


class IPRangeError(ValueError):
    """An IP range or a URL checked against ranges is unusable."""


@dataclass(frozen=True)
class IPRange:
    """An inclusive range of IP addresses."""

    start: str
    end: str


def _parse_ip(text: str) -> bytes | None:
    """Return the 16-byte form of an address, or None if it is not one."""
    if not isinstance(text, str) or "%" in text:
        return None
    try:
        address = ipaddress.ip_address(text)
    except ValueError:
        return None
    if address.version == 4:
        return b"\x00" * 10 + b"\xff\xff" + address.packed
    return address.packed


def validate_ip_addresses(ranges: Iterable[IPRange]) -> None:
    """Raise IPRangeError unless every range holds two addresses in order."""
    for ip_range in ranges:
        start, end = _parse_ip(ip_range.start), _parse_ip(ip_range.end)
        for text, parsed in ((ip_range.start, start), (ip_range.end, end)):
            if parsed is None:
                raise IPRangeError(f"Invalid IP Address for Blacklist IP Range: {text}")
        if start > end:
            raise IPRangeError(
                f"Invalid Blacklist IP Range: Start {ip_range.start} "
                f"has to be before End {ip_range.end}"
            )


def _resolve(host: str) -> bytes:
    try:
        infos = socket.getaddrinfo(host, None)
    except (OSError, UnicodeError) as exc:
        raise IPRangeError(f"Resolving host failed: {exc}") from exc
    chosen = next((info for info in infos if info[0] == socket.AF_INET), infos[0])
    resolved = _parse_ip(str(chosen[4][0]).split("%", 1)[0])
    if resolved is None:
        raise IPRangeError(f"Resolving host failed: unusable address for {host}")
    return resolved


def ip_outside_of_ranges(url: str | SplitResult, ranges: Iterable[IPRange] | None) -> bool:
    """Tell whether the URL's host lies outside every one of the ranges.

    Raises IPRangeError for a URL without a host or an unresolvable host.
    """
    parts = urlsplit(url) if isinstance(url, str) else url
    if not parts.netloc:
        shown = url if isinstance(url, str) else parts.geturl()
        raise IPRangeError(
            f"Incomplete URL {shown}. "
            "This could be caused by an URL without slashes or protocol."
        )
    host = parts.netloc.rpartition("@")[2].split(":")[0]
    address = _parse_ip(host) or _resolve(host)
    for ip_range in ranges or ():
        if (_parse_ip(ip_range.start) or b"") <= address <= (_parse_ip(ip_range.end) or b""):
            return False
    return True