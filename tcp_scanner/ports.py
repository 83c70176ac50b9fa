from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .errors import InvalidRangeError
from .logger import log_event

log = logging.getLogger(__name__)

MIN_PORT = 0
MAX_PORT = 65535


@dataclass(frozen=True)
class PortRange:
    start: int
    end: int

    def __post_init__(self) -> None:
        for p in (self.start, self.end):
            if not MIN_PORT <= p <= MAX_PORT:
                raise InvalidRangeError(f"Port out of range 0-65535: {p}")
        if self.start > self.end:
            raise InvalidRangeError(f"Invalid port range: start {self.start} > end {self.end}")

    @classmethod
    def parse(cls, text: str) -> "PortRange":
        """
        Parses "<start>-<end>" into a PortRange.
        Both sides must be plain decimal integers in 0-65535 and start <= end.
        A reversed range is an error, never swapped.
        """
        parts = text.split("-")
        if len(parts) != 2:
            raise InvalidRangeError(f"Port range must look like START-END: {text!r}")

        start = _parse_port(parts[0], text)
        end = _parse_port(parts[1], text)
        return cls(start, end)

    def expand(self) -> range:
        # a fresh range each call, so callers can iterate more than once
        return range(self.start, self.end + 1)

    def __iter__(self):
        return iter(self.expand())

    def __len__(self) -> int:
        return self.end - self.start + 1

    def __contains__(self, port: object) -> bool:
        return isinstance(port, int) and self.start <= port <= self.end

    def __str__(self) -> str:
        return f"{self.start}-{self.end}"


DEFAULT_PORT_RANGE = PortRange(1, 1024)


def _parse_port(s: str, text: str) -> int:
    s = s.strip()
    if not s.isdigit() or not s.isascii():
        raise InvalidRangeError(f"Invalid port {s!r} in range {text!r}")
    port = int(s)
    if port > MAX_PORT:
        raise InvalidRangeError(f"Port out of range 0-65535: {port}")
    return port


def parse_port_range(text: Optional[str], fallback: bool = False) -> PortRange:
    """
    Resolves the user's range text.

    No text means the default 1-1024. Malformed text raises InvalidRangeError
    unless fallback is set, in which case it is logged and the default is used.
    """
    if text is None:
        return DEFAULT_PORT_RANGE

    try:
        return PortRange.parse(text)
    except InvalidRangeError as e:
        if not fallback:
            raise
        log_event(log, "range_fallback", {
            "text": text,
            "error": str(e),
            "fallback": str(DEFAULT_PORT_RANGE),
        }, level=logging.WARNING)
        return DEFAULT_PORT_RANGE
