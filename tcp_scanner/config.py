from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .errors import InvalidConcurrencyError, InvalidRangeError, InvalidTimeoutError
from .ports import PortRange, parse_port_range
from .targets import parse_target

DEFAULT_TIMEOUT = 2
DEFAULT_CONCURRENCY = 200


@dataclass(frozen=True)
class ScanConfig:
    target: str
    ports: PortRange
    timeout: float
    concurrency: int

    def __post_init__(self) -> None:
        # raises InvalidAddressError; stores the canonical form
        object.__setattr__(self, "target", parse_target(self.target))

        if not isinstance(self.ports, PortRange):
            raise InvalidRangeError(f"ports must be a PortRange, got {self.ports!r}")

        timeout = self.timeout
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or not timeout > 0:
            raise InvalidTimeoutError(f"Timeout must be > 0 seconds, got {timeout!r}")
        object.__setattr__(self, "timeout", float(timeout))

        concurrency = self.concurrency
        if isinstance(concurrency, bool) or not isinstance(concurrency, int) or concurrency < 1:
            raise InvalidConcurrencyError(f"Concurrency must be >= 1, got {concurrency!r}")


def build_config(
    target: str,
    port_range: Optional[str] = None,
    timeout: float = DEFAULT_TIMEOUT,
    concurrency: int = DEFAULT_CONCURRENCY,
    lenient_ports: bool = False,
) -> ScanConfig:
    """
    Turns raw user input into a ScanConfig.
    Raises a ConfigError subclass on the first bad value.
    """
    return ScanConfig(
        target=target,
        ports=parse_port_range(port_range, fallback=lenient_ports),
        timeout=timeout,
        concurrency=concurrency,
    )
