from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple

from .ports import PortRange


class ProbeStatus(Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"
    ERROR = "ERROR"


@dataclass(frozen=True)
class ProbeOutcome:
    port: int
    status: ProbeStatus
    elapsed_s: float = 0.0
    reason: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.status is ProbeStatus.OPEN


class ResultSet:
    """
    Port-ordered outcomes of one scan. Read-only; built by ResultSetBuilder.

    `complete` is False when the scan was cancelled, in which case ports
    that were never probed are simply absent.
    """

    __slots__ = ("_target", "_ports", "_outcomes", "_complete")

    def __init__(
        self,
        target: str,
        ports: PortRange,
        outcomes: Tuple[ProbeOutcome, ...],
        complete: bool,
    ):
        self._target = target
        self._ports = ports
        self._outcomes = outcomes
        self._complete = complete

    @property
    def target(self) -> str:
        return self._target

    @property
    def port_range(self) -> PortRange:
        return self._ports

    @property
    def complete(self) -> bool:
        return self._complete

    def __iter__(self) -> Iterator[ProbeOutcome]:
        return iter(self._outcomes)

    def __len__(self) -> int:
        return len(self._outcomes)

    def __getitem__(self, index: int) -> ProbeOutcome:
        return self._outcomes[index]

    def __repr__(self) -> str:
        return (
            f"ResultSet(target={self._target!r}, ports={self._ports}, "
            f"outcomes={len(self._outcomes)}, complete={self._complete})"
        )

    def get(self, port: int) -> Optional[ProbeOutcome]:
        for o in self._outcomes:
            if o.port == port:
                return o
        return None

    def ports(self) -> List[int]:
        return [o.port for o in self._outcomes]

    def count(self, status: ProbeStatus) -> int:
        return sum(1 for o in self._outcomes if o.status is status)

    def filter(self, status: ProbeStatus) -> "ResultSet":
        subset = tuple(o for o in self._outcomes if o.status is status)
        return ResultSet(self._target, self._ports, subset, self._complete)

    def open_ports(self) -> List[int]:
        return [o.port for o in self._outcomes if o.is_open]

    def summary(self) -> Dict[str, int]:
        return {s.value: self.count(s) for s in ProbeStatus}

    def to_records(self, two_status: bool = False) -> List[Dict[str, object]]:
        """
        Flattens to [{"ip", "port", "status"}] records.
        two_status folds ERROR into CLOSED for consumers that only know OPEN/CLOSED.
        """
        records = []
        for o in self._outcomes:
            status = o.status
            if two_status and status is ProbeStatus.ERROR:
                status = ProbeStatus.CLOSED
            records.append({"ip": self._target, "port": o.port, "status": status.value})
        return records


class ResultSetBuilder:
    """Accumulates outcomes during a scan. Owned by the scheduler loop only."""

    def __init__(self, target: str, ports: PortRange):
        self.target = target
        self.ports = ports
        self._by_port: Dict[int, ProbeOutcome] = {}

    def add(self, outcome: ProbeOutcome) -> None:
        if outcome.port not in self.ports:
            raise ValueError(f"Port {outcome.port} is outside scan range {self.ports}")
        if outcome.port in self._by_port:
            raise ValueError(f"Duplicate outcome for port {outcome.port}")
        self._by_port[outcome.port] = outcome

    def __len__(self) -> int:
        return len(self._by_port)

    def __contains__(self, port: int) -> bool:
        return port in self._by_port

    def freeze(self, complete: bool) -> ResultSet:
        ordered = tuple(self._by_port[p] for p in sorted(self._by_port))
        return ResultSet(self.target, self.ports, ordered, complete)
