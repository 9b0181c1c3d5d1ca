"""
core/results.py
Result model shared by every stage of a scan run.

Everything here is immutable once built: the engine creates a PortOutcome
exactly once per port, the fingerprinting stage attaches a
ServiceIdentification, and the final ScanResult is handed to the
presentation layer and never mutated afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from utils.constants import PortState, UNKNOWN_SERVICE


@dataclass(frozen=True)
class TimingParameters:
    concurrency_limit: int
    connect_timeout:   float          # seconds
    probe_timeout:     float          # seconds
    template:          int = 3
    measured_rtt:      Optional[float] = None
    adaptive:          bool = False

    def __post_init__(self) -> None:
        if self.concurrency_limit < 1:
            raise ValueError("concurrency_limit must be positive")
        if self.connect_timeout <= 0 or self.probe_timeout <= 0:
            raise ValueError("timeouts must be positive")


@dataclass(frozen=True)
class PortOutcome:
    port:         int
    state:        PortState
    # None: no passive read attempted; b"": attempted, nothing arrived
    raw_response: Optional[bytes] = None
    rtt:          Optional[float] = None


@dataclass(frozen=True)
class ServiceIdentification:
    """Detected service information."""
    service_name:   str = UNKNOWN_SERVICE
    version_string: Optional[str] = None
    banner_text:    Optional[str] = None
    product:        Optional[str] = None
    tls:            bool = False
    # conventional service for the port; set only when the service is unknown
    port_hint:      Optional[str] = None

    @property
    def display_name(self) -> str:
        return f"ssl/{self.service_name}" if self.tls else self.service_name

    def __str__(self) -> str:
        parts = [self.display_name]
        if self.product:
            parts.append(self.product)
        if self.version_string:
            parts.append(self.version_string)
        return " ".join(parts)


@dataclass(frozen=True)
class PortRecord:
    outcome:        PortOutcome
    identification: Optional[ServiceIdentification] = None

    @property
    def port(self) -> int:
        return self.outcome.port

    @property
    def state(self) -> PortState:
        return self.outcome.state


@dataclass(frozen=True)
class ProgressEvent:
    completed_count: int
    total_count:     int
    elapsed_time:    float

    @property
    def percent(self) -> float:
        if self.total_count == 0:
            return 100.0
        return 100.0 * self.completed_count / self.total_count

    @property
    def is_final(self) -> bool:
        return self.completed_count >= self.total_count


@dataclass(frozen=True)
class ScanStats:
    ports_scanned:  int = 0
    ports_open:     int = 0
    ports_closed:   int = 0
    ports_filtered: int = 0
    elapsed_s:      float = 0.0
    rate_per_s:     float = 0.0


@dataclass(frozen=True)
class ScanResult:
    target:     str
    records:    Tuple[PortRecord, ...]
    parameters: Optional[TimingParameters] = None
    elapsed:    float = 0.0
    complete:   bool = True

    @classmethod
    def assemble(
        cls,
        target: str,
        ports: Sequence[int],
        outcomes: Dict[int, PortOutcome],
        identifications: Optional[Dict[int, ServiceIdentification]] = None,
        **kwargs: Any,
    ) -> "ScanResult":
        """Build a result in canonical PortSpec order, whatever order the
        outcomes completed in. Ports without an outcome are left out."""
        identifications = identifications or {}
        records = tuple(
            PortRecord(outcomes[p], identifications.get(p))
            for p in ports
            if p in outcomes
        )
        return cls(target=target, records=records, **kwargs)

    def with_identifications(
        self, identifications: Dict[int, ServiceIdentification]
    ) -> "ScanResult":
        records = tuple(
            PortRecord(r.outcome, identifications.get(r.port, r.identification))
            for r in self.records
        )
        return ScanResult(self.target, records, self.parameters,
                          self.elapsed, self.complete)

    @property
    def ports(self) -> List[int]:
        return [r.port for r in self.records]

    def by_state(self, state: PortState) -> List[PortRecord]:
        return [r for r in self.records if r.state == state]

    def open_ports(self) -> List[PortRecord]:
        return self.by_state(PortState.OPEN)

    def stats(self) -> ScanStats:
        n = len(self.records)
        return ScanStats(
            ports_scanned  = n,
            ports_open     = len(self.by_state(PortState.OPEN)),
            ports_closed   = len(self.by_state(PortState.CLOSED)),
            ports_filtered = len(self.by_state(PortState.FILTERED)),
            elapsed_s      = self.elapsed,
            rate_per_s     = n / self.elapsed if self.elapsed > 0 else 0.0,
        )

    def to_dict(self, include_closed: bool = True) -> Dict[str, Any]:
        """Plain-data view for JSON serialization."""
        ports = []
        for r in self.records:
            if not include_closed and r.state != PortState.OPEN:
                continue
            ident = r.identification
            ports.append({
                "port":    r.port,
                "state":   r.state.value,
                "service": ident.display_name if ident else None,
                "product": ident.product if ident else None,
                "version": ident.version_string if ident else None,
                "banner":  ident.banner_text if ident else None,
                "port_hint": ident.port_hint if ident else None,
            })
        data: Dict[str, Any] = {
            "target":   self.target,
            "complete": self.complete,
            "elapsed_s": round(self.elapsed, 3),
            "ports":    ports,
        }
        if self.parameters is not None:
            data["timing"] = {
                "template":        self.parameters.template,
                "concurrency":     self.parameters.concurrency_limit,
                "connect_timeout": self.parameters.connect_timeout,
                "probe_timeout":   self.parameters.probe_timeout,
                "measured_rtt":    self.parameters.measured_rtt,
            }
        return data
