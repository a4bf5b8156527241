# linkwatch/schemas.py
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Literal, Optional, Union

ConnectivityLevel = Literal["online", "degraded", "offline"]


@dataclass(frozen=True)
class Endpoint:
    name: str
    address: str


@dataclass(frozen=True)
class ProbeOutcome:
    endpoint_address: str
    endpoint_name: str
    timestamp: datetime
    success: bool
    latency_ms: Optional[float] = None
    failure_reason: Optional[str] = None

    def to_dict(self) -> dict:
        d = asdict(self)
        d["timestamp"] = self.timestamp.isoformat()
        return d


@dataclass(frozen=True)
class PathHop:
    ordinal: int
    address: Optional[str] = None
    latency_ms: Optional[float] = None
    timed_out: bool = False


@dataclass(frozen=True)
class PathTraceResult:
    target: str
    timestamp: datetime
    hops: tuple[PathHop, ...] = ()
    reached_target: bool = False
    error: Optional[str] = None  # launch failure, if the trace never ran

    def to_dict(self) -> dict:
        return {
            "target": self.target,
            "timestamp": self.timestamp.isoformat(),
            "hops": [asdict(h) for h in self.hops],
            "reached_target": self.reached_target,
            "error": self.error,
        }


@dataclass
class Outage:
    start_time: datetime
    affected_endpoints: tuple[str, ...] = ()
    id: Optional[int] = None
    end_time: Optional[datetime] = None
    duration_secs: Optional[float] = None
    failing_hop: Optional[int] = None
    failing_hop_address: Optional[str] = None
    notes: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.end_time is None

    def close(self, now: datetime) -> None:
        self.end_time = now
        self.duration_secs = max(0.0, (now - self.start_time).total_seconds())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration_secs": self.duration_secs,
            "affected_endpoints": list(self.affected_endpoints),
            "failing_hop": self.failing_hop,
            "failing_hop_address": self.failing_hop_address,
            "notes": self.notes,
        }


# --- transition events emitted by the tracker ---

@dataclass(frozen=True)
class NoChange:
    pass


@dataclass(frozen=True)
class Degraded:
    failing_addresses: tuple[str, ...] = ()


@dataclass(frozen=True)
class Offline:
    outage: Outage
    trace: Optional[PathTraceResult] = None


@dataclass(frozen=True)
class Recovered:
    outage: Outage


TransitionEvent = Union[NoChange, Degraded, Offline, Recovered]

NO_CHANGE = NoChange()


@dataclass(frozen=True)
class OutageStats:
    period_start: datetime
    period_end: datetime
    total_outages: int = 0
    total_downtime_secs: float = 0.0
    availability_percent: float = 100.0
    avg_outage_duration_secs: Optional[float] = None
    most_common_failing_hop: Optional[int] = None

    def to_dict(self) -> dict:
        d = asdict(self)
        d["period_start"] = self.period_start.isoformat()
        d["period_end"] = self.period_end.isoformat()
        return d
