# linkwatch/prober/base.py
from abc import ABC, abstractmethod

from linkwatch.schemas import Endpoint, PathTraceResult, ProbeOutcome


class Prober(ABC):
    @abstractmethod
    def probe_once(self, endpoint: Endpoint, timeout_ms: int) -> ProbeOutcome:
        """Send exactly one reachability check to endpoint and return its outcome."""
        raise NotImplementedError


class PathTracer(ABC):
    @abstractmethod
    def trace(self, target: str) -> PathTraceResult:
        """Run one multi-hop path trace against target. Must not raise on launch errors."""
        raise NotImplementedError
