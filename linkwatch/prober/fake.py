# linkwatch/prober/fake.py
from collections import deque
from datetime import datetime, timezone

from linkwatch.prober.base import PathTracer, Prober
from linkwatch.schemas import Endpoint, PathTraceResult, ProbeOutcome


class FakeProber(Prober):
    """
    script: dict[address] -> sequence of booleans (or latency floats) to replay.
    True / a float means success, False means failure. When an address runs
    out of script, `default` is used (success unless told otherwise).
    """
    def __init__(self, script=None, default=True):
        self.script = {}
        self.default = default
        self.calls = []
        if script:
            for k, v in script.items():
                self.script[k] = deque(v)

    def probe_once(self, endpoint: Endpoint, timeout_ms: int) -> ProbeOutcome:
        self.calls.append(endpoint.address)
        dq = self.script.get(endpoint.address)
        step = dq.popleft() if dq else self.default

        ok = step is not False
        latency = float(step) if ok and not isinstance(step, bool) else (1.0 if ok else None)
        return ProbeOutcome(
            endpoint_address=endpoint.address,
            endpoint_name=endpoint.name,
            timestamp=datetime.now(timezone.utc),
            success=ok,
            latency_ms=latency,
            failure_reason=None if ok else "timeout",
        )


class FakeTracer(PathTracer):
    """Returns the hops it was built with; reached_target is computed from them."""
    def __init__(self, hops=()):
        self.hops = tuple(hops)
        self.targets = []

    def trace(self, target: str) -> PathTraceResult:
        self.targets.append(target)
        reached = bool(self.hops) and self.hops[-1].address == target
        return PathTraceResult(
            target=target,
            timestamp=datetime.now(timezone.utc),
            hops=self.hops,
            reached_target=reached,
        )
