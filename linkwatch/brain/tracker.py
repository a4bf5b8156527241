# linkwatch/brain/tracker.py
import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Optional

from linkwatch.brain.rules import degraded_rule, offline_rule, recovery_rule
from linkwatch.brain.state import AggregateState, EndpointState
from linkwatch.prober.base import PathTracer
from linkwatch.prober.traceroute import identify_failing_hop
from linkwatch.schemas import (
    NO_CHANGE,
    ConnectivityLevel,
    Degraded,
    Offline,
    Outage,
    PathTraceResult,
    ProbeOutcome,
    Recovered,
    TransitionEvent,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConnectivityTracker:
    """
    Hysteresis state machine over the probe outcome stream.

        online -> degraded -> offline -> online
                  degraded ----------> online

    Single writer: process() must be called from one thread, in the order
    outcomes were produced. Entering offline runs the path trace inline, so
    processing stalls until the tracer returns.
    """

    def __init__(self, settings, endpoints=None, tracer: Optional[PathTracer] = None,
                 diagnosis_target: Optional[str] = None,
                 clock: Callable[[], datetime] = _utcnow):
        self.s = settings
        endpoints = list(endpoints) if endpoints is not None else settings.all_endpoints()
        self.tracer = tracer
        self.diagnosis_target = diagnosis_target or settings.primary_target()
        self.clock = clock

        # insertion order = configuration order; failing lists follow it
        self._states: dict[str, EndpointState] = {e.address: EndpointState(e) for e in endpoints}
        self._agg = AggregateState()
        self._level: ConnectivityLevel = "online"
        self._outage: Optional[Outage] = None
        self._last_trace: Optional[PathTraceResult] = None

    # ------------------------------------------------------------------
    # read-only accessors
    # ------------------------------------------------------------------
    @property
    def level(self) -> ConnectivityLevel:
        return self._level

    @property
    def current_outage(self) -> Optional[Outage]:
        return self._outage

    @property
    def last_trace(self) -> Optional[PathTraceResult]:
        return self._last_trace

    @property
    def endpoint_states(self) -> dict[str, EndpointState]:
        # copies; callers must not mutate tracker-owned counters
        return {addr: replace(st) for addr, st in self._states.items()}

    @property
    def aggregate_failures(self) -> int:
        return self._agg.failures

    @property
    def aggregate_successes(self) -> int:
        return self._agg.successes

    def failing_endpoints(self) -> list[str]:
        return [addr for addr, st in self._states.items() if st.is_failing]

    # ------------------------------------------------------------------
    # state machine
    # ------------------------------------------------------------------
    def process(self, outcome: ProbeOutcome) -> TransitionEvent:
        st = self._states.get(outcome.endpoint_address)
        if st is not None:
            st.update(outcome)
        else:
            logger.debug("outcome for unconfigured endpoint %s ignored", outcome.endpoint_address)

        failing = self.failing_endpoints()
        all_healthy = not failing
        self._agg.update(any_failing=bool(failing))

        if self._level == "online":
            if degraded_rule(self._agg, self.s.degraded_threshold):
                self._level = "degraded"
                logger.warning("state: ONLINE -> DEGRADED (%d consecutive failures) failing=%s",
                               self._agg.failures, ", ".join(failing))
                return Degraded(failing_addresses=tuple(failing))

        elif self._level == "degraded":
            if recovery_rule(self._agg, all_healthy, self.s.recovery_threshold):
                self._level = "online"
                self._agg.failures = 0
                logger.info("state: DEGRADED -> ONLINE (%d consecutive successes)",
                            self._agg.successes)
                return NO_CHANGE
            if offline_rule(self._agg, self.s.offline_threshold):
                self._level = "offline"
                outage = self._open_outage(tuple(failing))
                logger.error("state: DEGRADED -> OFFLINE (%d consecutive failures) - outage started",
                             self._agg.failures)
                trace = self._diagnose(outage)
                return Offline(outage=outage, trace=trace)

        elif self._level == "offline":
            if recovery_rule(self._agg, all_healthy, self.s.recovery_threshold):
                self._level = "online"
                self._agg.failures = 0
                outage = self._close_outage()
                if outage is None:
                    # outage was force-closed earlier; nothing left to report
                    logger.info("state: OFFLINE -> ONLINE (no open outage)")
                    return NO_CHANGE
                logger.info("state: OFFLINE -> ONLINE (%d consecutive successes) - outage ended, duration: %.1fs",
                            self._agg.successes, outage.duration_secs or 0.0)
                return Recovered(outage=outage)

        return NO_CHANGE

    def force_close_outage(self, note: str = "monitor shutdown during outage") -> Optional[Outage]:
        """
        Close the open outage on behalf of the host (e.g. on shutdown) and
        annotate it. Returns None when no outage is open. The connectivity
        level is left as is.
        """
        outage = self._close_outage()
        if outage is not None:
            outage.notes = note
            logger.info("outage force-closed after %.1fs: %s", outage.duration_secs or 0.0, note)
        return outage

    # ------------------------------------------------------------------
    # outage slot
    # ------------------------------------------------------------------
    def _open_outage(self, affected: tuple[str, ...]) -> Outage:
        if self._outage is not None:
            raise RuntimeError("an outage is already open; tracker invariant violated")
        self._outage = Outage(start_time=self.clock(), affected_endpoints=affected)
        return self._outage

    def _close_outage(self) -> Optional[Outage]:
        outage, self._outage = self._outage, None
        if outage is not None:
            outage.close(self.clock())
        return outage

    def _diagnose(self, outage: Outage) -> Optional[PathTraceResult]:
        if self.tracer is None or not self.diagnosis_target:
            return None
        logger.info("running path trace to %s", self.diagnosis_target)
        try:
            result = self.tracer.trace(self.diagnosis_target)
        except Exception as e:  # noqa: BLE001
            logger.error("path trace to %s failed: %s", self.diagnosis_target, e)
            result = PathTraceResult(target=self.diagnosis_target, timestamp=self.clock(),
                                     error=f"path trace failed: {e}")
        self._last_trace = result

        hop = identify_failing_hop(result)
        if hop is not None:
            outage.failing_hop, outage.failing_hop_address = hop
            logger.info("failing hop identified: %d (%s)", hop[0], hop[1])
        elif result.reached_target:
            logger.info("path trace reached %s (intermittent issue)", result.target)
        else:
            logger.info("could not identify failing hop (no hop responded)")
        return result
