# linkwatch/brain/controller.py

import logging
import sqlite3
from typing import Optional

from linkwatch.brain.tracker import ConnectivityTracker
from linkwatch.scheduler import OutcomeStream, PingScheduler
from linkwatch.schemas import Offline, ProbeOutcome, Recovered, TransitionEvent
from linkwatch.store import OutageStore

logger = logging.getLogger(__name__)


class MonitorController:
    """
    Host loop: pulls outcomes from the scheduler, feeds them to the tracker
    one at a time and hands the results to the store.
    """

    def __init__(self, scheduler: PingScheduler, tracker: ConnectivityTracker,
                 store: Optional[OutageStore] = None):
        self.scheduler = scheduler
        self.tracker = tracker
        self.store = store
        self.stream: Optional[OutcomeStream] = None
        self.processed = 0
        self.outages = []
        # last (success, rounded latency) per endpoint; pings are stored only on change
        self._last_seen: dict[str, tuple] = {}

    def run(self, limit: Optional[int] = None) -> dict:
        self.stream = self.scheduler.start()
        try:
            for outcome in self.stream:
                self.handle(outcome)
                if limit is not None and self.processed >= limit:
                    break
        finally:
            self.shutdown()

        return {
            "processed": self.processed,
            "level": self.tracker.level,
            "outages": [o.to_dict() for o in self.outages],
        }

    def handle(self, outcome: ProbeOutcome) -> TransitionEvent:
        event = self.tracker.process(outcome)
        self.processed += 1

        # transitions themselves are logged by the tracker
        if isinstance(event, Offline):
            outage = event.outage
            self.outages.append(outage)
            if self.store is not None:
                try:
                    outage_id = self.store.insert_outage(outage)
                    if event.trace is not None:
                        self.store.insert_trace(outage_id, event.trace)
                    logger.info("outage recorded with id %d", outage_id)
                except sqlite3.Error as e:
                    logger.error("failed to record outage: %s", e)

        elif isinstance(event, Recovered):
            self._save_outage(event.outage)

        self._log_ping(outcome)
        return event

    def shutdown(self) -> None:
        if self.stream is not None:
            self.stream.close()
            self.stream = None
        outage = self.tracker.force_close_outage("monitor shutdown during outage")
        if outage is not None:
            self._save_outage(outage)

    def _save_outage(self, outage) -> None:
        if self.store is None or outage.id is None:
            return
        try:
            self.store.update_outage(outage)
        except sqlite3.Error as e:
            logger.error("failed to update outage %s: %s", outage.id, e)

    def _log_ping(self, outcome: ProbeOutcome) -> None:
        latency = round(outcome.latency_ms) if outcome.latency_ms is not None else None
        current = (outcome.success, latency)
        if self._last_seen.get(outcome.endpoint_address) == current:
            return
        self._last_seen[outcome.endpoint_address] = current

        shown = f"{outcome.latency_ms:.1f}ms" if outcome.latency_ms is not None else (
            outcome.failure_reason or "timeout")
        logger.info("[%s] %s %s (%s) - %s", self.tracker.level.upper(),
                    "ok" if outcome.success else "FAIL",
                    outcome.endpoint_name, outcome.endpoint_address, shown)
        if self.store is not None:
            try:
                self.store.insert_ping(outcome)
            except sqlite3.Error as e:
                logger.error("failed to log ping: %s", e)
