# linkwatch/scheduler.py
import logging
import queue
import threading
import time
import weakref
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Optional

from linkwatch.prober.base import Prober
from linkwatch.schemas import Endpoint, ProbeOutcome

logger = logging.getLogger(__name__)

_PUT_POLL_S = 0.25
_GET_POLL_S = 0.1


def _safe_probe(prober: Prober, endpoint: Endpoint, timeout_ms: int) -> ProbeOutcome:
    try:
        return prober.probe_once(endpoint, timeout_ms)
    except Exception as exc:  # noqa: BLE001
        logger.exception("probe of %s raised", endpoint.address)
        return ProbeOutcome(
            endpoint_address=endpoint.address,
            endpoint_name=endpoint.name,
            timestamp=datetime.now(timezone.utc),
            success=False,
            failure_reason=f"probe error: {exc}",
        )


def _publish(out: queue.Queue, item, stop: threading.Event) -> bool:
    # block while the consumer is slow, but give up once it is gone
    while not stop.is_set():
        try:
            out.put(item, timeout=_PUT_POLL_S)
            return True
        except queue.Full:
            continue
    return False


def _run_ticks(prober: Prober, endpoints: list[Endpoint], interval_s: float,
               timeout_ms: int, max_workers: int, out: queue.Queue,
               stop: threading.Event) -> None:
    # nothing here may reference the OutcomeStream, or dropping it would never stop us
    started = time.monotonic()
    tick = 0
    try:
        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="linkwatch-probe") as pool:
            while True:
                tick += 1
                # fixed period anchored at start; a slow tick makes the next one start at once
                delay = started + tick * interval_s - time.monotonic()
                if stop.wait(max(0.0, delay)):
                    return

                futures = [pool.submit(_safe_probe, prober, e, timeout_ms) for e in endpoints]
                for fut in futures:
                    if not _publish(out, fut.result(), stop):
                        return
    finally:
        logger.debug("scheduler stopped after %d ticks", tick)


class OutcomeStream:
    """
    Iterator over probe outcomes, in FIFO publish order. Closing the stream,
    or simply dropping every reference to it, stops the scheduler.
    """

    def __init__(self, out: queue.Queue, stop: threading.Event, thread: threading.Thread):
        self._q = out
        self._stop = stop
        self._thread = thread
        self._finalizer = weakref.finalize(self, stop.set)

    def __iter__(self):
        return self

    def __next__(self) -> ProbeOutcome:
        return self._take(None)

    def get(self, timeout: Optional[float] = None) -> Optional[ProbeOutcome]:
        """Next outcome, or None if none arrives within timeout or the stream ended."""
        try:
            return self._take(timeout)
        except StopIteration:
            return None

    def _take(self, timeout: Optional[float]) -> Optional[ProbeOutcome]:
        # once stopped (or the worker died) only what is already buffered is handed out
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            if self._stop.is_set() or not self._thread.is_alive():
                try:
                    return self._q.get_nowait()
                except queue.Empty:
                    raise StopIteration from None
            wait = _GET_POLL_S
            if deadline is not None:
                wait = min(wait, deadline - time.monotonic())
                if wait <= 0:
                    return None
            try:
                return self._q.get(timeout=wait)
            except queue.Empty:
                continue

    @property
    def closed(self) -> bool:
        return self._stop.is_set()

    def close(self, wait: float = 0) -> None:
        self._stop.set()
        if wait:
            self._thread.join(wait)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False


class PingScheduler:
    def __init__(self, prober: Prober, endpoints, interval_ms: int, timeout_ms: int,
                 max_workers: Optional[int] = None, queue_size: int = 100):
        self.prober = prober
        self.endpoints = list(endpoints)
        self.interval_ms = interval_ms
        self.timeout_ms = timeout_ms
        self.max_workers = max_workers or max(1, len(self.endpoints))
        self.queue_size = queue_size

    @classmethod
    def from_settings(cls, prober: Prober, settings) -> "PingScheduler":
        return cls(
            prober,
            settings.all_endpoints(),
            interval_ms=settings.ping_interval_ms,
            timeout_ms=settings.ping_timeout_ms,
            max_workers=settings.max_workers,
        )

    def start(self) -> OutcomeStream:
        out: queue.Queue = queue.Queue(maxsize=self.queue_size)
        stop = threading.Event()
        thread = threading.Thread(
            target=_run_ticks,
            args=(self.prober, list(self.endpoints), self.interval_ms / 1000.0,
                  self.timeout_ms, self.max_workers, out, stop),
            name="linkwatch-scheduler",
            daemon=True,
        )
        thread.start()
        logger.info("scheduler started: %d endpoints every %dms",
                    len(self.endpoints), self.interval_ms)
        return OutcomeStream(out, stop, thread)
