# tests/test_scheduler.py
import gc
import queue
import threading
import time

from linkwatch.prober.base import Prober
from linkwatch.prober.fake import FakeProber
from linkwatch.scheduler import OutcomeStream, PingScheduler
from linkwatch.schemas import Endpoint

ENDPOINTS = [Endpoint("a", "10.0.0.1"), Endpoint("b", "10.0.0.2"), Endpoint("c", "10.0.0.3")]


class SlowFirstProber(Prober):
    """First endpoint answers last, so ordering can't come from completion order."""
    def __init__(self):
        self.inner = FakeProber()
        self.active = 0
        self.peak = 0
        self.lock = threading.Lock()

    def probe_once(self, endpoint, timeout_ms):
        with self.lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
        try:
            time.sleep(0.05 if endpoint.address == "10.0.0.1" else 0.01)
            return self.inner.probe_once(endpoint, timeout_ms)
        finally:
            with self.lock:
                self.active -= 1


class ExplodingProber(Prober):
    def probe_once(self, endpoint, timeout_ms):
        if endpoint.address == "10.0.0.2":
            raise RuntimeError("boom")
        return FakeProber().probe_once(endpoint, timeout_ms)


def take(stream, n, timeout=5.0):
    out = []
    deadline = time.monotonic() + timeout
    while len(out) < n and time.monotonic() < deadline:
        item = stream.get(timeout=0.5)
        if item is not None:
            out.append(item)
    return out


def test_outcomes_published_in_configuration_order_per_tick():
    prober = SlowFirstProber()
    with PingScheduler(prober, ENDPOINTS, interval_ms=20, timeout_ms=1000).start() as stream:
        outcomes = take(stream, 6)
    assert [o.endpoint_address for o in outcomes] == [e.address for e in ENDPOINTS] * 2
    # checks within a tick ran in parallel
    assert prober.peak > 1


def test_timestamps_increase_across_ticks():
    with PingScheduler(FakeProber(), ENDPOINTS[:1], interval_ms=10, timeout_ms=1000).start() as stream:
        outcomes = take(stream, 3)
    stamps = [o.timestamp for o in outcomes]
    assert stamps == sorted(stamps)


def test_first_tick_waits_one_interval():
    start = time.monotonic()
    with PingScheduler(FakeProber(), ENDPOINTS[:1], interval_ms=200, timeout_ms=1000).start() as stream:
        first = stream.get(timeout=5)
    assert first is not None
    assert time.monotonic() - start >= 0.19


def test_raising_pinger_becomes_failure_outcome():
    with PingScheduler(ExplodingProber(), ENDPOINTS, interval_ms=10, timeout_ms=1000).start() as stream:
        outcomes = take(stream, 6)
    assert len(outcomes) == 6
    bad = [o for o in outcomes if o.endpoint_address == "10.0.0.2"]
    assert bad and all(not o.success for o in bad)
    assert "boom" in bad[0].failure_reason


def test_close_stops_background_thread():
    stream = PingScheduler(FakeProber(), ENDPOINTS, interval_ms=10, timeout_ms=1000).start()
    assert take(stream, 3)
    thread = stream._thread
    stream.close(wait=5)
    assert stream.closed
    assert not thread.is_alive()


def test_dropping_the_stream_stops_background_thread():
    stream = PingScheduler(FakeProber(), ENDPOINTS, interval_ms=10, timeout_ms=1000).start()
    assert take(stream, 1)
    thread = stream._thread
    del stream
    gc.collect()
    thread.join(5)
    assert not thread.is_alive()


def test_iteration_ends_after_close():
    stream = PingScheduler(FakeProber(), ENDPOINTS[:1], interval_ms=10, timeout_ms=1000).start()
    seen = 0
    for _ in stream:
        seen += 1
        if seen == 3:
            stream.close()
    # remaining buffered items drain, then the iterator stops
    assert seen >= 3


def drain_in_background(stream, timeout=5.0):
    seen = []
    worker = threading.Thread(target=lambda: seen.extend(stream), daemon=True)
    worker.start()
    worker.join(timeout)
    return seen, worker


def test_iteration_ends_after_close_with_full_queue():
    stream = PingScheduler(FakeProber(), ENDPOINTS, interval_ms=10, timeout_ms=1000,
                           queue_size=2).start()
    time.sleep(0.3)  # consumer idle; the buffer fills and the producer blocks
    stream.close(wait=2)
    assert not stream._thread.is_alive()

    seen, worker = drain_in_background(stream)
    assert not worker.is_alive(), "iteration did not terminate"
    assert len(seen) <= 2


def test_iteration_ends_when_worker_is_gone():
    finished = threading.Thread(target=lambda: None)
    finished.start()
    finished.join()
    buffered: queue.Queue = queue.Queue()
    buffered.put("first")
    stream = OutcomeStream(buffered, threading.Event(), finished)

    seen, worker = drain_in_background(stream)
    assert not worker.is_alive()
    assert seen == ["first"]
    assert stream.get(timeout=0.1) is None


def test_get_times_out_while_running():
    stream = PingScheduler(FakeProber(), ENDPOINTS, interval_ms=10_000, timeout_ms=1000).start()
    try:
        started = time.monotonic()
        assert stream.get(timeout=0.2) is None
        assert time.monotonic() - started < 2.0
    finally:
        stream.close(wait=2)
