# tools/run_monitor.py
# Usage examples:
#   python3 -m tools.run_monitor
#   python3 -m tools.run_monitor --config ~/.local/share/linkwatch/config.toml
#   python3 -m tools.run_monitor fake --limit 40

import argparse
import json
import logging
from pathlib import Path

from linkwatch.brain.controller import MonitorController
from linkwatch.brain.tracker import ConnectivityTracker
from linkwatch.config import load_settings
from linkwatch.logs import setup_logging
from linkwatch.prober.gateway import detect_gateway
from linkwatch.scheduler import PingScheduler
from linkwatch.schemas import PathHop
from linkwatch.store import OutageStore


def run_with_fake(args, s):
    from linkwatch.prober.fake import FakeProber, FakeTracer
    # first endpoint drops for 8 ticks after 3 good ones, then comes back
    first = s.all_endpoints()[0].address
    prober = FakeProber(script={first: [True] * 3 + [False] * 8})
    tracer = FakeTracer(hops=[
        PathHop(1, "192.168.1.1", 1.2),
        PathHop(2, "10.0.0.1", 5.6),
        PathHop(3, timed_out=True),
    ])
    s.ping_interval_ms = min(s.ping_interval_ms, 50)
    return prober, tracer, OutageStore(":memory:")


def run_with_system(args, s):
    from linkwatch.prober.ping import PingProber
    from linkwatch.prober.traceroute import TracerouteDiagnoser
    if s.gateway is None and args.detect_gateway:
        s.gateway = detect_gateway()
        if s.gateway:
            logging.getLogger("linkwatch").info("detected gateway %s", s.gateway)
    tracer = TracerouteDiagnoser(timeout_s=s.diagnosis_timeout_s, max_hops=s.diagnosis_max_hops)
    return PingProber(), tracer, OutageStore(s.resolved_database_path())


def build_argparser():
    ap = argparse.ArgumentParser(description="Network connectivity monitor")
    ap.add_argument("mode", nargs="?", default="system", choices=["system", "fake"],
                    help="'fake' replays a scripted outage instead of running ping")
    ap.add_argument("--config", type=Path, help="Path to config.toml")
    ap.add_argument("--limit", type=int, help="Stop after this many outcomes")
    ap.add_argument("--detect-gateway", action="store_true", default=False,
                    help="Also probe the default gateway if none is configured")
    return ap


def main(argv=None):
    args = build_argparser().parse_args(argv)
    s = load_settings(args.config)
    log = setup_logging(s)

    if args.mode == "fake":
        prober, tracer, store = run_with_fake(args, s)
    else:
        prober, tracer, store = run_with_system(args, s)

    endpoints = s.all_endpoints()
    log.info("monitoring %s", ", ".join(f"{e.name} ({e.address})" for e in endpoints))
    scheduler = PingScheduler.from_settings(prober, s)
    tracker = ConnectivityTracker(s, endpoints, tracer=tracer)
    ctrl = MonitorController(scheduler, tracker, store)

    try:
        res = ctrl.run(limit=args.limit)
    except KeyboardInterrupt:
        log.info("shutting down...")
        ctrl.shutdown()
        res = {"processed": ctrl.processed, "level": tracker.level,
               "outages": [o.to_dict() for o in ctrl.outages]}
    finally:
        store.close()
    print(json.dumps(res, indent=2))


if __name__ == "__main__":
    main()
