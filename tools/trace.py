# tools/trace.py
# Usage:
#   python3 -m tools.trace [target] [--timeout 2] [--max-hops 30]
#
# Runs one path trace and prints hops plus the last responding hop as JSON.

import argparse
import json

from linkwatch.prober.traceroute import TracerouteDiagnoser, identify_failing_hop


def main(argv=None):
    ap = argparse.ArgumentParser(description="Manual path diagnosis")
    ap.add_argument("target", nargs="?", default="8.8.8.8")
    ap.add_argument("--timeout", type=int, default=2, help="Per-hop wait (seconds)")
    ap.add_argument("--max-hops", type=int, default=30)
    args = ap.parse_args(argv)

    result = TracerouteDiagnoser(timeout_s=args.timeout, max_hops=args.max_hops).trace(args.target)
    summary = result.to_dict()
    hop = identify_failing_hop(result)
    summary["failing_hop"] = {"ordinal": hop[0], "address": hop[1]} if hop else None
    print(json.dumps(summary, indent=2))


if __name__ == "__main__":
    main()
