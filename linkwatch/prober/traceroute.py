# linkwatch/prober/traceroute.py
import logging
import math
import shutil
import subprocess
from datetime import datetime, timezone
from typing import Optional

from linkwatch.prober.base import PathTracer
from linkwatch.schemas import PathHop, PathTraceResult

logger = logging.getLogger(__name__)

DEFAULT_TRACEROUTE_BIN = shutil.which("traceroute") or "traceroute"


def parse_hop_line(line: str) -> Optional[PathHop]:
    """
    Parse one hop line of a numeric traceroute report:
        " 1  192.168.1.1  1.234 ms"
        " 3  * * *"
    Returns None for anything else (header, blank, unknown format).
    """
    parts = line.split()
    if not parts:
        return None
    try:
        ordinal = int(parts[0])
    except ValueError:
        return None
    if ordinal < 1 or len(parts) < 2:
        return None

    if parts[1] == "*":
        return PathHop(ordinal=ordinal, timed_out=True)

    latency = None
    for i, part in enumerate(parts):
        if part == "ms" and i > 0:
            try:
                latency = float(parts[i - 1])
            except ValueError:
                continue
            break

    return PathHop(ordinal=ordinal, address=parts[1], latency_ms=latency)


def parse_traceroute_output(output: str) -> tuple[PathHop, ...]:
    hops = []
    for line in output.splitlines():
        line = line.strip()
        if not line or line.startswith("traceroute to"):
            continue
        hop = parse_hop_line(line)
        if hop is not None:
            hops.append(hop)
    return tuple(hops)


def reached_target(hops, target: str) -> bool:
    # exact string match only; no DNS or CIDR equivalence
    if not hops:
        return False
    return hops[-1].address == target


def identify_failing_hop(result: PathTraceResult) -> Optional[tuple[int, str]]:
    """
    Return (ordinal, address) of the last hop that answered before the trace
    went cold, or None when the target was reached or no hop answered.

    This is a heuristic: a timeout in the middle of the path followed by a
    later answering hop reports the later hop, not the silent one.
    """
    if result.reached_target:
        return None
    for hop in reversed(result.hops):
        if not hop.timed_out and hop.address:
            return hop.ordinal, hop.address
    return None


class TracerouteDiagnoser(PathTracer):
    """
    Wraps the system `traceroute` (numeric, one query per hop). The whole run
    is bounded by timeout_s * max_hops plus a margin; on expiry whatever was
    printed so far is parsed.
    """

    def __init__(self, timeout_s: float = 2, max_hops: int = 30,
                 traceroute_bin: str = DEFAULT_TRACEROUTE_BIN):
        self.timeout_s = max(1, math.ceil(timeout_s))
        self.max_hops = max_hops
        self.traceroute = traceroute_bin

    def _build_cmd(self, target: str) -> list[str]:
        return [
            self.traceroute,
            "-n",
            "-q", "1",
            "-w", str(self.timeout_s),
            "-m", str(self.max_hops),
            target,
        ]

    def trace(self, target: str) -> PathTraceResult:
        timestamp = datetime.now(timezone.utc)
        guard_s = self.timeout_s * self.max_hops + 5

        try:
            proc = subprocess.run(self._build_cmd(target), capture_output=True, text=True,
                                  encoding="utf-8", errors="replace",
                                  timeout=guard_s, check=False)
            out = proc.stdout
        except subprocess.TimeoutExpired as e:
            logger.warning("traceroute to %s exceeded %ss, using partial output", target, guard_s)
            out = e.stdout or ""
            if isinstance(out, bytes):
                out = out.decode("utf-8", errors="replace")
        except OSError as e:
            logger.error("failed to execute traceroute: %s", e)
            return PathTraceResult(target=target, timestamp=timestamp,
                                   error=f"failed to execute traceroute: {e}")

        hops = parse_traceroute_output(out)
        return PathTraceResult(
            target=target,
            timestamp=timestamp,
            hops=hops,
            reached_target=reached_target(hops, target),
        )
