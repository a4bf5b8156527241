# linkwatch/prober/ping.py
import math
import re
import shutil
import subprocess
import sys
from datetime import datetime, timezone
from typing import Optional

from linkwatch.prober.base import Prober
from linkwatch.schemas import Endpoint, ProbeOutcome

DEFAULT_PING_BIN = shutil.which("ping") or "ping"

_LATENCY_RE = re.compile(r"time=(\d+(?:\.\d+)?)")

# (pattern, reason); first match wins, so specific causes come before packet loss
_FAILURE_PATTERNS = (
    ("no route to host", "no route"),
    ("destination host unreachable", "no route"),
    ("network is unreachable", "network unreachable"),
    ("destination net unreachable", "network unreachable"),
    ("unknown host", "dns failure"),
    ("cannot resolve", "dns failure"),
    ("name or service not known", "dns failure"),
    ("temporary failure in name resolution", "dns failure"),
    ("100.0% packet loss", "timeout"),
    ("100% packet loss", "timeout"),
    ("request timeout", "timeout"),
)


def parse_latency(output: str) -> Optional[float]:
    """Return the first `time=<float>` value in a ping report, in ms."""
    m = _LATENCY_RE.search(output)
    if m is None:
        return None
    return float(m.group(1))


def classify_failure(stdout: str, stderr: str) -> str:
    text = f"{stdout}\n{stderr}".lower()
    for pattern, reason in _FAILURE_PATTERNS:
        if pattern in text:
            return reason
    for line in stderr.splitlines():
        if line.strip():
            return line.strip()
    return "ping failed"


class PingProber(Prober):
    """
    Sends one ICMP echo per call through the system `ping` binary.
    macOS takes -W in milliseconds, Linux (iputils) in whole seconds.
    """

    def __init__(self, ping_bin: str = DEFAULT_PING_BIN, platform: str = sys.platform):
        self.ping = ping_bin
        self.platform = platform

    def _build_cmd(self, address: str, timeout_ms: int) -> list[str]:
        if self.platform == "darwin":
            wait = str(timeout_ms)
        else:
            wait = str(max(1, math.ceil(timeout_ms / 1000)))
        return [self.ping, "-c", "1", "-W", wait, address]

    def probe_once(self, endpoint: Endpoint, timeout_ms: int) -> ProbeOutcome:
        timestamp = datetime.now(timezone.utc)
        cmd = self._build_cmd(endpoint.address, timeout_ms)
        # guard in case ping ignores -W (e.g. stuck resolving a hostname)
        guard_s = timeout_ms / 1000.0 + 2.0

        try:
            proc = subprocess.run(cmd, capture_output=True, text=True,
                                  encoding="utf-8", errors="replace",
                                  timeout=guard_s, check=False)
        except subprocess.TimeoutExpired:
            return self._failure(endpoint, timestamp, "timeout")
        except OSError as e:
            return self._failure(endpoint, timestamp, f"failed to execute ping: {e}")

        if proc.returncode == 0:
            return ProbeOutcome(
                endpoint_address=endpoint.address,
                endpoint_name=endpoint.name,
                timestamp=timestamp,
                success=True,
                latency_ms=parse_latency(proc.stdout),
            )
        return self._failure(endpoint, timestamp, classify_failure(proc.stdout, proc.stderr))

    @staticmethod
    def _failure(endpoint: Endpoint, timestamp: datetime, reason: str) -> ProbeOutcome:
        return ProbeOutcome(
            endpoint_address=endpoint.address,
            endpoint_name=endpoint.name,
            timestamp=timestamp,
            success=False,
            failure_reason=reason,
        )
