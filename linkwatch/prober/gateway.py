# linkwatch/prober/gateway.py
import subprocess
import sys
from typing import Optional


def parse_linux_route(output: str) -> Optional[str]:
    # "default via 192.168.1.1 dev wlan0 proto dhcp metric 600"
    for line in output.splitlines():
        parts = line.split()
        if len(parts) >= 3 and parts[0] == "default" and parts[1] == "via":
            return parts[2]
    return None


def parse_macos_route(output: str) -> Optional[str]:
    for line in output.splitlines():
        line = line.strip()
        if line.startswith("gateway:"):
            return line[len("gateway:"):].strip() or None
    return None


def detect_gateway(platform: str = sys.platform) -> Optional[str]:
    """Best-effort default gateway lookup; None when it can't be determined."""
    if platform == "darwin":
        cmd, parse = ["route", "-n", "get", "default"], parse_macos_route
    else:
        cmd, parse = ["ip", "route", "show", "default"], parse_linux_route
    try:
        proc = subprocess.run(cmd, capture_output=True, text=True,
                              encoding="utf-8", errors="replace", timeout=5, check=False)
    except (OSError, subprocess.TimeoutExpired):
        return None
    return parse(proc.stdout)
