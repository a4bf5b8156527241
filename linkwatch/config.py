import logging
import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from linkwatch.schemas import Endpoint

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINTS = (
    Endpoint("Google DNS", "8.8.8.8"),
    Endpoint("Cloudflare", "1.1.1.1"),
)


class ConfigError(ValueError):
    pass


def data_dir() -> Path:
    override = os.environ.get("LINKWATCH_HOME", "").strip()
    if override:
        return Path(override).expanduser()
    return Path.home() / ".local" / "share" / "linkwatch"


@dataclass
class Settings:
    # [monitor]
    ping_interval_ms: int = 1000
    ping_timeout_ms: int = 2000
    degraded_threshold: int = 3      # consecutive aggregate failures -> degraded
    offline_threshold: int = 5       # consecutive aggregate failures -> offline
    recovery_threshold: int = 2      # consecutive all-healthy ticks -> online

    # diagnosis (traceroute on outage start)
    diagnosis_timeout_s: int = 2
    diagnosis_max_hops: int = 30

    # [targets]
    endpoints: tuple[Endpoint, ...] = DEFAULT_ENDPOINTS
    gateway: Optional[str] = None
    diagnosis_target: Optional[str] = None

    # [database] / [logging]
    database_path: Optional[Path] = None
    log_level: str = "info"
    log_file: Optional[Path] = None

    # cap on concurrent probes per tick; None means one worker per endpoint
    max_workers: Optional[int] = None

    def all_endpoints(self) -> list[Endpoint]:
        endpoints = []
        if self.gateway:
            endpoints.append(Endpoint("Gateway", self.gateway))
        endpoints.extend(self.endpoints)
        return endpoints

    def primary_target(self) -> str:
        if self.diagnosis_target:
            return self.diagnosis_target
        endpoints = self.all_endpoints()
        if not endpoints:
            raise ConfigError("no endpoints configured")
        return endpoints[0].address

    def resolved_database_path(self) -> Path:
        return self.database_path or data_dir() / "monitor.db"

    def validate(self) -> "Settings":
        for name in ("ping_interval_ms", "ping_timeout_ms", "degraded_threshold",
                     "offline_threshold", "recovery_threshold",
                     "diagnosis_timeout_s", "diagnosis_max_hops"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ConfigError(f"{name} must be an integer >= 1, got {value!r}")
        workers = self.max_workers
        if workers is not None and (isinstance(workers, bool) or not isinstance(workers, int)
                                    or workers < 1):
            raise ConfigError(f"max_workers must be an integer >= 1, got {workers!r}")
        if not self.all_endpoints():
            raise ConfigError("at least one endpoint must be configured")

        if not (self.recovery_threshold <= self.degraded_threshold <= self.offline_threshold):
            logger.warning(
                "thresholds out of the usual order (recovery=%d degraded=%d offline=%d)",
                self.recovery_threshold, self.degraded_threshold, self.offline_threshold,
            )
        return self


def _parse_endpoints(items) -> tuple[Endpoint, ...]:
    if not isinstance(items, list):
        raise ConfigError("targets.targets must be a list")
    endpoints = []
    for item in items:
        if not isinstance(item, dict):
            raise ConfigError(f"invalid target entry: {item!r}")
        address = str(item.get("ip") or item.get("address") or "").strip()
        if not address:
            raise ConfigError(f"target entry without address: {item!r}")
        name = str(item.get("name", address)).strip() or address
        endpoints.append(Endpoint(name, address))
    return tuple(endpoints)


def settings_from_dict(payload: dict) -> Settings:
    monitor = payload.get("monitor", {})
    targets = payload.get("targets", {})
    database = payload.get("database", {})
    logging_cfg = payload.get("logging", {})

    s = Settings()
    for key in ("ping_interval_ms", "ping_timeout_ms", "degraded_threshold",
                "offline_threshold", "recovery_threshold", "diagnosis_timeout_s",
                "diagnosis_max_hops", "max_workers"):
        if key in monitor:
            setattr(s, key, monitor[key])

    if "targets" in targets:
        s.endpoints = _parse_endpoints(targets["targets"])
    s.gateway = targets.get("gateway") or None
    s.diagnosis_target = targets.get("diagnosis_target") or None

    if database.get("path"):
        s.database_path = Path(database["path"]).expanduser()
    s.log_level = str(logging_cfg.get("level", s.log_level))
    if logging_cfg.get("file"):
        s.log_file = Path(logging_cfg["file"]).expanduser()

    return s.validate()


def load_settings(path: Optional[Path] = None) -> Settings:
    """
    Load settings from a TOML file. A missing file yields the defaults;
    a malformed one raises ConfigError.
    """
    path = Path(path) if path else data_dir() / "config.toml"
    if not path.exists():
        logger.debug("no config at %s, using defaults", path)
        return Settings().validate()
    try:
        with open(path, "rb") as fh:
            payload = tomllib.load(fh)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"failed to parse {path}: {e}") from e
    return settings_from_dict(payload)
