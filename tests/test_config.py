# tests/test_config.py
import logging

import pytest

from linkwatch.config import ConfigError, Settings, load_settings
from linkwatch.logs import setup_logging
from linkwatch.prober.gateway import parse_linux_route, parse_macos_route
from linkwatch.schemas import Endpoint


def test_default_settings():
    s = Settings().validate()
    assert s.ping_interval_ms == 1000
    assert (s.degraded_threshold, s.offline_threshold, s.recovery_threshold) == (3, 5, 2)
    assert [e.address for e in s.all_endpoints()] == ["8.8.8.8", "1.1.1.1"]
    assert s.primary_target() == "8.8.8.8"


def test_load_settings_from_toml(tmp_path):
    cfg = tmp_path / "config.toml"
    cfg.write_text(
        """
[monitor]
ping_interval_ms = 500
degraded_threshold = 5
offline_threshold = 8

[targets]
gateway = "192.168.1.1"
targets = [
    { name = "Custom", ip = "9.9.9.9" }
]

[logging]
level = "debug"
""",
        encoding="utf-8",
    )
    s = load_settings(cfg)
    assert s.ping_interval_ms == 500
    assert s.degraded_threshold == 5
    assert s.endpoints == (Endpoint("Custom", "9.9.9.9"),)
    assert [e.address for e in s.all_endpoints()] == ["192.168.1.1", "9.9.9.9"]
    # gateway is probed first, so it is also the default diagnosis target
    assert s.primary_target() == "192.168.1.1"
    assert s.log_level == "debug"


def test_missing_file_gives_defaults(tmp_path):
    assert load_settings(tmp_path / "nope.toml") == Settings()


def test_malformed_toml_raises(tmp_path):
    cfg = tmp_path / "config.toml"
    cfg.write_text("[monitor\nping_interval_ms = ", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_settings(cfg)


@pytest.mark.parametrize("field,value", [
    ("degraded_threshold", 0),
    ("recovery_threshold", -1),
    ("ping_timeout_ms", "2000"),
    ("degraded_threshold", True),
    ("max_workers", 0),
    ("max_workers", "4"),
    ("max_workers", False),
])
def test_invalid_values_rejected(field, value):
    with pytest.raises(ConfigError):
        Settings(**{field: value}).validate()


def test_empty_endpoint_list_rejected():
    with pytest.raises(ConfigError):
        Settings(endpoints=()).validate()


def test_threshold_order_only_warns(caplog):
    with caplog.at_level(logging.WARNING, logger="linkwatch.config"):
        Settings(degraded_threshold=6, offline_threshold=4).validate()
    assert "out of the usual order" in caplog.text


def test_explicit_diagnosis_target():
    assert Settings(diagnosis_target="9.9.9.9").primary_target() == "9.9.9.9"


def test_setup_logging_adds_rotating_file(tmp_path):
    logger = logging.getLogger("linkwatch")
    saved = logger.handlers[:]
    logger.handlers.clear()
    try:
        setup_logging(Settings(log_file=tmp_path / "logs" / "monitor.log", log_level="debug"))
        kinds = {type(h).__name__ for h in logger.handlers}
        assert kinds == {"TimedRotatingFileHandler", "StreamHandler"}
        assert logger.level == logging.DEBUG
    finally:
        for h in logger.handlers:
            h.close()
        logger.handlers[:] = saved


def test_gateway_parsers():
    assert parse_linux_route("default via 192.168.1.1 dev wlan0 proto dhcp metric 600\n") == "192.168.1.1"
    assert parse_linux_route("") is None
    mac = "   route to: default\ndestination: default\n    gateway: 10.0.0.1\n  interface: en0\n"
    assert parse_macos_route(mac) == "10.0.0.1"
    assert parse_macos_route("destination: default") is None
