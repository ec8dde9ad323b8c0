from __future__ import annotations

import logging

import pytest
from pydantic import ValidationError

from app.config import Settings, get_settings
from app.logging_config import LOGGING_CONFIG, configure_logging
from app.monitoring.registry import MetricsRegistry


def test_defaults_match_realtime_contract() -> None:
    settings = Settings(_env_file=None)

    assert settings.connection_timeout_seconds == 10.0
    assert settings.dashboard_reconnect_delays == [1.0, 2.0, 4.0, 8.0]
    assert settings.dashboard_max_reconnect_attempts == 3
    assert settings.messaging_max_reconnect_attempts == 5
    assert settings.max_reconnect_delay_seconds == 30.0
    assert settings.polling_interval_seconds == 30.0
    assert settings.session_cookies() == {}


def test_delay_tables_parse_from_environment(monkeypatch) -> None:
    monkeypatch.setenv("DASHBOARD_RECONNECT_DELAYS", "0.5, 1, 2")
    monkeypatch.setenv("MESSAGING_RECONNECT_DELAYS", "[1, 3, 9]")
    monkeypatch.setenv("SESSION_TOKEN", "abc")
    monkeypatch.setenv("WS_BASE_URL", "https://realtime.example.com/")

    settings = get_settings()

    assert settings.dashboard_reconnect_delays == [0.5, 1.0, 2.0]
    assert settings.messaging_reconnect_delays == [1.0, 3.0, 9.0]
    assert settings.session_cookies() == {"accessToken": "abc"}
    assert settings.realtime_origin == "https://realtime.example.com"
    assert get_settings() is settings


def test_empty_ws_base_url_falls_back_to_api_origin() -> None:
    settings = Settings(_env_file=None, api_base_url="https://app.example.com/")

    assert settings.realtime_origin == "https://app.example.com"


@pytest.mark.parametrize("value", ["4,2,1", ""])
def test_invalid_delay_tables_are_rejected(monkeypatch, value) -> None:
    monkeypatch.setenv("DASHBOARD_RECONNECT_DELAYS", value)

    with pytest.raises(ValidationError):
        Settings(_env_file=None)


@pytest.fixture()
def restore_logging():
    root = logging.getLogger()
    connection_logger = logging.getLogger("spacemarket.realtime.connection")
    saved = (list(root.handlers), root.level, list(connection_logger.handlers), connection_logger.level)
    yield
    root.handlers[:] = saved[0]
    root.setLevel(saved[1])
    connection_logger.handlers[:] = saved[2]
    connection_logger.setLevel(saved[3])
    connection_logger.propagate = True


def test_configure_logging_applies_level_without_mutating_defaults(restore_logging) -> None:
    configure_logging("debug")

    assert logging.getLogger().level == logging.DEBUG
    assert logging.getLogger("spacemarket.realtime.connection").level == logging.DEBUG
    assert logging.getLogger("socketio").level == logging.WARNING
    assert LOGGING_CONFIG["root"]["level"] == "INFO"


def test_registry_renders_prometheus_text() -> None:
    registry = MetricsRegistry()
    attempts = registry.counter("attempts_total", "Attempts.", label_names=("namespace", "outcome"))
    state = registry.gauge("state", "State.", label_names=("namespace",))
    idle = registry.counter("idle_total", "Never touched.")

    attempts.labels("/dashboard", "error").inc()
    attempts.labels("/dashboard", "error").inc(2)
    state.labels("/dashboard").set(1)
    state.labels("/dashboard").dec()

    rendered = registry.render()

    assert 'attempts_total{namespace="/dashboard",outcome="error"} 3' in rendered
    assert 'state{namespace="/dashboard"} 0' in rendered
    assert "# TYPE attempts_total counter" in rendered
    assert "idle_total 0" in rendered
    assert idle.value() == 0.0
    assert registry.get("state") is state


def test_registry_guards_misuse() -> None:
    registry = MetricsRegistry()
    counter = registry.counter("events_total", "Events.", label_names=("event",))

    with pytest.raises(ValueError):
        registry.counter("events_total", "Duplicate.")
    with pytest.raises(ValueError):
        counter.labels("a", "b")
    with pytest.raises(ValueError):
        counter.labels("a").inc(-1)
    with pytest.raises(AttributeError):
        counter.labels("a").set(3)
