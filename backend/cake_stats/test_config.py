"""
Tests for Settings and environment loading.
"""
import pytest
from pydantic import ValidationError

from cake_stats.config import Settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("POLL_INTERVAL", "HISTORY", "TC_BINARY", "TC_TIMEOUT", "TC_JSON",
                 "CONTAINER", "CORS_ORIGINS", "LOG_LEVEL", "HOST", "PORT"):
        monkeypatch.delenv(f"CAKE_STATS_{name}", raising=False)


def test_defaults():
    settings = Settings.from_env()
    assert settings.poll_interval == 1.0
    assert settings.history_size == 300
    assert settings.tc_binary == "tc"
    assert settings.tc_json == "off"
    assert settings.container is None
    assert settings.port == 11112


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("CAKE_STATS_POLL_INTERVAL", "2.5")
    monkeypatch.setenv("CAKE_STATS_HISTORY", "60")
    monkeypatch.setenv("CAKE_STATS_TC_BINARY", "/usr/sbin/tc")
    monkeypatch.setenv("CAKE_STATS_TC_JSON", "AUTO")
    monkeypatch.setenv("CAKE_STATS_CONTAINER", "router")
    monkeypatch.setenv("CAKE_STATS_CORS_ORIGINS", "http://a.example, http://b.example,")
    monkeypatch.setenv("CAKE_STATS_PORT", "8080")

    settings = Settings.from_env()

    assert settings.poll_interval == 2.5
    assert settings.history_size == 60
    assert settings.tc_binary == "/usr/sbin/tc"
    assert settings.tc_json == "auto"
    assert settings.container == "router"
    assert settings.cors_origins == ["http://a.example", "http://b.example"]
    assert settings.port == 8080


def test_empty_variable_keeps_default(monkeypatch):
    monkeypatch.setenv("CAKE_STATS_CONTAINER", "")
    assert Settings.from_env().container is None


def test_history_size_floor():
    assert Settings(history_size=1).history_size == 2


def test_invalid_values_rejected():
    with pytest.raises(ValidationError):
        Settings(tc_json="maybe")
    with pytest.raises(ValidationError):
        Settings(poll_interval=0)
