"""Unit tests for core/config.py -- environment-driven settings."""

import pytest
from pydantic import ValidationError

from core.config import Settings, get_settings

_SLA_VARS = ("SLA_CRITICAL_HOURS", "SLA_HIGH_HOURS", "SLA_MEDIUM_HOURS", "SLA_LOW_HOURS", "SLA_WARNING_HOURS")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _SLA_VARS:
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_defaults():
    settings = Settings(_env_file=None)
    assert settings.default_sla_policy() == {"critical": 1, "high": 4, "medium": 24, "low": 72}
    assert settings.sla_warning_hours == 24


def test_env_overrides_policy(monkeypatch):
    monkeypatch.setenv("SLA_HIGH_HOURS", "8")
    monkeypatch.setenv("SLA_WARNING_HOURS", "12")
    settings = Settings(_env_file=None)
    assert settings.default_sla_policy()["high"] == 8
    assert settings.sla_warning_hours == 12


@pytest.mark.parametrize("name", _SLA_VARS)
@pytest.mark.parametrize("value", ["0", "-3"])
def test_non_positive_hours_rejected(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(ValidationError, match=name):
        Settings(_env_file=None)


def test_unordered_policy_only_warns(monkeypatch, caplog):
    monkeypatch.setenv("SLA_CRITICAL_HOURS", "48")
    with caplog.at_level("WARNING", logger="secdesk.config"):
        settings = Settings(_env_file=None)
    assert settings.sla_critical_hours == 48
    assert "not ordered" in caplog.text


def test_get_settings_is_cached(monkeypatch):
    first = get_settings()
    assert get_settings() is first
    monkeypatch.setenv("SLA_LOW_HOURS", "96")
    assert get_settings().sla_low_hours == first.sla_low_hours
    get_settings.cache_clear()
    assert get_settings().sla_low_hours == 96
